"""Project settings loaded from pyproject.toml [tool.page-complexity] section.

Configuration is organized into subsections:
  [tool.page-complexity]          — job settings (root path, thresholds, workers, …)
  [tool.page-complexity.graph]    — Neo4j URI, username, password, estimate property
  [tool.page-complexity.server]   — reporting endpoint host and port

All settings support environment variable overrides (PAGE_COMPLEXITY_* prefix / NEO4J_*).

The engine itself never reads settings: :func:`load_run_config` builds an
immutable :class:`~page_complexity.models.RunConfig` snapshot that is passed
into each run, and :func:`load_job_settings` adds the trigger-only fields
(enable flag and schedule).
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from datetime import timedelta
from functools import cache
from pathlib import Path
from typing import Any

from page_complexity.models import (
    DEFAULT_BATCH_COMMIT_SIZE,
    DEFAULT_HIGH_THRESHOLD,
    DEFAULT_MAX_PAGES_PER_RUN,
    DEFAULT_MEDIUM_THRESHOLD,
    DEFAULT_QUERY_CAP,
    DEFAULT_WORKER_COUNT,
    CountStrategy,
    RunConfig,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "PAGE_COMPLEXITY_"
DEFAULT_SCHEDULE = "0 0 * * *"


@cache
def _load_pyproject_settings() -> dict:
    """Load settings from pyproject.toml [tool.page-complexity] section.

    Walks up from the package directory so development checkouts pick up
    the repository's pyproject.toml.

    Returns:
        Dictionary of settings from pyproject.toml, empty dict if not found.
    """
    current = Path(__file__).resolve().parent
    while current != current.parent:
        candidate = current / "pyproject.toml"
        if candidate.exists():
            try:
                data = tomllib.loads(candidate.read_text())
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning("Ignoring unreadable %s: %s", candidate, e)
                return {}
            return data.get("tool", {}).get("page-complexity", {})
        current = current.parent
    return {}


def _get_section(section: str) -> dict:
    """Get a subsection from [tool.page-complexity.{section}]."""
    return _load_pyproject_settings().get(section, {})


def _parse_bool(value: str | bool) -> bool:
    """Parse a boolean value from string or bool."""
    if isinstance(value, bool):
        return value
    return value.lower() in ("true", "1", "yes")


def _setting(key: str, default: Any, *, section: str | None = None) -> Any:
    """Resolve one setting.

    Priority: PAGE_COMPLEXITY_{KEY} env → pyproject value → default.
    """
    env_name = ENV_PREFIX + key.upper().replace("-", "_")
    if env := os.getenv(env_name):
        return env
    source = _get_section(section) if section else _load_pyproject_settings()
    value = source.get(key)
    return default if value is None else value


def _int_setting(key: str, default: int) -> int:
    value = _setting(key, default)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        msg = f"Setting '{key}' must be an integer, got {value!r}"
        raise ValueError(msg) from e


# ─── Job settings ──────────────────────────────────────────────────────────


def get_root_path() -> str:
    return str(_setting("root-path", "/content"))


def get_enabled() -> bool:
    return _parse_bool(_setting("enabled", True))


def get_schedule() -> str:
    """Crontab expression (5 fields) for the periodic run."""
    return str(_setting("schedule", DEFAULT_SCHEDULE))


def get_high_threshold() -> int:
    return _int_setting("high-threshold", DEFAULT_HIGH_THRESHOLD)


def get_medium_threshold() -> int:
    return _int_setting("medium-threshold", DEFAULT_MEDIUM_THRESHOLD)


def get_worker_count() -> int:
    return _int_setting("worker-count", DEFAULT_WORKER_COUNT)


def get_max_pages_per_run() -> int:
    """Maximum pages per run; 0 means unlimited."""
    return _int_setting("max-pages-per-run", DEFAULT_MAX_PAGES_PER_RUN)


def get_batch_commit_size() -> int:
    return _int_setting("batch-commit-size", DEFAULT_BATCH_COMMIT_SIZE)


def get_process_only_modified() -> bool:
    return _parse_bool(_setting("process-only-modified", False))


def get_modified_since_hours() -> int:
    return _int_setting("modified-since-hours", 24)


def get_batch_timeout_minutes() -> int:
    return _int_setting("batch-timeout-minutes", 30)


def get_count_strategy() -> CountStrategy:
    value = str(_setting("count-strategy", CountStrategy.auto.value)).lower()
    try:
        return CountStrategy(value)
    except ValueError as e:
        valid = ", ".join(s.value for s in CountStrategy)
        msg = f"Unknown count strategy '{value}'. Valid strategies: {valid}"
        raise ValueError(msg) from e


def get_query_cap() -> int:
    return _int_setting("query-cap", DEFAULT_QUERY_CAP)


# ─── Graph settings ────────────────────────────────────────────────────────


def get_graph_uri() -> str:
    """Priority: NEO4J_URI env → [graph].uri → bolt://localhost:7687."""
    if env := os.getenv("NEO4J_URI"):
        return env
    return str(_get_section("graph").get("uri", "bolt://localhost:7687"))


def get_graph_username() -> str:
    if env := os.getenv("NEO4J_USERNAME"):
        return env
    return str(_get_section("graph").get("username", "neo4j"))


def get_graph_password() -> str:
    if env := os.getenv("NEO4J_PASSWORD"):
        return env
    return str(_get_section("graph").get("password", "neo4j"))


def get_estimate_property() -> str:
    """Property holding precomputed descendant estimates ("" disables)."""
    return str(
        _setting("estimate-property", "descendantEstimate", section="graph")
    )


# ─── Server settings ───────────────────────────────────────────────────────


def get_server_host() -> str:
    return str(_setting("host", "127.0.0.1", section="server"))


def get_server_port() -> int:
    return int(_setting("port", 8765, section="server"))


# ─── Snapshots ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class JobSettings:
    """Trigger-level settings plus the run configuration they schedule."""

    enabled: bool
    schedule: str
    run_config: RunConfig = field(default_factory=RunConfig)


def load_run_config(**overrides: Any) -> RunConfig:
    """Build a :class:`RunConfig` from settings, applying ``overrides``.

    ``None`` overrides are ignored so CLI options can be passed through
    unconditionally.
    """
    lookback = (
        timedelta(hours=get_modified_since_hours())
        if get_process_only_modified()
        else None
    )
    values: dict[str, Any] = {
        "root_path": get_root_path(),
        "high_threshold": get_high_threshold(),
        "medium_threshold": get_medium_threshold(),
        "worker_count": get_worker_count(),
        "max_pages_per_run": get_max_pages_per_run(),
        "batch_commit_size": get_batch_commit_size(),
        "only_modified_since": lookback,
        "batch_timeout": timedelta(minutes=get_batch_timeout_minutes()),
        "count_strategy": get_count_strategy(),
        "query_cap": get_query_cap(),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    config = RunConfig(**values)
    if config.thresholds_inverted:
        logger.warning(
            "high-threshold (%d) <= medium-threshold (%d): the medium tier is "
            "unreachable and pages classify as low or high only",
            config.high_threshold,
            config.medium_threshold,
        )
    return config


def load_job_settings(**overrides: Any) -> JobSettings:
    """Build the full trigger snapshot (enable flag, schedule, run config)."""
    return JobSettings(
        enabled=get_enabled(),
        schedule=get_schedule(),
        run_config=load_run_config(**overrides),
    )

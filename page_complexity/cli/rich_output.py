"""Automatic rich output detection for CLI commands.

Detection priority:

1. ``PAGE_COMPLEXITY_RICH`` env var: explicit override (``0``/``false``/``no``
   to disable, ``1``/``true``/``yes`` to force enable)
2. ``NO_COLOR`` env var disables rich
3. ``CI`` env var disables rich
4. ``stdout.isatty()`` is false in pipes, redirects and cron
"""

from __future__ import annotations

import os
import sys


def should_use_rich() -> bool:
    """Determine whether to use Rich console output."""
    override = os.environ.get("PAGE_COMPLEXITY_RICH", "").strip().lower()
    if override in ("0", "false", "no"):
        return False
    if override in ("1", "true", "yes"):
        return True

    if os.environ.get("NO_COLOR") is not None:
        return False

    if os.environ.get("CI"):
        return False

    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False

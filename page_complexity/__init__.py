"""Page complexity annotation for hierarchical content repositories."""

__version__ = "0.3.0"

"""Utility functions for purrclaw."""

from purrclaw.utils.helpers import ensure_dir, get_workspace_path

__all__ = ["ensure_dir", "get_workspace_path"]

"""Service layer for cross-module collaborators."""

from taskboard.services import user_directory


__all__ = ["user_directory"]

from __future__ import annotations


class TaskboardError(Exception):
    """Base class for errors surfaced to the user as a message."""


class ValidationError(TaskboardError):
    pass


class NotFoundError(TaskboardError):
    pass


class PermissionDenied(TaskboardError):
    pass


class ConflictError(TaskboardError):
    pass


class TransientIOError(TaskboardError):
    """Network or storage failure. Safe to retry."""

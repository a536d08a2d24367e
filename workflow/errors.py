"""
Workflow error taxonomy.

Each error carries the HTTP status the routers answer with.
"""

from fastapi import status


class WorkflowError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(WorkflowError):
    """Missing comment, bad quantity or empty edit; raised before any write."""
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDenied(WorkflowError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(WorkflowError):
    status_code = status.HTTP_409_CONFLICT


class ConcurrentModification(WorkflowError):
    """The record changed since it was read; the caller should reload."""
    status_code = status.HTTP_409_CONFLICT


class AlreadyStocked(WorkflowError):
    status_code = status.HTTP_409_CONFLICT

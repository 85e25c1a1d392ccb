"""Status transitions for Bento versions.

Build and upload status are independent axes with the same shape:

    pending -> building|uploading -> {success, failed}

Forward moves may skip the intermediate state and re-applying the current
state is allowed, so repeated upload notifications stay harmless. Leaving
a terminal state or moving backwards is rejected.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from yatai_bento.types import BuildStatus, UploadStatus

_BUILD_RANK: dict[BuildStatus, int] = {
    BuildStatus.PENDING: 0,
    BuildStatus.BUILDING: 1,
    BuildStatus.SUCCESS: 2,
    BuildStatus.FAILED: 2,
}

_UPLOAD_RANK: dict[UploadStatus, int] = {
    UploadStatus.PENDING: 0,
    UploadStatus.UPLOADING: 1,
    UploadStatus.SUCCESS: 2,
    UploadStatus.FAILED: 2,
}

TERMINAL_BUILD_STATUSES = frozenset({BuildStatus.SUCCESS, BuildStatus.FAILED})
TERMINAL_UPLOAD_STATUSES = frozenset({UploadStatus.SUCCESS, UploadStatus.FAILED})


class InvalidStatusTransitionError(Exception):
    """Raised when a status change is not a legal transition."""

    def __init__(
        self,
        axis: str,
        current: str,
        target: str,
        code: str = "invalid_status_transition",
    ) -> None:
        super().__init__(f"Illegal {axis} transition: {current} -> {target}")
        self.axis = axis
        self.current = current
        self.target = target
        self.code = code


def _is_legal(
    current: Enum,
    target: Enum,
    rank: dict[Any, int],
    terminal: frozenset[Any],
) -> bool:
    if current == target:
        return True
    if current in terminal:
        return False
    return rank[target] > rank[current]


def check_build_transition(
    current: str | BuildStatus, target: str | BuildStatus
) -> BuildStatus:
    """Validate a build status change.

    Args:
        current: Stored build status.
        target: Requested build status.

    Returns:
        The target as a BuildStatus.

    Raises:
        InvalidStatusTransitionError: If the change is not allowed.
        ValueError: If either value is not a build status.
    """
    current_status = BuildStatus(current)
    target_status = BuildStatus(target)
    if not _is_legal(
        current_status, target_status, _BUILD_RANK, TERMINAL_BUILD_STATUSES
    ):
        raise InvalidStatusTransitionError(
            "build_status", current_status.value, target_status.value
        )
    return target_status


def check_upload_transition(
    current: str | UploadStatus, target: str | UploadStatus
) -> UploadStatus:
    """Validate an upload status change.

    Args:
        current: Stored upload status.
        target: Requested upload status.

    Returns:
        The target as an UploadStatus.

    Raises:
        InvalidStatusTransitionError: If the change is not allowed.
        ValueError: If either value is not an upload status.
    """
    current_status = UploadStatus(current)
    target_status = UploadStatus(target)
    if not _is_legal(
        current_status, target_status, _UPLOAD_RANK, TERMINAL_UPLOAD_STATUSES
    ):
        raise InvalidStatusTransitionError(
            "upload_status", current_status.value, target_status.value
        )
    return target_status


__all__ = [
    "InvalidStatusTransitionError",
    "TERMINAL_BUILD_STATUSES",
    "TERMINAL_UPLOAD_STATUSES",
    "check_build_transition",
    "check_upload_transition",
]

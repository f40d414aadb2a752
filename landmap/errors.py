"""Exception types shared by the land map core."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class LandMapError(Exception):
    """Base class for land map failures."""


class InvalidIdentity(LandMapError, ValueError):
    """Raised when an identity key is not 64 hexadecimal characters."""

    def __init__(self, value: object, message: Optional[str] = None) -> None:
        self.value = value
        super().__init__(message or f"Invalid pubkey hex: must be 64 characters (got {value!r})")


class RejectionReason(str, Enum):
    WRONG_KIND = "wrong_kind"
    WRONG_DISCRIMINATOR = "wrong_discriminator"
    MISSING_COORDINATE = "missing_coordinate"
    NON_NUMERIC_COORDINATE = "non_numeric_coordinate"
    INVALID_OWNER = "invalid_owner"
    COORDINATE_MISMATCH = "coordinate_mismatch"
    MALFORMED_RECORD = "malformed_record"


class RecordRejected(LandMapError, ValueError):
    """Raised by the claim codec when a tagged record is not a valid claim."""

    def __init__(self, reason: RejectionReason, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        text = reason.value if not detail else f"{reason.value}: {detail}"
        super().__init__(text)

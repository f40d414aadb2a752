"""Encode and decode land claim records carried as tagged events."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from landmap.coordinates import Coordinates, normalize_pubkey, pubkey_to_coordinates, validate_coordinates
from landmap.errors import InvalidIdentity, RecordRejected, RejectionReason
from landmap.logging_utils import get_logger

_LOGGER = get_logger("LandMap.Codec")

CLAIM_KIND = 30078
DISCRIMINATOR_TAG = "d"
DISCRIMINATOR_VALUE = "land-base"
CATEGORY_TAG = "t"
CATEGORY_VALUE = "land"
DEFAULT_QUERY_LIMIT = 500

_OPTIONAL_TAGS = ("title", "description", "color")

Tags = List[List[str]]


@dataclass
class TaggedRecord:
    """Generic signed record as handed over by the event store."""

    kind: int
    pubkey: str
    tags: Tags = field(default_factory=list)
    content: str = ""
    created_at: Optional[int] = None
    id: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "TaggedRecord":
        if not isinstance(payload, Mapping):
            raise RecordRejected(RejectionReason.MALFORMED_RECORD, f"expected mapping, got {type(payload).__name__}")
        kind = payload.get("kind")
        if isinstance(kind, bool) or not isinstance(kind, int):
            raise RecordRejected(RejectionReason.MALFORMED_RECORD, f"kind={kind!r}")
        pubkey = payload.get("pubkey")
        if not isinstance(pubkey, str):
            raise RecordRejected(RejectionReason.MALFORMED_RECORD, "missing pubkey")
        tags: Tags = []
        raw_tags = payload.get("tags") or []
        if not isinstance(raw_tags, (list, tuple)):
            raise RecordRejected(RejectionReason.MALFORMED_RECORD, "tags must be a list")
        for entry in raw_tags:
            if not isinstance(entry, (list, tuple)) or not entry:
                continue
            tags.append([str(part) for part in entry])
        content = payload.get("content")
        created_at = payload.get("created_at")
        record_id = payload.get("id")
        return cls(
            kind=kind,
            pubkey=pubkey,
            tags=tags,
            content=content if isinstance(content, str) else "",
            created_at=created_at if isinstance(created_at, int) and not isinstance(created_at, bool) else None,
            id=record_id if isinstance(record_id, str) else None,
        )

    def to_mapping(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind,
            "pubkey": self.pubkey,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
        }
        if self.created_at is not None:
            data["created_at"] = self.created_at
        if self.id is not None:
            data["id"] = self.id
        return data


@dataclass(frozen=True)
class ClaimAttributes:
    title: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None


@dataclass(frozen=True)
class ClaimRecord:
    owner: str
    coordinates: Coordinates
    title: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    claimed_at: Optional[int] = None
    source: Optional[TaggedRecord] = field(default=None, compare=False, repr=False)

    @property
    def x(self) -> int:
        return self.coordinates.x

    @property
    def y(self) -> int:
        return self.coordinates.y

    @property
    def attributes(self) -> ClaimAttributes:
        return ClaimAttributes(title=self.title, description=self.description, color=self.color)


def tag_value(tags: Sequence[Sequence[str]], name: str) -> Optional[str]:
    """Return the value of the first tag called ``name``."""
    for tag in tags:
        if len(tag) >= 2 and tag[0] == name:
            return tag[1]
    return None


def encode_claim(
    owner: str,
    attrs: Optional[ClaimAttributes] = None,
    previous_claimed_at: Optional[int] = None,
    *,
    now: Optional[float] = None,
) -> TaggedRecord:
    """Build the tagged record for a first claim or an update.

    ``previous_claimed_at`` is carried verbatim when given; otherwise the claim
    is stamped with the current time.
    """
    pubkey = normalize_pubkey(owner)
    coords = pubkey_to_coordinates(pubkey)
    attrs = attrs or ClaimAttributes()
    if previous_claimed_at is not None:
        claimed_at = int(previous_claimed_at)
    else:
        claimed_at = int(now if now is not None else time.time())

    tags: Tags = [
        [DISCRIMINATOR_TAG, DISCRIMINATOR_VALUE],
        ["x", str(coords.x)],
        ["y", str(coords.y)],
        ["claimed_at", str(claimed_at)],
        [CATEGORY_TAG, CATEGORY_VALUE],
    ]
    for name in _OPTIONAL_TAGS:
        value = getattr(attrs, name)
        if value:
            tags.append([name, str(value)])
    return TaggedRecord(kind=CLAIM_KIND, pubkey=pubkey, tags=tags, content="")


def encode_update(
    owner: str,
    attrs: Optional[ClaimAttributes],
    existing: Optional[ClaimRecord],
    *,
    now: Optional[float] = None,
) -> TaggedRecord:
    previous = existing.claimed_at if existing is not None else None
    return encode_claim(owner, attrs, previous, now=now)


def _parse_coordinate(tags: Sequence[Sequence[str]], name: str) -> int:
    raw = tag_value(tags, name)
    if raw is None or raw == "":
        raise RecordRejected(RejectionReason.MISSING_COORDINATE, name)
    token = raw.strip()
    if not (token.isascii() and token.isdigit()):
        raise RecordRejected(RejectionReason.NON_NUMERIC_COORDINATE, f"{name}={raw!r}")
    return int(token)


def _parse_claimed_at(tags: Sequence[Sequence[str]]) -> Optional[int]:
    raw = tag_value(tags, "claimed_at")
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value > 0 else None


def decode_claim(record: Union[TaggedRecord, Mapping[str, Any]]) -> ClaimRecord:
    """Parse and validate a claim record; raises RecordRejected."""
    if not isinstance(record, TaggedRecord):
        record = TaggedRecord.from_mapping(record)
    if record.kind != CLAIM_KIND:
        raise RecordRejected(RejectionReason.WRONG_KIND, str(record.kind))
    discriminator = tag_value(record.tags, DISCRIMINATOR_TAG)
    if discriminator != DISCRIMINATOR_VALUE:
        raise RecordRejected(RejectionReason.WRONG_DISCRIMINATOR, repr(discriminator))

    x_value = _parse_coordinate(record.tags, "x")
    y_value = _parse_coordinate(record.tags, "y")
    try:
        owner = normalize_pubkey(record.pubkey)
    except InvalidIdentity as exc:
        raise RecordRejected(RejectionReason.INVALID_OWNER, str(exc)) from exc
    if not validate_coordinates(owner, x_value, y_value):
        raise RecordRejected(
            RejectionReason.COORDINATE_MISMATCH,
            f"owner={owner[:8]} claimed=({x_value}, {y_value})",
        )

    optional = {name: tag_value(record.tags, name) or None for name in _OPTIONAL_TAGS}
    return ClaimRecord(
        owner=owner,
        coordinates=Coordinates(x=x_value, y=y_value),
        title=optional["title"],
        description=optional["description"],
        color=optional["color"],
        claimed_at=_parse_claimed_at(record.tags),
        source=record,
    )


def decode_claims(records: Iterable[Union[TaggedRecord, Mapping[str, Any]]]) -> List[ClaimRecord]:
    """Decode a batch, dropping rejected records instead of failing the batch."""
    claims: List[ClaimRecord] = []
    rejected = 0
    for record in records:
        try:
            claims.append(decode_claim(record))
        except RecordRejected as exc:
            rejected += 1
            _LOGGER.debug("Dropped claim record: %s", exc)
    if rejected:
        _LOGGER.debug("Decoded %d claim record(s); rejected %d", len(claims), rejected)
    return claims


def latest_claim(records: Iterable[Union[TaggedRecord, Mapping[str, Any]]]) -> Optional[ClaimRecord]:
    """Return the newest valid claim among ``records`` (by created_at)."""
    best: Optional[ClaimRecord] = None
    best_stamp = -1
    for claim in decode_claims(records):
        stamp = claim.source.created_at if claim.source and claim.source.created_at is not None else 0
        if best is None or stamp > best_stamp:
            best = claim
            best_stamp = stamp
    return best


def claim_filter(owner: str) -> Dict[str, Any]:
    """Query filter for the single current claim of ``owner``."""
    return {
        "kinds": [CLAIM_KIND],
        "authors": [normalize_pubkey(owner)],
        f"#{DISCRIMINATOR_TAG}": [DISCRIMINATOR_VALUE],
        "limit": 1,
    }


def all_claims_filter(limit: int = DEFAULT_QUERY_LIMIT) -> Dict[str, Any]:
    """Query filter for bulk discovery of claims by category."""
    return {
        "kinds": [CLAIM_KIND],
        f"#{DISCRIMINATOR_TAG}": [DISCRIMINATOR_VALUE],
        f"#{CATEGORY_TAG}": [CATEGORY_VALUE],
        "limit": max(1, int(limit)),
    }

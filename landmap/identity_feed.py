"""Parsing of the identity discovery feed (profile metadata events)."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

from landmap.coordinates import normalize_pubkey
from landmap.errors import InvalidIdentity
from landmap.logging_utils import get_logger

_LOGGER = get_logger("LandMap.Identities")

METADATA_KIND = 0


@dataclass(frozen=True)
class IdentityMetadata:
    name: Optional[str] = None
    display_name: Optional[str] = None
    picture: Optional[str] = None
    about: Optional[str] = None
    nip05: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IdentityMetadata":
        def _text(key: str) -> Optional[str]:
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value
            return None

        return cls(
            name=_text("name"),
            display_name=_text("display_name"),
            picture=_text("picture"),
            about=_text("about"),
            nip05=_text("nip05"),
        )

    def label(self) -> Optional[str]:
        return self.display_name or self.name


@dataclass(frozen=True)
class IdentityEntry:
    pubkey: str
    metadata: Optional[IdentityMetadata] = None


def _parse_metadata(raw: Any) -> Optional[IdentityMetadata]:
    if raw is None:
        return None
    if isinstance(raw, IdentityMetadata):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if not isinstance(raw, Mapping):
        return None
    return IdentityMetadata.from_mapping(raw)


def parse_identity_entry(payload: Mapping[str, Any]) -> IdentityEntry:
    """Build an entry from a kind-0 event or an ``{identity, metadata}`` mapping.

    A malformed key raises InvalidIdentity; malformed metadata only drops the
    metadata.
    """
    if "identity" in payload:
        pubkey = normalize_pubkey(payload.get("identity"))
        metadata = _parse_metadata(payload.get("metadata"))
    else:
        pubkey = normalize_pubkey(payload.get("pubkey"))
        metadata = _parse_metadata(payload.get("content"))
    return IdentityEntry(pubkey=pubkey, metadata=metadata)


def parse_identity_feed(payloads: Iterable[Mapping[str, Any]]) -> List[IdentityEntry]:
    entries: List[IdentityEntry] = []
    seen: set[str] = set()
    for payload in payloads:
        if not isinstance(payload, Mapping):
            continue
        try:
            entry = parse_identity_entry(payload)
        except InvalidIdentity as exc:
            _LOGGER.debug("Skipping identity entry with malformed key: %s", exc)
            continue
        if entry.pubkey in seen:
            continue
        seen.add(entry.pubkey)
        entries.append(entry)
    return entries


def with_current_identity(entries: List[IdentityEntry], pubkey: Optional[str]) -> List[IdentityEntry]:
    """Ensure the logged-in identity is part of the feed, prepending it if missing."""
    if not pubkey:
        return entries
    token = normalize_pubkey(pubkey)
    if any(entry.pubkey == token for entry in entries):
        return entries
    return [IdentityEntry(pubkey=token), *entries]

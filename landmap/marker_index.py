"""Merge discovered identities and claim records into render-ready markers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from landmap.claim_codec import ClaimRecord
from landmap.coordinates import pubkey_to_coordinates
from landmap.identity_feed import IdentityEntry, IdentityMetadata


@dataclass(frozen=True)
class Marker:
    pubkey: str
    x: int
    y: int
    has_claimed: bool = False
    metadata: Optional[IdentityMetadata] = None
    claim: Optional[ClaimRecord] = None

    @property
    def title(self) -> Optional[str]:
        return self.claim.title if self.claim else None

    @property
    def description(self) -> Optional[str]:
        return self.claim.description if self.claim else None

    @property
    def color(self) -> Optional[str]:
        return self.claim.color if self.claim else None

    @property
    def claimed_at(self) -> Optional[int]:
        return self.claim.claimed_at if self.claim else None

    @classmethod
    def unclaimed(cls, entry: IdentityEntry) -> "Marker":
        coords = pubkey_to_coordinates(entry.pubkey)
        return cls(pubkey=entry.pubkey, x=coords.x, y=coords.y, has_claimed=False, metadata=entry.metadata)

    @classmethod
    def claimed(cls, claim: ClaimRecord, metadata: Optional[IdentityMetadata] = None) -> "Marker":
        return cls(
            pubkey=claim.owner,
            x=claim.x,
            y=claim.y,
            has_claimed=True,
            metadata=metadata,
            claim=claim,
        )


@dataclass(frozen=True)
class MarkerStats:
    total: int
    claimed: int

    @property
    def claim_rate(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.claimed / self.total


def merge_markers(
    identities: Sequence[IdentityEntry],
    claims: Iterable[ClaimRecord],
    *,
    include_orphan_claims: bool = False,
) -> List[Marker]:
    """Return one marker per identity, in identity order.

    Identities with a claim get the claimed shape (keeping the identity's
    metadata). Claims whose owner is not in ``identities`` are dropped unless
    ``include_orphan_claims`` is set, in which case they are appended.
    """
    by_owner: Dict[str, ClaimRecord] = {}
    for claim in claims:
        by_owner.setdefault(claim.owner, claim)

    markers: List[Marker] = []
    seen: set[str] = set()
    for entry in identities:
        if entry.pubkey in seen:
            continue
        seen.add(entry.pubkey)
        claim = by_owner.get(entry.pubkey)
        if claim is not None:
            markers.append(Marker.claimed(claim, entry.metadata))
        else:
            markers.append(Marker.unclaimed(entry))

    if include_orphan_claims:
        for owner, claim in by_owner.items():
            if owner not in seen:
                seen.add(owner)
                markers.append(Marker.claimed(claim))
    return markers


def find_marker(markers: Iterable[Marker], pubkey: Optional[str]) -> Optional[Marker]:
    if not pubkey:
        return None
    token = pubkey.strip().lower()
    for marker in markers:
        if marker.pubkey == token:
            return marker
    return None


def marker_stats(markers: Sequence[Marker]) -> MarkerStats:
    claimed = sum(1 for marker in markers if marker.has_claimed)
    return MarkerStats(total=len(markers), claimed=claimed)

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from landmap.claim_codec import ClaimRecord
from landmap.coordinates import normalize_pubkey
from landmap.identity_feed import IdentityEntry, with_current_identity
from landmap.logging_utils import get_logger
from landmap.marker_index import Marker, MarkerStats, marker_stats, merge_markers

_LOGGER = get_logger("LandMap.Snapshot")


@dataclass(frozen=True)
class MarkerSnapshot:
    markers: Tuple[Marker, ...] = ()
    generation: int = 0
    identity_count: int = 0
    claim_count: int = 0

    @property
    def stats(self) -> MarkerStats:
        return marker_stats(self.markers)


class MarkerSnapshotModel:
    """Owns the current marker snapshot and resolves overlapping refreshes.

    Each refresh takes a token from begin_refresh(); only the most recently
    issued token may publish, so a slow superseded refresh is discarded rather
    than merged into the newer snapshot.
    """

    def __init__(self, *, include_orphan_claims: bool = False) -> None:
        self._snapshot = MarkerSnapshot()
        self._issued = 0
        self._current_pubkey: Optional[str] = None
        self._include_orphan_claims = include_orphan_claims

    @property
    def snapshot(self) -> MarkerSnapshot:
        return self._snapshot

    @property
    def markers(self) -> Tuple[Marker, ...]:
        return self._snapshot.markers

    @property
    def current_pubkey(self) -> Optional[str]:
        return self._current_pubkey

    def set_current_identity(self, pubkey: Optional[str]) -> None:
        self._current_pubkey = normalize_pubkey(pubkey) if pubkey else None

    def begin_refresh(self) -> int:
        self._issued += 1
        return self._issued

    def apply_refresh(
        self,
        token: int,
        identities: Sequence[IdentityEntry],
        claims: Iterable[ClaimRecord],
    ) -> bool:
        """Publish a refresh result. Returns False when ``token`` was superseded."""
        if token != self._issued:
            _LOGGER.debug("Discarding superseded marker refresh %d (latest=%d)", token, self._issued)
            return False
        claim_list = list(claims)
        entries = with_current_identity(list(identities), self._current_pubkey)
        markers = merge_markers(entries, claim_list, include_orphan_claims=self._include_orphan_claims)
        self._snapshot = MarkerSnapshot(
            markers=tuple(markers),
            generation=token,
            identity_count=len(identities),
            claim_count=len(claim_list),
        )
        _LOGGER.debug(
            "Marker snapshot %d published: markers=%d identities=%d claims=%d",
            token,
            len(markers),
            len(identities),
            len(claim_list),
        )
        return True

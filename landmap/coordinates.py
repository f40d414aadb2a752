"""Deterministic placement of identities on the land map plane."""
from __future__ import annotations

import string
from dataclasses import dataclass

import bech32

from landmap.errors import InvalidIdentity

MAP_WIDTH = 100000
MAP_HEIGHT = 100000
PUBKEY_HEX_LENGTH = 64
NPUB_PREFIX = "npub"

_HEX_DIGITS = frozenset(string.hexdigits.lower())


@dataclass(frozen=True)
class Coordinates:
    x: int
    y: int


def normalize_pubkey(value: object) -> str:
    """Return the lowercase 64-character hex form of ``value``.

    Raises InvalidIdentity for anything that is not exactly 32 bytes of hex.
    """
    if not isinstance(value, str):
        raise InvalidIdentity(value)
    token = value.strip().lower()
    if len(token) != PUBKEY_HEX_LENGTH or not set(token) <= _HEX_DIGITS:
        raise InvalidIdentity(value)
    return token


def pubkey_to_coordinates(pubkey_hex: str) -> Coordinates:
    """Map a public key to its fixed position on the plane.

    The first half of the hex string seeds x and the second half seeds y;
    each half is a 128-bit integer reduced modulo the map dimension.
    """
    token = normalize_pubkey(pubkey_hex)
    half = PUBKEY_HEX_LENGTH // 2
    x_value = int(token[:half], 16)
    y_value = int(token[half:], 16)
    return Coordinates(x=x_value % MAP_WIDTH, y=y_value % MAP_HEIGHT)


def validate_coordinates(pubkey_hex: str, claimed_x: int, claimed_y: int) -> bool:
    """Return True when the claimed position is the one ``pubkey_hex`` earns."""
    try:
        calculated = pubkey_to_coordinates(pubkey_hex)
    except InvalidIdentity:
        return False
    return calculated.x == claimed_x and calculated.y == claimed_y


def format_coordinates(coords: Coordinates) -> str:
    return f"({coords.x:,}, {coords.y:,})"


def npub_to_pubkey(npub: object) -> str:
    """Decode a bech32 ``npub1...`` identifier into its 64-character hex key."""
    if not isinstance(npub, str):
        raise InvalidIdentity(npub, f"Invalid npub: expected a string (got {npub!r})")
    hrp, data = bech32.bech32_decode(npub.strip().lower())
    if hrp is None or data is None:
        raise InvalidIdentity(npub, f"Invalid npub: bad bech32 encoding ({npub!r})")
    if hrp != NPUB_PREFIX:
        raise InvalidIdentity(npub, f"Invalid npub: expected '{NPUB_PREFIX}' prefix (got {hrp!r})")
    payload = bech32.convertbits(data, 5, 8, False)
    if payload is None or len(payload) != PUBKEY_HEX_LENGTH // 2:
        raise InvalidIdentity(npub, f"Invalid npub: payload is not 32 bytes ({npub!r})")
    return bytes(payload).hex()


def npub_to_coordinates(npub: str) -> Coordinates:
    return pubkey_to_coordinates(npub_to_pubkey(npub))


def resolve_identity(value: object) -> str:
    """Accept either a hex key or an ``npub1...`` identifier and return hex."""
    if isinstance(value, str) and value.strip().lower().startswith(NPUB_PREFIX + "1"):
        return npub_to_pubkey(value)
    return normalize_pubkey(value)

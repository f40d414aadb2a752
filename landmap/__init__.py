"""Land map client: deterministic identity placement and a pannable map view."""
from __future__ import annotations

__version__ = "0.3.0"

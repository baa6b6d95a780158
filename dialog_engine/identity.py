"""
Name -> profile id resolution.

There is no identity store behind the bot yet, so a handful of display names
map to profile ids that were enrolled ahead of time. Everything that needs
"which profile belongs to this name" goes through ``resolve_profile_id``;
swapping in a real lookup means changing this module only.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

# Pre-assigned profiles (only valid against the Speaker Recognition
# subscription they were enrolled in).
ALEX_ID = UUID("4ac7dda3-56a5-45cc-8bda-1183899bf4bf")
LOEK_ID = UUID("ab8d4c0d-2896-47ac-9c79-d7fb0efb1bb3")
UNENROLLED_ID = UUID("36ca1410-4460-4271-aeca-9aa4934842f7")

KNOWN_NAMES: dict[str, UUID] = {
    "LOEK": LOEK_ID,
    "ALEX": ALEX_ID,
    "STRANGER": UNENROLLED_ID,
}


def resolve_profile_id(name: Optional[str]) -> Optional[UUID]:
    """Return the pre-assigned profile id for ``name`` (case-insensitive), else None."""
    if not name:
        return None
    return KNOWN_NAMES.get(name.strip().upper())

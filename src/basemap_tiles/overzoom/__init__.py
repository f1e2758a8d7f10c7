"""
Overzoom Module

Per-tile overzoom orchestration and the batch entry point that fills
deeper zoom levels of a destination archive.
"""

from .overzoom_engine import (
    OverzoomOrchestrator,
    OverzoomResult,
    OverzoomState,
    OverzoomSummary,
    TileFailure,
    candidate_tiles,
    overzoom,
)

__all__ = [
    "OverzoomOrchestrator",
    "OverzoomResult",
    "OverzoomState",
    "OverzoomSummary",
    "TileFailure",
    "candidate_tiles",
    "overzoom",
]

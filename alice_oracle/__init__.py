"""ALICE Oracle: discovery, enrichment and heuristic scoring of new Solana tokens."""

from .models import (
    Archetype,
    Candidate,
    CosmicSnapshot,
    EnrichedCandidate,
    LayerScore,
    OriginSource,
    Recommendation,
    ScoredToken,
)
from .pipeline import OracleScanner, ScanFailed, ScanResult
from .settings import ScanSettings, refresh_settings, settings

__version__ = "0.1.0"

__all__ = [
    "Archetype",
    "Candidate",
    "CosmicSnapshot",
    "EnrichedCandidate",
    "LayerScore",
    "OracleScanner",
    "OriginSource",
    "Recommendation",
    "ScanFailed",
    "ScanResult",
    "ScanSettings",
    "ScoredToken",
    "refresh_settings",
    "settings",
]

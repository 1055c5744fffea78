from __future__ import annotations

"""Project-wide path helpers."""

from pathlib import Path

# Repository root path
ROOT = Path(__file__).resolve().parent.parent

CACHE_DIR = ROOT / ".cache"
LOG_DIR = ROOT / "logs"
RECALL_PATH = CACHE_DIR / "recall.json"

__all__ = ["ROOT", "CACHE_DIR", "LOG_DIR", "RECALL_PATH"]

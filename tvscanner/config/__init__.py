"""
PURPOSE: Export configuration settings and constants for TV Scanner.
"""

from .constants import (
    TF_1H,
    TF_5M,
    TF_15M,
    Direction,
    EventType,
    Zone,
)
from .settings import Settings, settings

__all__ = [
    "settings",
    "Settings",
    "Direction",
    "Zone",
    "EventType",
    "TF_5M",
    "TF_15M",
    "TF_1H",
]

"""
PCB Fault Guru: AI-assisted inspection of printed circuit board photographs.
"""

__version__ = "1.0.0"

from .config.settings import Config, load_config
from .core.entities import BoundingBox, Component, Defect, PcbAnalysis

__all__ = [
    "Config", "load_config",
    "BoundingBox", "Component", "Defect", "PcbAnalysis",
]

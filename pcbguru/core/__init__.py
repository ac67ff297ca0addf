"""Core domain entities, errors and derived projections."""

from .entities import (
    BoundingBox, Point, Component, Defect, Replacement, Alternative, Advice,
    PcbAnalysis, JumperSuggestion, ChatMessage, ImageInput,
)
from .exceptions import (
    ApplicationError, ConfigurationError, ServiceError, MalformedResponse,
    ValidationError, ExportError,
)

__all__ = [
    "BoundingBox", "Point", "Component", "Defect", "Replacement", "Alternative",
    "Advice", "PcbAnalysis", "JumperSuggestion", "ChatMessage", "ImageInput",
    "ApplicationError", "ConfigurationError", "ServiceError", "MalformedResponse",
    "ValidationError", "ExportError",
]

"""Session state snapshot."""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..core.entities import ChatMessage, ImageInput, JumperSuggestion, PcbAnalysis


class Phase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


# Error kinds
ERROR_CONFIGURATION = "configuration"
ERROR_SERVICE = "service"
ERROR_MALFORMED = "malformed_response"
ERROR_UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    message: str
    retryable: bool = False


@dataclass(frozen=True)
class SessionState:
    """Immutable view of everything the UI renders.

    A new instance replaces the old one on every change; subscribers never
    see a half-updated state.
    """
    phase: Phase = Phase.IDLE
    image: Optional[ImageInput] = None
    analysis: Optional[PcbAnalysis] = None
    error: Optional[ErrorInfo] = None
    hovered_id: Optional[str] = None
    selected_id: Optional[str] = None
    board_voltage: Optional[float] = None
    chat_busy: bool = False
    transcript: Tuple[ChatMessage, ...] = ()
    jumper_suggestion: Optional[JumperSuggestion] = None
    generation: int = 0
    export_error: Optional[ErrorInfo] = None

    @property
    def is_loading(self) -> bool:
        return self.phase is Phase.LOADING

    @property
    def has_analysis(self) -> bool:
        return self.analysis is not None

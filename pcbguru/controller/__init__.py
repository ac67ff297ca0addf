"""Application state controller."""

from .state import Phase, ErrorInfo, SessionState
from .app_controller import AppController

__all__ = ["Phase", "ErrorInfo", "SessionState", "AppController"]

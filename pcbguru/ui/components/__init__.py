"""UI components package."""

from .analysis_canvas import AnalysisCanvas
from .chat_panel import ChatPanel
from .results_panel import SummaryPanel, ExplorerPanel
from .status_bar import StatusBar

__all__ = [
    'AnalysisCanvas',
    'ChatPanel',
    'SummaryPanel',
    'ExplorerPanel',
    'StatusBar'
]

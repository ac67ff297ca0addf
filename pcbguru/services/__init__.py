"""Services package: Gemini clients, export and datasheet lookup."""

from .gemini_service import GeminiService
from .analysis_service import PcbAnalysisService, parse_analysis_reply
from .chat_service import GuruChatService, GuruReply, ChatSession
from .export_service import build_bom_csv, write_bom_csv, build_pdf_report, write_pdf_report
from .datasheet_service import datasheet_search_url, open_datasheet

__all__ = [
    "GeminiService", "PcbAnalysisService", "parse_analysis_reply",
    "GuruChatService", "GuruReply", "ChatSession",
    "build_bom_csv", "write_bom_csv", "build_pdf_report", "write_pdf_report",
    "datasheet_search_url", "open_datasheet",
]

"""Default configuration values."""

from typing import Any, Dict

DEFAULT_CONFIG: Dict[str, Any] = {
    # Gemini settings
    "gemini_api_key": "",
    "gemini_model": "gemini-2.5-flash",
    "gemini_timeout": 30,  # seconds
    "analysis_temperature": 0.1,  # low for deterministic structured output
    "chat_temperature": 0.4,

    # Export settings
    "results_export_dir": "results",
    "bom_filename": "bom_report.csv",
    "report_filename": "pcb_report.pdf",

    # Window
    "window_width": 1400,
    "window_height": 860,

    # Debug and Logging Settings
    "debug": False,
    "log_level": "INFO",
    "log_dir": "",
    "structured_logging": False,
}

"""Main entry point for PCB Fault Guru."""

import logging
import sys
import tkinter as tk

from .config.env_config import EnvironmentError
from .config.settings import load_config
from .core.logging_config import configure_logging, logging_manager
from .ui.main_window import MainWindow
from .utils.geometry import ensure_dirs

logger = logging.getLogger(__name__)


def main() -> int:
    """Application entry point."""
    try:
        config = load_config()
    except EnvironmentError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(
        log_level=config.log_level,
        log_dir=config.log_dir or None,
        structured_logging=config.structured_logging,
    )
    ensure_dirs(config.results_export_dir)
    logger.info(f"Starting PCB Fault Guru (model {config.gemini_model})")

    root = tk.Tk()
    MainWindow(root, config)

    root.update_idletasks()
    width = root.winfo_width()
    height = root.winfo_height()
    pos_x = (root.winfo_screenwidth() // 2) - (width // 2)
    pos_y = (root.winfo_screenheight() // 2) - (height // 2)
    root.geometry(f"{width}x{height}+{pos_x}+{pos_y}")

    try:
        root.mainloop()
    finally:
        logger.info("PCB Fault Guru closed")
        logging_manager.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())

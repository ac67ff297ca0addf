"""Main application window."""

import logging
import os
import tkinter as tk
from tkinter import filedialog, messagebox, ttk
from typing import Optional

from ..config.settings import Config
from ..controller.app_controller import AppController
from ..controller.state import Phase, SessionState
from ..core.exceptions import ApplicationError
from ..services.analysis_service import PcbAnalysisService
from ..services.chat_service import GuruChatService
from ..services.datasheet_service import open_datasheet
from ..utils.image_utils import IMAGE_FILE_TYPES, load_image_file, open_image
from .components.analysis_canvas import AnalysisCanvas
from .components.chat_panel import ChatPanel
from .components.results_panel import ExplorerPanel, SummaryPanel
from .components.status_bar import StatusBar

logger = logging.getLogger(__name__)


class MainWindow:
    """Main application window."""

    def __init__(self, root: tk.Tk, config: Config, controller: Optional[AppController] = None):
        self.root = root
        self.config = config

        self._setup_window()

        self.controller = controller or AppController(
            PcbAnalysisService(config),
            GuruChatService(config),
            dispatch=lambda fn: self.root.after(0, fn),
            chat_timeout=config.gemini_timeout,
        )

        self._last_error = None
        self._last_export_error = None

        self._build_ui()
        self.controller.subscribe(self._on_state_changed)
        self._on_state_changed(self.controller.state)

        if not self.config.has_api_key():
            self.root.after(200, self._warn_missing_key)

    def _setup_window(self):
        self.root.title("PCB Fault Guru")
        self.root.geometry(f"{self.config.window_width}x{self.config.window_height}")
        self.root.minsize(900, 600)
        self.root.protocol("WM_DELETE_WINDOW", self.on_close)

    def _build_ui(self):
        self._build_toolbar()

        body = ttk.PanedWindow(self.root, orient='horizontal')
        body.pack(fill='both', expand=True, padx=6, pady=6)

        self.canvas = AnalysisCanvas(
            body,
            on_hover=self.controller.hover,
            on_select=self._select,
            on_datasheet=self._open_datasheet,
        )
        body.add(self.canvas, weight=3)

        self.notebook = ttk.Notebook(body)
        body.add(self.notebook, weight=2)

        self.summary_panel = SummaryPanel(self.notebook)
        self.notebook.add(self.summary_panel, text="Summary")

        self.explorer_panel = ExplorerPanel(
            self.notebook,
            explore=self.controller.explore,
            on_select=self._select,
            on_hover=self.controller.hover,
        )
        self.notebook.add(self.explorer_panel, text="Explorer")

        self.chat_panel = ChatPanel(self.notebook, on_send=self.controller.send_message)
        self.notebook.add(self.chat_panel, text="Chat")

        self.status_bar = StatusBar(self.root)
        self.status_bar.pack(fill='x', side='bottom')
        self.status_bar.set_model_info(self.config.gemini_model)

    def _build_toolbar(self):
        toolbar = ttk.Frame(self.root, padding=(6, 6, 6, 0))
        toolbar.pack(fill='x')

        ttk.Button(toolbar, text="Open Image", command=self.open_image).pack(side='left')

        self.retry_button = ttk.Button(toolbar, text="Try Again", command=self.controller.retry)
        self.retry_button.pack(side='left', padx=(6, 0))

        ttk.Label(toolbar, text="Board Voltage:").pack(side='left', padx=(18, 4))
        self.voltage_var = tk.StringVar()
        self.voltage_entry = ttk.Entry(toolbar, textvariable=self.voltage_var, width=8)
        self.voltage_entry.pack(side='left')
        self.voltage_entry.bind('<Return>', lambda e: self._apply_voltage())
        self.voltage_entry.bind('<FocusOut>', lambda e: self._apply_voltage())
        ttk.Label(toolbar, text="V").pack(side='left', padx=(2, 0))

        ttk.Button(toolbar, text="Start Over", command=self.start_over).pack(side='right')
        self.bom_button = ttk.Button(toolbar, text="Download BOM", command=self.download_bom)
        self.bom_button.pack(side='right', padx=(0, 6))
        self.report_button = ttk.Button(toolbar, text="Generate Report", command=self.generate_report)
        self.report_button.pack(side='right', padx=(0, 6))

    # -- actions -----------------------------------------------------------

    def open_image(self):
        path = filedialog.askopenfilename(title="Open PCB image", filetypes=IMAGE_FILE_TYPES)
        if not path:
            return
        try:
            image_input = load_image_file(path)
            pil_image = open_image(image_input.data)
        except ApplicationError as e:
            messagebox.showerror("Open Image", e.user_message)
            return
        except OSError as e:
            logger.error(f"Could not decode {path}: {e}")
            messagebox.showerror("Open Image", "The selected file is not a readable image.")
            return

        self.voltage_var.set("")
        self.canvas.set_image(pil_image)
        self.controller.upload(image_input.data, image_input.mime_type, image_input.name)

    def start_over(self):
        self.controller.reset()
        self.voltage_var.set("")
        self.canvas.set_image(None)

    def _apply_voltage(self):
        text = self.voltage_var.get().strip()
        if not text:
            self.controller.set_board_voltage(None)
            return
        try:
            self.controller.set_board_voltage(float(text))
        except ValueError:
            logger.debug(f"Ignoring invalid board voltage {text!r}")
            self.voltage_var.set("" if self.controller.state.board_voltage is None
                                 else f"{self.controller.state.board_voltage:g}")

    def _select(self, item_id: Optional[str]):
        if item_id is None:
            self.controller.clear_selection()
        else:
            self.controller.select(item_id)

    def _open_datasheet(self, mpn: str):
        try:
            open_datasheet(mpn)
        except ValueError as e:
            logger.warning(f"Datasheet lookup skipped: {e}")

    def download_bom(self):
        path = filedialog.asksaveasfilename(
            title="Save BOM", defaultextension=".csv",
            initialdir=os.path.abspath(self.config.results_export_dir),
            initialfile=self.config.bom_filename,
            filetypes=[("CSV files", "*.csv")])
        if path:
            self.controller.export_bom(path)

    def generate_report(self):
        path = filedialog.asksaveasfilename(
            title="Save PDF report", defaultextension=".pdf",
            initialdir=os.path.abspath(self.config.results_export_dir),
            initialfile=self.config.report_filename,
            filetypes=[("PDF files", "*.pdf")])
        if not path:
            return
        self.status_bar.set_status("Generating report...")
        self.root.update_idletasks()
        if self.controller.export_report(path):
            self.status_bar.set_status(f"Report saved to {path}")

    def _warn_missing_key(self):
        messagebox.showwarning(
            "Gemini API key",
            "No API key found. Set GEMINI_API_KEY (or API_KEY) in the environment or a .env file "
            "to analyze images.")

    # -- state -------------------------------------------------------------

    def _on_state_changed(self, state: SessionState):
        has_analysis = state.analysis is not None
        self.report_button.configure(state='normal' if has_analysis else 'disabled')
        self.bom_button.configure(state='normal' if has_analysis else 'disabled')
        self.voltage_entry.configure(state='normal' if has_analysis else 'disabled')
        retry_ok = state.phase is Phase.ERROR and state.error is not None and state.error.retryable
        self.retry_button.configure(state='normal' if retry_ok else 'disabled')

        self.canvas.render(state)
        self.summary_panel.update_from_state(state)
        self.explorer_panel.update_from_state(state)

        selected = self.controller.selected_component()
        label = f"{selected.designator} ({selected.mpn})" if selected else ""
        self.chat_panel.update_from_state(state, label)
        self.status_bar.update_from_state(state)

        if state.error is not None and state.error != self._last_error:
            messagebox.showerror("Analysis failed", state.error.message)
        self._last_error = state.error

        if state.export_error is not None and state.export_error != self._last_export_error:
            messagebox.showerror("Export failed", state.export_error.message)
        self._last_export_error = state.export_error

    def on_close(self):
        self.controller.shutdown()
        self.root.destroy()

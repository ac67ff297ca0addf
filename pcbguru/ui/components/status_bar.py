"""Status bar component."""

import tkinter as tk
from tkinter import ttk

from ...controller.state import Phase, SessionState


class StatusBar(ttk.Frame):
    """Status bar showing session state."""

    PHASE_TEXT = {
        Phase.IDLE: "Open a PCB image to begin",
        Phase.LOADING: "Analyzing PCB image...",
        Phase.READY: "Analysis complete",
        Phase.ERROR: "Analysis failed",
    }

    def __init__(self, parent):
        super().__init__(parent, padding=5)
        self._build_ui()

    def _build_ui(self):
        self.status_var = tk.StringVar(value=self.PHASE_TEXT[Phase.IDLE])
        self.status_label = ttk.Label(self, textvariable=self.status_var)
        self.status_label.pack(side='left', padx=(0, 10))

        self.components_var = tk.StringVar(value="Components: 0")
        ttk.Label(self, textvariable=self.components_var).pack(side='left', padx=(0, 10))

        self.defects_var = tk.StringVar(value="Defects: 0")
        ttk.Label(self, textvariable=self.defects_var).pack(side='left', padx=(0, 10))

        separator = ttk.Separator(self, orient='vertical')
        separator.pack(side='left', fill='y', padx=5)

        self.model_var = tk.StringVar(value="Model: --")
        ttk.Label(self, textvariable=self.model_var).pack(side='left')

    def set_status(self, status: str):
        self.status_var.set(status)

    def set_model_info(self, model_name: str):
        self.model_var.set(f"Model: {model_name}")

    def update_from_state(self, state: SessionState):
        text = self.PHASE_TEXT[state.phase]
        if state.phase is Phase.ERROR and state.error is not None:
            text = f"{text}: {state.error.message}"
        elif state.export_error is not None:
            text = state.export_error.message
        elif state.chat_busy:
            text = "Guru is thinking..."
        self.set_status(text)

        analysis = state.analysis
        self.components_var.set(f"Components: {len(analysis.components) if analysis else 0}")
        self.defects_var.set(f"Defects: {len(analysis.defects) if analysis else 0}")

"""Guru chat tab."""

import tkinter as tk
from tkinter import ttk
from typing import Callable

from ...controller.state import SessionState


class ChatPanel(ttk.Frame):
    """Transcript view plus input; input is disabled while a reply is pending."""

    def __init__(self, parent, on_send: Callable[[str], bool]):
        super().__init__(parent, padding=8)
        self._on_send = on_send
        self._rendered = 0
        self._build_ui()

    def _build_ui(self):
        self.context_var = tk.StringVar(value="")
        ttk.Label(self, textvariable=self.context_var, foreground='#6b7280').pack(fill='x')

        frame = ttk.Frame(self)
        frame.pack(fill='both', expand=True, pady=4)
        self.transcript = tk.Text(frame, wrap='word', state='disabled', relief='flat', height=20)
        scrollbar = ttk.Scrollbar(frame, orient='vertical', command=self.transcript.yview)
        self.transcript.configure(yscrollcommand=scrollbar.set)
        self.transcript.pack(side='left', fill='both', expand=True)
        scrollbar.pack(side='right', fill='y')

        self.transcript.tag_configure('user', foreground='#1d4ed8', font=('Segoe UI', 9, 'bold'))
        self.transcript.tag_configure('model', foreground='#047857', font=('Segoe UI', 9, 'bold'))
        self.transcript.tag_configure('jumper', foreground='#0284c7', font=('Segoe UI', 8, 'italic'))

        input_row = ttk.Frame(self)
        input_row.pack(fill='x')
        self.entry_var = tk.StringVar()
        self.entry = ttk.Entry(input_row, textvariable=self.entry_var)
        self.entry.pack(side='left', fill='x', expand=True)
        self.entry.bind('<Return>', lambda e: self._send())
        self.send_button = ttk.Button(input_row, text="Send", command=self._send)
        self.send_button.pack(side='right', padx=(4, 0))

    def _send(self):
        text = self.entry_var.get()
        if self._on_send(text):
            self.entry_var.set("")

    def update_from_state(self, state: SessionState, selected_label: str = ""):
        enabled = state.analysis is not None and not state.chat_busy
        self.entry.configure(state='normal' if enabled else 'disabled')
        self.send_button.configure(state='normal' if enabled else 'disabled')

        if state.chat_busy:
            self.context_var.set("Guru is thinking...")
        elif selected_label:
            self.context_var.set(f"Asking about {selected_label}")
        else:
            self.context_var.set("Ask Guru about this board")

        messages = state.transcript
        if len(messages) < self._rendered:
            self._clear()
        if len(messages) == self._rendered:
            return

        self.transcript.configure(state='normal')
        for message in messages[self._rendered:]:
            tag = 'user' if message.is_user else 'model'
            self.transcript.insert('end', "You: " if message.is_user else "Guru: ", tag)
            self.transcript.insert('end', message.text + "\n")
            if message.jumper_suggestion is not None:
                self.transcript.insert('end', "Jumper suggestion shown on the board.\n", 'jumper')
            self.transcript.insert('end', "\n")
        self.transcript.configure(state='disabled')
        self.transcript.see('end')
        self._rendered = len(messages)

    def _clear(self):
        self.transcript.configure(state='normal')
        self.transcript.delete('1.0', 'end')
        self.transcript.configure(state='disabled')
        self._rendered = 0

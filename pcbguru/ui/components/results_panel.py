"""Summary and explorer tabs."""

import tkinter as tk
from tkinter import ttk
from typing import Callable, Optional

from ...controller.state import SessionState
from ...core.status import (
    EXPLORER_FILTERS, FILTER_ALL, ExplorerView, format_defect_type, status_with_voltage, summary_stats,
)


class SummaryPanel(ttk.Frame):
    """Board summary, counts and repair advice."""

    def __init__(self, parent):
        super().__init__(parent, padding=8)
        self._build_ui()

    def _build_ui(self):
        self.summary_var = tk.StringVar(value="No analysis yet.")
        ttk.Label(self, textvariable=self.summary_var, wraplength=380, justify='left',
                  font=('Segoe UI', 10, 'bold')).pack(fill='x', pady=(0, 8))

        self.stats_var = tk.StringVar(value="")
        ttk.Label(self, textvariable=self.stats_var).pack(fill='x', pady=(0, 8))

        self.advice_text = tk.Text(self, wrap='word', height=20, relief='flat', state='disabled')
        self.advice_text.pack(fill='both', expand=True)

    def update_from_state(self, state: SessionState):
        analysis = state.analysis
        if analysis is None:
            self.summary_var.set("No analysis yet.")
            self.stats_var.set("")
            self._set_advice("")
            return

        self.summary_var.set(analysis.summary or "No summary provided.")
        stats = summary_stats(analysis, state.board_voltage)
        cost = f"  |  Est. repair: ${stats.repair_cost:.2f}" if stats.repair_cost is not None else ""
        self.stats_var.set(f"Components: {stats.total_components}  |  Issues: {stats.issue_count}  |  "
                           f"Defects: {stats.defect_count}{cost}")

        advice = analysis.advice
        lines = []
        if advice.quick_actions:
            lines.append("Quick Actions")
            lines.extend(f"  - {a}" for a in advice.quick_actions)
            lines.append("")
        if advice.alternatives:
            lines.append("Replacement Suggestions")
            for alt in advice.alternatives:
                for rep in alt.replacements:
                    lines.append(f"  {alt.original_mpn} -> {rep.mpn}: {rep.reason}")
            lines.append("")
        if advice.next_steps:
            lines.append("Next Steps")
            lines.extend(f"  {i}. {s}" for i, s in enumerate(advice.next_steps, start=1))
        self._set_advice("\n".join(lines))

    def _set_advice(self, text: str):
        self.advice_text.configure(state='normal')
        self.advice_text.delete('1.0', 'end')
        self.advice_text.insert('1.0', text)
        self.advice_text.configure(state='disabled')


class ExplorerPanel(ttk.Frame):
    """Searchable, filterable list of components and defects."""

    def __init__(self, parent, explore: Callable[[str, str], ExplorerView],
                 on_select: Callable[[Optional[str]], None],
                 on_hover: Callable[[Optional[str]], None]):
        super().__init__(parent, padding=8)
        self._explore = explore
        self._on_select = on_select
        self._on_hover = on_hover
        self._state: Optional[SessionState] = None
        self._syncing = False
        self._build_ui()

    def _build_ui(self):
        controls = ttk.Frame(self)
        controls.pack(fill='x', pady=(0, 6))

        ttk.Label(controls, text="Search:").pack(side='left')
        self.search_var = tk.StringVar()
        self.search_var.trace_add('write', lambda *_: self.refresh())
        ttk.Entry(controls, textvariable=self.search_var, width=18).pack(side='left', padx=4)

        self.filter_var = tk.StringVar(value=FILTER_ALL)
        combo = ttk.Combobox(controls, textvariable=self.filter_var, values=EXPLORER_FILTERS,
                             state='readonly', width=8)
        combo.pack(side='left', padx=4)
        combo.bind('<<ComboboxSelected>>', lambda e: self.refresh())

        columns = ('mpn', 'status')
        self.tree = ttk.Treeview(self, columns=columns, show='tree headings', selectmode='browse')
        self.tree.heading('#0', text='Item')
        self.tree.heading('mpn', text='MPN / Type')
        self.tree.heading('status', text='Status')
        self.tree.column('#0', width=140)
        self.tree.column('mpn', width=140)
        self.tree.column('status', width=150)
        self.tree.pack(fill='both', expand=True)

        self.tree.tag_configure('issue', foreground='#f97316')
        self.tree.tag_configure('ok', foreground='#16a34a')
        self.tree.tag_configure('defect', foreground='#a855f7')

        self.tree.bind('<<TreeviewSelect>>', self._on_tree_select)
        self.tree.bind('<Motion>', self._on_tree_motion)
        self.tree.bind('<Leave>', lambda e: self._on_hover(None))

    def update_from_state(self, state: SessionState):
        self._state = state
        self.refresh()

    def refresh(self):
        self._syncing = True
        try:
            self.tree.delete(*self.tree.get_children())
            state = self._state
            if state is None or state.analysis is None:
                return
            view = self._explore(self.search_var.get(), self.filter_var.get())

            if view.issues:
                parent = self.tree.insert('', 'end', text=f"Components with Issues ({len(view.issues)})", open=True)
                for c in view.issues:
                    self.tree.insert(parent, 'end', iid=c.designator, text=c.designator,
                                     values=(c.mpn, status_with_voltage(c, state.board_voltage)), tags=('issue',))
            if view.ok:
                parent = self.tree.insert('', 'end', text=f"OK Components ({len(view.ok)})", open=True)
                for c in view.ok:
                    self.tree.insert(parent, 'end', iid=c.designator, text=c.designator,
                                     values=(c.mpn, "OK"), tags=('ok',))
            if view.defects:
                parent = self.tree.insert('', 'end', text=f"Defects ({len(view.defects)})", open=True)
                for d in view.defects:
                    if self.tree.exists(d.id):
                        continue
                    self.tree.insert(parent, 'end', iid=d.id, text=d.id,
                                     values=(format_defect_type(d.type), f"{d.confidence * 100:.0f}% conf."),
                                     tags=('defect',))

            if state.selected_id and self.tree.exists(state.selected_id):
                self.tree.selection_set(state.selected_id)
                self.tree.see(state.selected_id)
        finally:
            self._syncing = False

    def _is_item(self, iid: str) -> bool:
        return bool(iid) and self.tree.parent(iid) != ''

    def _on_tree_select(self, event):
        if self._syncing:
            return
        selection = self.tree.selection()
        if selection and self._is_item(selection[0]) and self._state is not None:
            if selection[0] != self._state.selected_id:
                self._on_select(selection[0])

    def _on_tree_motion(self, event):
        iid = self.tree.identify_row(event.y)
        self._on_hover(iid if self._is_item(iid) else None)

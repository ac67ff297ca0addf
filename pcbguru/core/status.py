"""Derived, read-only projections over an analysis.

Everything here is recomputed from the current state on every call; nothing
is cached.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .entities import Component, Defect, PcbAnalysis

FILTER_ALL = "all"
FILTER_ISSUES = "issues"
FILTER_OK = "ok"
EXPLORER_FILTERS = (FILTER_ALL, FILTER_ISSUES, FILTER_OK)


def component_status(component: Component) -> str:
    """Human-readable status; burnt and corroded take precedence over missing."""
    if component.condition == "burnt":
        return "Burnt"
    if component.condition == "corroded":
        return "Corroded"
    if component.presence == "missing":
        return "Missing"
    return "OK"


def has_voltage_mismatch(component: Component, board_voltage: Optional[float]) -> bool:
    return (
        board_voltage is not None
        and component.max_voltage is not None
        and board_voltage > component.max_voltage
    )


def has_issue(component: Component, board_voltage: Optional[float] = None) -> bool:
    return (
        component.presence != "ok"
        or component.condition != "ok"
        or has_voltage_mismatch(component, board_voltage)
    )


def status_with_voltage(component: Component, board_voltage: Optional[float]) -> str:
    """Status text used in reports, including the voltage mismatch detail."""
    status = component_status(component)
    if status == "OK" and has_voltage_mismatch(component, board_voltage):
        return f"Voltage Mismatch ({board_voltage:g}V > {component.max_voltage:g}V)"
    return status


def partition_components(components: Iterable[Component],
                         board_voltage: Optional[float] = None) -> Tuple[List[Component], List[Component]]:
    """Split components into (with issues, ok), preserving order."""
    issues: List[Component] = []
    ok: List[Component] = []
    for component in components:
        (issues if has_issue(component, board_voltage) else ok).append(component)
    return issues, ok


def search_components(components: Iterable[Component], term: str) -> List[Component]:
    """Case-insensitive substring match on designator or MPN."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(components)
    return [
        c for c in components
        if needle in c.designator.lower() or needle in c.mpn.lower()
    ]


def format_defect_type(defect_type: str) -> str:
    """``solder_bridge`` -> ``Solder Bridge``."""
    words = (defect_type or "").replace("_", " ").split(" ")
    return " ".join(w[:1].upper() + w[1:] for w in words)


@dataclass(frozen=True)
class ExplorerView:
    issues: List[Component]
    ok: List[Component]
    defects: Sequence[Defect]


def explore(analysis: PcbAnalysis, board_voltage: Optional[float] = None,
            search: str = "", component_filter: str = FILTER_ALL) -> ExplorerView:
    """Search then filter the component lists the way the explorer tab shows them."""
    if component_filter not in EXPLORER_FILTERS:
        raise ValueError(f"Unknown component filter: {component_filter}")

    matched = search_components(analysis.components, search)
    issues, ok = partition_components(matched, board_voltage)
    if component_filter == FILTER_ISSUES:
        ok = []
    elif component_filter == FILTER_OK:
        issues = []
    return ExplorerView(issues=issues, ok=ok, defects=analysis.defects)


@dataclass(frozen=True)
class SummaryStats:
    total_components: int
    issue_count: int
    defect_count: int
    repair_cost: Optional[float]


def summary_stats(analysis: PcbAnalysis, board_voltage: Optional[float] = None) -> SummaryStats:
    issues, _ = partition_components(analysis.components, board_voltage)
    return SummaryStats(
        total_components=len(analysis.components),
        issue_count=len(issues),
        defect_count=len(analysis.defects),
        repair_cost=analysis.advice.repair_cost,
    )

"""Domain entities (data-only structures) used across services.

Field names follow Python conventions; ``from_dict``/``to_dict`` translate to
and from the camelCase keys used on the wire by the analysis model.
"""
from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple, Dict, Any, Union

PRESENCE_VALUES = ("missing", "ok")
CONDITION_VALUES = ("burnt", "corroded", "ok")

_EPS = 1e-6


def _opt_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _float(value: Any, default: float = 0.0) -> float:
    result = _opt_float(value)
    return default if result is None else result


def _text(value: Any, default: str = "") -> str:
    return default if value is None else str(value)


def _items(value: Any) -> list:
    """List-valued wire field; anything else reads as empty."""
    return list(value) if isinstance(value, (list, tuple)) else []


def _records(value: Any) -> list:
    """Object entries of a list-valued wire field; other entries are skipped."""
    return [item for item in _items(value) if isinstance(item, dict)]


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Rectangle normalized to the image size, top-left origin."""
    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> BoundingBox:
        if not isinstance(data, dict):
            data = {}
        return cls(
            x=_float(data.get("x")),
            y=_float(data.get("y")),
            w=_float(data.get("w")),
            h=_float(data.get("h")),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}

    def is_well_formed(self) -> bool:
        """True when the box has positive area and lies inside the unit square."""
        return (
            self.w > 0 and self.h > 0
            and self.x >= -_EPS and self.y >= -_EPS
            and self.x + self.w <= 1 + _EPS
            and self.y + self.h <= 1 + _EPS
        )

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.x + self.w and self.y <= py <= self.y + self.h

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.w / 2.0, self.y + self.h / 2.0)


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Point:
        return cls(x=float(data["x"]), y=float(data["y"]))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True, slots=True)
class Component:
    designator: str
    mpn: str
    bbox: BoundingBox
    presence: str
    condition: str
    confidence: float
    temperature: Optional[float] = None  # Celsius
    max_voltage: Optional[float] = None  # Volts
    datasheet_url: Optional[str] = None

    @property
    def identity(self) -> str:
        return self.designator

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Component:
        return cls(
            designator=_text(data.get("designator")),
            mpn=_text(data.get("mpn")),
            bbox=BoundingBox.from_dict(data.get("bbox")),
            presence=_text(data.get("presence"), "ok"),
            condition=_text(data.get("condition"), "ok"),
            confidence=_float(data.get("confidence")),
            temperature=_opt_float(data.get("temperature")),
            max_voltage=_opt_float(data.get("maxVoltage")),
            datasheet_url=_text(data.get("datasheetUrl")) or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "designator": self.designator,
            "mpn": self.mpn,
            "bbox": self.bbox.to_dict(),
            "presence": self.presence,
            "condition": self.condition,
            "confidence": self.confidence,
        }
        if self.temperature is not None:
            d["temperature"] = self.temperature
        if self.max_voltage is not None:
            d["maxVoltage"] = self.max_voltage
        if self.datasheet_url is not None:
            d["datasheetUrl"] = self.datasheet_url
        return d


@dataclass(frozen=True, slots=True)
class Defect:
    id: str
    type: str  # open label, e.g. solder_bridge, misalignment, overheating
    bbox: BoundingBox
    confidence: float
    description: Optional[str] = None

    @property
    def identity(self) -> str:
        return self.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Defect:
        return cls(
            id=_text(data.get("id")),
            type=_text(data.get("type")),
            bbox=BoundingBox.from_dict(data.get("bbox")),
            confidence=_float(data.get("confidence")),
            description=_text(data.get("description")) or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "bbox": self.bbox.to_dict(),
            "confidence": self.confidence,
        }
        if self.description is not None:
            d["description"] = self.description
        return d


@dataclass(frozen=True, slots=True)
class Replacement:
    mpn: str
    reason: str


@dataclass(frozen=True, slots=True)
class Alternative:
    original_mpn: str
    replacements: Tuple[Replacement, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Alternative:
        return cls(
            original_mpn=_text(data.get("original_mpn")),
            replacements=tuple(
                Replacement(mpn=_text(r.get("mpn")), reason=_text(r.get("reason")))
                for r in _records(data.get("replacements"))
            ),
        )


@dataclass(frozen=True, slots=True)
class Advice:
    quick_actions: Tuple[str, ...] = ()
    alternatives: Tuple[Alternative, ...] = ()
    next_steps: Tuple[str, ...] = ()
    repair_cost: Optional[float] = None  # USD

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Advice:
        if not isinstance(data, dict):
            data = {}
        return cls(
            quick_actions=tuple(str(a) for a in _items(data.get("quick_actions")) if a is not None),
            alternatives=tuple(Alternative.from_dict(a) for a in _records(data.get("alternatives"))),
            next_steps=tuple(str(s) for s in _items(data.get("next_steps")) if s is not None),
            repair_cost=_opt_float(data.get("repair_cost")),
        )

    def alternatives_for(self, mpn: str) -> Optional[Alternative]:
        if not mpn:
            return None
        for alt in self.alternatives:
            if alt.original_mpn == mpn:
                return alt
        return None


@dataclass(frozen=True, slots=True)
class PcbAnalysis:
    """Aggregate root for one inspected board.

    ``raw`` keeps the parsed reply exactly as the model returned it.
    """
    components: Tuple[Component, ...]
    defects: Tuple[Defect, ...]
    summary: str = ""
    advice: Advice = field(default_factory=Advice)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PcbAnalysis:
        """Build from a parsed reply.

        Records that are not objects are skipped and unreadable numbers fall
        back to their defaults; the reply as a whole is never rejected here.
        """
        return cls(
            components=tuple(Component.from_dict(c) for c in _records(data.get("components"))),
            defects=tuple(Defect.from_dict(d) for d in _records(data.get("defects"))),
            summary=_text(data.get("summary")),
            advice=Advice.from_dict(data.get("advice")),
            raw=data,
        )

    def find_component(self, designator: Optional[str]) -> Optional[Component]:
        if designator is None:
            return None
        return next((c for c in self.components if c.designator == designator), None)

    def find_defect(self, defect_id: Optional[str]) -> Optional[Defect]:
        if defect_id is None:
            return None
        return next((d for d in self.defects if d.id == defect_id), None)

    def find_item(self, item_id: Optional[str]):
        """Component or defect with the given identity key, components first."""
        return self.find_component(item_id) or self.find_defect(item_id)


@dataclass(frozen=True, slots=True)
class JumperSuggestion:
    from_point: Point
    to_point: Point

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> JumperSuggestion:
        return cls(from_point=Point.from_dict(data["from"]), to_point=Point.from_dict(data["to"]))

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {"from": self.from_point.to_dict(), "to": self.to_point.to_dict()}


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: str  # user|model
    text: str
    jumper_suggestion: Optional[JumperSuggestion] = None

    @property
    def is_user(self) -> bool:
        return self.role == "user"


@dataclass(frozen=True, slots=True)
class ImageInput:
    """An uploaded image as sent to the analysis model."""
    data: bytes = field(repr=False)
    mime_type: str
    name: Optional[str] = None


AnalysisItem = Union[Component, Defect]

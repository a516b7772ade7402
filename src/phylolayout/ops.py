"""Abstract drawing program handed to an external renderer."""
from __future__ import annotations

import dataclasses
from typing import Any, Dict, Optional, Tuple

Point = Tuple[float, float]


@dataclasses.dataclass(frozen=True)
class LineOp:
    p1: Point
    p2: Point
    width: float
    color: str = "black"
    dash: Optional[str] = None
    cap: str = "butt"

    def mapped(self, transform) -> "LineOp":
        return dataclasses.replace(self, p1=transform(self.p1), p2=transform(self.p2))


@dataclasses.dataclass(frozen=True)
class TextOp:
    """Positioned label box.

    ``position`` is the top-left corner of the box in the label's own frame;
    the box is ``width`` wide and ``height`` tall with the baseline ``baseline``
    below the top edge. ``rotation`` (degrees, clockwise on a y-down canvas)
    turns the box about ``position``.
    """

    text: str
    position: Point
    size: float
    width: float
    height: float
    baseline: float
    color: str = "black"
    italic: bool = False
    family: str = "sans-serif"
    rotation: float = 0.0

    def mapped(self, transform, rotation_delta: float = 0.0) -> "TextOp":
        return dataclasses.replace(
            self,
            position=transform(self.position),
            rotation=_normalize_angle(self.rotation + rotation_delta),
        )


@dataclasses.dataclass(frozen=True)
class DrawingProgram:
    branches: Tuple[LineOp, ...]
    labels: Tuple[TextOp, ...]
    width: float
    height: float

    def rotated(self) -> "DrawingProgram":
        """Turn the drawing by -90 degrees, keeping it inside the positive quadrant.

        The pre-rotation width becomes the height of the result.
        """
        pre_width = self.width

        def transform(point: Point) -> Point:
            x, y = point
            return (y, pre_width - x)

        return DrawingProgram(
            branches=tuple(op.mapped(transform) for op in self.branches),
            labels=tuple(op.mapped(transform, -90.0) for op in self.labels),
            width=self.height,
            height=self.width,
        )

    def to_dict(self, digits: int = 3) -> Dict[str, Any]:
        return {
            "width": _serialize_number(self.width, digits),
            "height": _serialize_number(self.height, digits),
            "branches": [_op_to_dict("line", op, digits) for op in self.branches],
            "labels": [_op_to_dict("text", op, digits) for op in self.labels],
        }


def _op_to_dict(kind: str, op: Any, digits: int) -> Dict[str, Any]:
    data: Dict[str, Any] = {"type": kind}
    for field in dataclasses.fields(op):
        value = getattr(op, field.name)
        if isinstance(value, tuple):
            value = [_serialize_number(part, digits) for part in value]
        else:
            value = _serialize_number(value, digits)
        data[field.name] = value
    return data


def _serialize_number(value: Any, digits: int) -> Any:
    if isinstance(value, float):
        rounded = round(value, digits)
        # avoid "-0.0" in JSON output
        return 0.0 if rounded == 0 else rounded
    return value


def _normalize_angle(angle: float) -> float:
    angle = angle % 360.0
    if angle > 180.0:
        angle -= 360.0
    return angle

"""Reference SVG renderer for drawing programs."""
from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from typing import Optional

from .ops import DrawingProgram, LineOp, TextOp

SVG_NS = "http://www.w3.org/2000/svg"
ET.register_namespace("", SVG_NS)


def _q(tag: str) -> str:
    return f"{{{SVG_NS}}}{tag}"


def to_svg(program: DrawingProgram, *, background: Optional[str] = None) -> str:
    """Serialize a drawing program as a standalone SVG document."""
    width = _fmt(program.width)
    height = _fmt(program.height)
    svg_root = ET.Element(
        _q("svg"),
        {"width": width, "height": height, "viewBox": f"0 0 {width} {height}"},
    )
    if background and background.lower() not in {"none", "transparent"}:
        ET.SubElement(
            svg_root,
            _q("rect"),
            {"x": "0", "y": "0", "width": width, "height": height, "fill": background},
        )
    branches = ET.SubElement(svg_root, _q("g"), {"class": "branches", "fill": "none"})
    for op in program.branches:
        branches.append(_line_element(op))
    labels = ET.SubElement(svg_root, _q("g"), {"class": "labels"})
    for op in program.labels:
        labels.append(_text_element(op))
    return _pretty_xml(svg_root)


def _line_element(op: LineOp) -> ET.Element:
    attrs = {
        "x1": _fmt(op.p1[0]),
        "y1": _fmt(op.p1[1]),
        "x2": _fmt(op.p2[0]),
        "y2": _fmt(op.p2[1]),
        "stroke": op.color,
        "stroke-width": _fmt(op.width),
    }
    if op.cap != "butt":
        attrs["stroke-linecap"] = op.cap
    if op.dash:
        attrs["stroke-dasharray"] = op.dash
    return ET.Element(_q("line"), attrs)


def _text_element(op: TextOp) -> ET.Element:
    x, y = op.position
    attrs = {
        "x": _fmt(x),
        "y": _fmt(y + op.baseline),
        "font-size": _fmt(op.size),
        "font-family": op.family,
        "fill": op.color,
    }
    if op.italic:
        attrs["font-style"] = "italic"
    if op.rotation:
        attrs["transform"] = f"rotate({_fmt(op.rotation)} {_fmt(x)} {_fmt(y)})"
    elem = ET.Element(_q("text"), attrs)
    elem.text = op.text
    return elem


def _pretty_xml(element: ET.Element) -> str:
    ET.indent(element, space="  ")
    return ET.tostring(element, encoding="unicode")


def _fmt(value: float) -> str:
    if math.isclose(value, round(value), abs_tol=1e-9):
        return str(int(round(value)))
    return f"{value:.3f}".rstrip("0").rstrip(".")

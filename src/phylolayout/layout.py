"""Phylogenetic tree layout: measure, reserve margins, resolve size, draw."""
from __future__ import annotations

import dataclasses
import logging
import math
import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, List, Mapping, Optional, Tuple, Union

from .errors import ConfigurationError, LayoutInfeasibleError
from .metrics import PillowTextMetrics, TextMetrics, TextStyle
from .ops import DrawingProgram, LineOp, TextOp
from .scale import (
    ScaleStyle,
    axis_row_height,
    check_scale_length,
    draw_axis,
    draw_scale_bar,
    resolve_scale_bar,
    scale_row_height,
)
from .tree import TreeNode, tree_from_mapping, validate_tree

logger = logging.getLogger(__name__)

EPSILON = 1e-6
LABEL_GAP = 4.0
TIP_LABEL_OFFSET = LABEL_GAP
INTERNAL_LABEL_GAP = 2.0
DEFAULT_WIDTH = 400.0
AUTO_HEIGHT_FACTOR = 1.25
ROOT_DASH = "1 2"
ORIENTATIONS = ("horizontal", "vertical")

Extent = Union[float, str, Fraction]

_LENGTH_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*(pt|px)?\s*$")
_PERCENT_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*%\s*$")

_TEXT_METRICS = PillowTextMetrics()


@dataclass(frozen=True)
class TreeOptions:
    width: Extent = "100%"
    height: Extent = "auto"
    available_width: float = math.inf
    stroke_width: float = 1.0
    stroke_color: str = "black"
    tip_label_size: float = 10.0
    tip_label_color: str = "black"
    tip_label_italic: bool = False
    internal_label_size: float = 8.0
    internal_label_color: str = "#555555"
    internal_label_italic: bool = False
    font_family: str = "sans-serif"
    root_length: float = 10.0
    orientation: str = "horizontal"
    cladogram: bool = False
    scale_bar: bool = False
    scale_length: Union[float, str] = "auto"
    scale_unit: Optional[str] = None
    scale_gap: float = 8.0
    scale_tick: float = 3.0
    scale_label_size: float = 8.0
    axis: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TreeOptions":
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"options must be an object, got {type(data).__name__}")
        known = {f.name for f in dataclasses.fields(cls)}
        values = {}
        for key, value in data.items():
            name = str(key).replace("-", "_")
            if name not in known:
                raise ConfigurationError(f'unknown option "{key}"')
            values[name] = value
        return cls(**values)


@dataclass(frozen=True)
class LayoutStyle:
    stroke_width: float
    stroke_color: str
    tip_label_size: float
    tip_label_color: str
    tip_label_italic: bool
    internal_label_size: float
    internal_label_color: str
    internal_label_italic: bool
    font_family: str
    root_length: float
    orientation: str
    label_y_offset: float
    is_root: bool
    is_vertical: bool

    @property
    def tip_text_style(self) -> TextStyle:
        return TextStyle(family=self.font_family, italic=self.tip_label_italic)

    @property
    def internal_text_style(self) -> TextStyle:
        return TextStyle(family=self.font_family, italic=self.internal_label_italic)


@dataclass(frozen=True)
class MeasuredNode:
    name: Optional[str]
    x_len: float
    y_local: float
    height: float
    depth: float
    is_leaf: bool
    children: Tuple[Tuple["MeasuredNode", float], ...] = ()


@dataclass(frozen=True)
class Margins:
    root: float
    tip: float
    y_start: float
    y_end: float = 0.0


@dataclass(frozen=True)
class LayoutResolution:
    width: float
    height: float
    pre_width: float
    pre_height: float
    drawable_depth: float
    drawable_spread: float


def check_options(options: TreeOptions) -> None:
    if options.orientation not in ORIENTATIONS:
        raise ConfigurationError(
            f'orientation must be one of {", ".join(ORIENTATIONS)}, got {options.orientation!r}'
        )
    for name in ("stroke_width", "tip_label_size", "internal_label_size", "scale_label_size"):
        _check_number(options, name, positive=True)
    for name in ("root_length", "scale_gap", "scale_tick"):
        _check_number(options, name, positive=False)
    for name in ("stroke_color", "tip_label_color", "internal_label_color", "font_family"):
        value = getattr(options, name)
        if not isinstance(value, str) or not value.strip():
            raise ConfigurationError(f"{name} must be a non-empty string, got {value!r}")
    for name in ("tip_label_italic", "internal_label_italic", "cladogram", "scale_bar", "axis"):
        if not isinstance(getattr(options, name), bool):
            raise ConfigurationError(f"{name} must be a boolean, got {getattr(options, name)!r}")
    if options.scale_unit is not None and not isinstance(options.scale_unit, str):
        raise ConfigurationError(f"scale_unit must be a string, got {options.scale_unit!r}")
    available = options.available_width
    if isinstance(available, bool) or not isinstance(available, (int, float)) or not available > 0:
        raise ConfigurationError(f"available_width must be positive, got {available!r}")

    if options.cladogram and options.scale_bar:
        raise ConfigurationError(
            "cladogram and scale_bar are mutually exclusive: a cladogram has no branch-length unit"
        )
    if options.cladogram and options.axis:
        raise ConfigurationError(
            "cladogram and axis are mutually exclusive: a cladogram has no branch-length unit"
        )
    if options.scale_bar and options.axis:
        raise ConfigurationError("scale_bar and axis are mutually exclusive; choose one")
    if options.scale_length != "auto":
        check_scale_length(options.scale_length)
    _parse_width(options.width)
    _parse_height(options.height)


def _check_number(options: TreeOptions, name: str, *, positive: bool) -> None:
    value = getattr(options, name)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ConfigurationError(f"{name} must be a finite number, got {value!r}")
    if positive and value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value!r}")
    if not positive and value < 0:
        raise ConfigurationError(f"{name} must be >= 0, got {value!r}")


def build_style(options: TreeOptions, rooted: bool, metrics: TextMetrics) -> LayoutStyle:
    tip_style = TextStyle(family=options.font_family, italic=options.tip_label_italic)
    # labels hang on the branch by the centre of their x-height band
    label_y_offset = metrics.x_height(options.tip_label_size, tip_style) / 2
    return LayoutStyle(
        stroke_width=float(options.stroke_width),
        stroke_color=options.stroke_color,
        tip_label_size=float(options.tip_label_size),
        tip_label_color=options.tip_label_color,
        tip_label_italic=options.tip_label_italic,
        internal_label_size=float(options.internal_label_size),
        internal_label_color=options.internal_label_color,
        internal_label_italic=options.internal_label_italic,
        font_family=options.font_family,
        root_length=float(options.root_length),
        orientation=options.orientation,
        label_y_offset=label_y_offset,
        is_root=rooted,
        is_vertical=options.orientation == "vertical",
    )


def measure_tree(node: TreeNode, cladogram: bool = False, is_root: bool = True) -> MeasuredNode:
    """Compute tip-unit heights, vertical centres and branch-length depths.

    A parent is centred between its first and last child, not on the mean of
    all children, which keeps multifurcations visually balanced. Children are
    measured before their parent through an explicit pre-order list, so tree
    depth is not limited by the interpreter stack.
    """
    order: List[Tuple[TreeNode, bool, int]] = []
    stack: List[Tuple[TreeNode, bool, int]] = [(node, is_root, -1)]
    while stack:
        current, current_is_root, parent = stack.pop()
        order.append((current, current_is_root, parent))
        index = len(order) - 1
        for child in reversed(current.children):
            stack.append((child, False, index))

    collected: List[List[MeasuredNode]] = [[] for _ in order]
    for index in range(len(order) - 1, -1, -1):
        current, current_is_root, parent = order[index]
        measured = _measure_node(current, cladogram, current_is_root, collected[index][::-1])
        collected[index] = []
        if parent >= 0:
            collected[parent].append(measured)
    return measured


def _measure_node(
    node: TreeNode, cladogram: bool, is_root: bool, children: List[MeasuredNode]
) -> MeasuredNode:
    x_len = _branch_length(node, cladogram, is_root)
    if node.is_leaf:
        return MeasuredNode(
            name=node.name, x_len=x_len, y_local=0.5, height=1.0, depth=x_len, is_leaf=True
        )

    current_y = 0.0
    pairs: List[Tuple[MeasuredNode, float]] = []
    for measured in children:
        pairs.append((measured, current_y))
        current_y += measured.height

    first, first_offset = pairs[0]
    last, last_offset = pairs[-1]
    y_local = ((first_offset + first.y_local) + (last_offset + last.y_local)) / 2
    depth = max(child.depth for child, _ in pairs) + x_len
    return MeasuredNode(
        name=node.name,
        x_len=x_len,
        y_local=y_local,
        height=current_y,
        depth=depth,
        is_leaf=False,
        children=tuple(pairs),
    )


def _branch_length(node: TreeNode, cladogram: bool, is_root: bool) -> float:
    if is_root:
        return 0.0
    if cladogram:
        return 1.0
    if node.length is not None:
        return node.length
    return 1.0 if node.is_leaf else 0.0


def longest_tip_label(tree: TreeNode, style: LayoutStyle, metrics: TextMetrics) -> Tuple[float, float]:
    width = 0.0
    height = 0.0
    for leaf in tree.leaves():
        if not leaf.name:
            continue
        w, h = metrics.measure(leaf.name, style.tip_label_size, style.tip_text_style)
        width = max(width, w)
        height = max(height, h)
    return width, height


def compute_margins(
    style: LayoutStyle,
    tip_label_width: float,
    tip_label_height: float,
    root_label: Optional[str],
    metrics: TextMetrics,
    y_end: float = 0.0,
) -> Margins:
    tip = tip_label_width + LABEL_GAP
    rooted_length = style.root_length if style.is_root else 0.0
    if root_label:
        w, h = metrics.measure(root_label, style.internal_label_size, style.internal_text_style)
        # vertical trees are drawn horizontally and turned, so the label stands on its side
        extent = h if style.is_vertical else w
        root = extent + LABEL_GAP + rooted_length
    else:
        root = rooted_length
    y_start = tip_label_height if style.is_vertical else 0.0
    return Margins(root=root, tip=tip, y_start=y_start, y_end=y_end)


def resolve_layout(
    width: Extent,
    height: Extent,
    margins: Margins,
    tip_count: float,
    is_vertical: bool,
    *,
    available_width: float = math.inf,
    em: float = 10.0,
) -> LayoutResolution:
    resolved_width = _resolve_width(width, available_width)
    resolved_height = _resolve_height(height, tip_count, em)
    if is_vertical:
        pre_width, pre_height = resolved_height, resolved_width
        depth_name, spread_name = "height", "width"
    else:
        pre_width, pre_height = resolved_width, resolved_height
        depth_name, spread_name = "width", "height"

    depth_needed = margins.root + margins.tip
    if pre_width <= depth_needed:
        raise LayoutInfeasibleError(
            f"{depth_name} too small: the root ({_num(margins.root)}) and tip label "
            f"({_num(margins.tip)}) margins need more than {_num(depth_needed)} but only "
            f"{_num(pre_width)} is available (short by {_num(depth_needed - pre_width)}); "
            f"increase the {depth_name}, reduce the tip label size, or reduce the root length"
        )
    spread_needed = margins.y_start + margins.y_end
    if pre_height <= spread_needed:
        raise LayoutInfeasibleError(
            f"{spread_name} too small: the label and scale margins need more than "
            f"{_num(spread_needed)} but only {_num(pre_height)} is available "
            f"(short by {_num(spread_needed - pre_height)}); increase the {spread_name} "
            f"or reduce the label size"
        )
    resolution = LayoutResolution(
        width=resolved_width,
        height=resolved_height,
        pre_width=pre_width,
        pre_height=pre_height,
        drawable_depth=pre_width - depth_needed,
        drawable_spread=pre_height - spread_needed,
    )
    logger.debug("resolved layout %s", resolution)
    return resolution


def _parse_width(width: Extent) -> Tuple[str, float]:
    if isinstance(width, Fraction):
        if width <= 0:
            raise ConfigurationError(f"width fraction must be positive, got {width}")
        return "fraction", float(width)
    if isinstance(width, str):
        match = _PERCENT_RE.match(width)
        if match:
            fraction = float(match.group(1)) / 100.0
            if fraction <= 0:
                raise ConfigurationError(f"width percentage must be positive, got {width!r}")
            return "fraction", fraction
    return "absolute", _parse_absolute("width", width)


def _parse_height(height: Extent) -> Optional[float]:
    if isinstance(height, str) and height.strip().lower() == "auto":
        return None
    return _parse_absolute("height", height)


def _parse_absolute(name: str, value: Any) -> float:
    if isinstance(value, str):
        match = _LENGTH_RE.match(value)
        if not match:
            raise ConfigurationError(f"{name} must be a length like 300, '300pt' or '80%', got {value!r}")
        number = float(match.group(1))
    elif isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be a number, got {type(value).__name__}")
    else:
        number = float(value)
    if not math.isfinite(number) or number <= 0:
        raise ConfigurationError(f"{name} must be a positive finite length, got {value!r}")
    return number


def _resolve_width(width: Extent, available_width: float) -> float:
    kind, value = _parse_width(width)
    if kind == "absolute":
        return value
    if math.isinf(available_width):
        return DEFAULT_WIDTH
    return value * available_width


def _resolve_height(height: Extent, tip_count: float, em: float) -> float:
    value = _parse_height(height)
    if value is None:
        return AUTO_HEIGHT_FACTOR * tip_count * em
    return value


def draw_node(
    node: MeasuredNode,
    x_offset: float,
    y_offset: float,
    x_scale: float,
    y_scale: float,
    style: LayoutStyle,
    metrics: TextMetrics,
    is_root: bool = True,
) -> Tuple[List[LineOp], List[TextOp]]:
    """Emit branches and labels for a subtree in pre-order.

    An internal node's own label follows the labels of its whole subtree.
    """
    branches: List[LineOp] = []
    labels: List[TextOp] = []
    # pending work: a node to draw, or an internal label whose subtree is done
    stack: List[Tuple[MeasuredNode, float, float, bool, bool]] = [
        (node, x_offset, y_offset, is_root, False)
    ]
    while stack:
        current, cur_x, cur_y, current_is_root, label_only = stack.pop()
        if label_only:
            labels.append(_internal_label(current.name, cur_x, cur_y, style, metrics))
            continue

        my_x = cur_x + current.x_len * x_scale
        my_y = cur_y + current.y_local * y_scale
        if not current_is_root and current.x_len > 0:
            branches.append(_branch(style, (cur_x, my_y), (my_x, my_y)))
        if current_is_root and style.is_root and not current.is_leaf:
            branches.append(
                _branch(style, (my_x - style.root_length, my_y), (my_x, my_y), dash=ROOT_DASH)
            )

        if current.is_leaf:
            if current.name:
                labels.append(
                    _label(
                        current.name,
                        (my_x + TIP_LABEL_OFFSET, my_y - style.label_y_offset),
                        style.tip_label_size,
                        style.tip_label_color,
                        style.tip_text_style,
                        metrics,
                    )
                )
            continue

        first, first_offset = current.children[0]
        last, last_offset = current.children[-1]
        top = cur_y + (first_offset + first.y_local) * y_scale
        bottom = cur_y + (last_offset + last.y_local) * y_scale
        if bottom > top:
            branches.append(_branch(style, (my_x, top), (my_x, bottom)))

        if current.name and not current_is_root:
            stack.append((current, my_x, my_y, False, True))
        for child, offset in reversed(current.children):
            stack.append((child, my_x, cur_y + offset * y_scale, False, False))
    return branches, labels


def _internal_label(
    name: str, my_x: float, my_y: float, style: LayoutStyle, metrics: TextMetrics
) -> TextOp:
    text_style = style.internal_text_style
    width, _ = metrics.measure(name, style.internal_label_size, text_style)
    x_height = metrics.x_height(style.internal_label_size, text_style)
    clearance = style.stroke_width / 2 + INTERNAL_LABEL_GAP
    if style.is_vertical:
        # reads horizontally once the whole drawing is turned by -90 degrees
        position = (my_x - INTERNAL_LABEL_GAP, my_y + clearance)
        rotation = 90.0
    else:
        position = (my_x - INTERNAL_LABEL_GAP - width, my_y - clearance - x_height)
        rotation = 0.0
    return TextOp(
        text=name,
        position=position,
        size=style.internal_label_size,
        width=width,
        height=x_height,
        baseline=x_height,
        color=style.internal_label_color,
        italic=style.internal_label_italic,
        family=style.font_family,
        rotation=rotation,
    )


def _root_label(
    name: str, root_x: float, root_y: float, style: LayoutStyle, metrics: TextMetrics
) -> TextOp:
    text_style = style.internal_text_style
    width, _ = metrics.measure(name, style.internal_label_size, text_style)
    x_height = metrics.x_height(style.internal_label_size, text_style)
    right = root_x - (style.root_length if style.is_root else 0.0) - LABEL_GAP
    if style.is_vertical:
        position = (right, root_y - width / 2)
        rotation = 90.0
    else:
        position = (right - width, root_y - x_height / 2)
        rotation = 0.0
    return TextOp(
        text=name,
        position=position,
        size=style.internal_label_size,
        width=width,
        height=x_height,
        baseline=x_height,
        color=style.internal_label_color,
        italic=style.internal_label_italic,
        family=style.font_family,
        rotation=rotation,
    )


def _label(
    text: str,
    position: Tuple[float, float],
    size: float,
    color: str,
    text_style: TextStyle,
    metrics: TextMetrics,
) -> TextOp:
    width, _ = metrics.measure(text, size, text_style)
    x_height = metrics.x_height(size, text_style)
    return TextOp(
        text=text,
        position=position,
        size=size,
        width=width,
        height=x_height,
        baseline=x_height,
        color=color,
        italic=text_style.italic,
        family=text_style.family,
    )


def _branch(
    style: LayoutStyle,
    p1: Tuple[float, float],
    p2: Tuple[float, float],
    dash: Optional[str] = None,
) -> LineOp:
    return LineOp(p1, p2, style.stroke_width, style.stroke_color, dash=dash)


def layout_tree(
    tree: Union[TreeNode, Mapping[str, Any]],
    options: Optional[TreeOptions] = None,
    *,
    metrics: Optional[TextMetrics] = None,
    **overrides: Any,
) -> DrawingProgram:
    """Lay out a parsed tree and return the drawing program for a renderer."""
    if isinstance(tree, TreeNode):
        validate_tree(tree)
    else:
        tree = tree_from_mapping(tree)
    options = options or TreeOptions()
    if overrides:
        try:
            options = dataclasses.replace(options, **overrides)
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from exc
    check_options(options)
    metrics = metrics or _TEXT_METRICS

    # a lone leaf has no root branch to stub, whatever its rooted flag says
    style = build_style(options, tree.is_rooted() and not tree.is_leaf, metrics)
    measured = measure_tree(tree, options.cladogram)
    logger.debug(
        "measured tree: %s tips, depth %s, rooted=%s", measured.height, measured.depth, style.is_root
    )

    scale_style = ScaleStyle(
        stroke_width=style.stroke_width,
        color=style.stroke_color,
        tick=float(options.scale_tick),
        label_size=float(options.scale_label_size),
        label_color=style.tip_label_color,
        family=style.font_family,
        unit=options.scale_unit,
    )
    y_end = 0.0
    if options.scale_bar:
        y_end = options.scale_gap + scale_row_height(scale_style, metrics)
    elif options.axis:
        y_end = options.scale_gap + axis_row_height(scale_style, metrics)

    tip_width, tip_height = longest_tip_label(tree, style, metrics)
    root_label = tree.name if not tree.is_leaf else None
    margins = compute_margins(style, tip_width, tip_height, root_label, metrics, y_end=y_end)
    logger.debug("margins %s", margins)
    resolution = resolve_layout(
        options.width,
        options.height,
        margins,
        measured.height,
        style.is_vertical,
        available_width=options.available_width,
        em=style.tip_label_size,
    )

    x_scale = resolution.drawable_depth / max(EPSILON, measured.depth)
    y_scale = resolution.drawable_spread / max(EPSILON, measured.height)
    branches, labels = draw_node(
        measured, margins.root, margins.y_start, x_scale, y_scale, style, metrics
    )
    root_x = margins.root
    if root_label:
        root_y = margins.y_start + measured.y_local * y_scale
        labels.append(_root_label(root_label, root_x, root_y, style, metrics))

    row_y = margins.y_start + resolution.drawable_spread + options.scale_gap
    if options.scale_bar:
        bar = resolve_scale_bar(
            options.scale_length, measured.depth, x_scale, resolution.pre_width - root_x
        )
        bar_lines, bar_labels = draw_scale_bar(
            bar, root_x, row_y, scale_style, metrics, row_width=resolution.pre_width
        )
        branches.extend(bar_lines)
        labels.extend(bar_labels)
    elif options.axis:
        axis_lines, axis_labels = draw_axis(
            0.0,
            measured.depth,
            root_x,
            row_y,
            resolution.drawable_depth,
            scale_style,
            metrics,
            row_width=resolution.pre_width,
        )
        branches.extend(axis_lines)
        labels.extend(axis_labels)

    program = DrawingProgram(
        branches=tuple(branches),
        labels=tuple(labels),
        width=resolution.pre_width,
        height=resolution.pre_height,
    )
    if style.is_vertical:
        program = program.rotated()
    return program


def _num(value: float) -> str:
    return f"{value:.4g}"

"""Scale-bar selection and scale-bar/axis drawing."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from .errors import ConfigurationError, LayoutInfeasibleError
from .metrics import TextMetrics, TextStyle
from .ops import LineOp, TextOp

logger = logging.getLogger(__name__)

NICE_STEPS = (1.0, 2.5, 5.0, 7.5, 10.0)
SCALE_TOLERANCE = 0.01
LABEL_GAP = 2.0
MAX_AXIS_TICKS = 1000
AXIS_TICK_TARGET = 5
_REL_EPS = 1e-9

ScaleLength = Union[float, str]


@dataclass(frozen=True)
class ScaleBar:
    length: float
    width: float


@dataclass(frozen=True)
class ScaleStyle:
    stroke_width: float = 1.0
    color: str = "black"
    tick: float = 3.0
    label_size: float = 8.0
    label_color: str = "black"
    family: str = "sans-serif"
    unit: Optional[str] = None

    @property
    def text_style(self) -> TextStyle:
        return TextStyle(family=self.family)


def round_scale(target: float) -> float:
    """Smallest value of the form {1, 2.5, 5, 7.5, 10} x 10^n that is >= target."""
    if not math.isfinite(target) or target <= 0:
        return 0.0
    exponent, scaled = _decompose(target)
    for step in NICE_STEPS:
        if step >= scaled * (1 - _REL_EPS):
            return _apply_exponent(step, exponent)
    return _apply_exponent(NICE_STEPS[-1], exponent)


def floor_scale(target: float) -> float:
    """Largest value of the form {1, 2.5, 5, 7.5, 10} x 10^n that is <= target."""
    if not math.isfinite(target) or target <= 0:
        return 0.0
    exponent, scaled = _decompose(target)
    for step in reversed(NICE_STEPS):
        if step <= scaled * (1 + _REL_EPS):
            return _apply_exponent(step, exponent)
    return _apply_exponent(NICE_STEPS[0], exponent)


def _decompose(target: float) -> Tuple[int, float]:
    exponent = math.floor(math.log10(target))
    scaled = target / _apply_exponent(1.0, exponent)
    # log10 can land one decade off for exact powers of ten
    if scaled >= 10.0:
        exponent += 1
        scaled /= 10.0
    elif scaled < 1.0:
        exponent -= 1
        scaled *= 10.0
    return exponent, scaled


def _apply_exponent(mantissa: float, exponent: int) -> float:
    if exponent >= 0:
        return mantissa * 10.0 ** exponent
    return mantissa / 10.0 ** (-exponent)


def resolve_scale_bar(
    requested: ScaleLength, max_depth: float, x_scale: float, max_width: float
) -> ScaleBar:
    if max_depth <= 0:
        raise LayoutInfeasibleError(
            "cannot draw a scale bar for a tree with zero depth; "
            "give the tree branch lengths or disable the scale bar"
        )
    if max_width <= 0 or x_scale <= 0:
        raise LayoutInfeasibleError(
            f"no horizontal space available for the scale bar (available width {_num(max_width)})"
        )
    max_length = max_width / x_scale

    if requested != "auto":
        length = check_scale_length(requested)
        if length - max_length > SCALE_TOLERANCE:
            raise LayoutInfeasibleError(
                f"scale length {_num(length)} needs width {_num(length * x_scale)} "
                f"but only {_num(max_width)} is available; "
                f"use a scale length of at most {_num(max_length)} or increase the width"
            )
        return ScaleBar(length=length, width=length * x_scale)

    candidate = round_scale(max_depth / 10.0)
    if candidate * x_scale > max_width:
        logger.debug("scale candidate %s does not fit %s; flooring", candidate, max_width)
        candidate = floor_scale(max_length)
    if candidate <= 0:
        raise LayoutInfeasibleError(
            f"no positive scale length fits the available width {_num(max_width)}"
        )
    logger.debug("resolved scale bar length=%s width=%s", candidate, candidate * x_scale)
    return ScaleBar(length=candidate, width=candidate * x_scale)


def check_scale_length(value: ScaleLength) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f'scale length must be a positive number or "auto", got {value!r}')
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"scale length must be positive, got {value!r}")
    return float(value)


def format_scale_value(value: float, unit: Optional[str] = None) -> str:
    nearest = round(value)
    # positive lengths below one unit must never collapse to "0"
    if nearest != 0 and abs(value - nearest) < 1e-6:
        text = str(int(nearest))
    else:
        rounded = round(value, 2)
        if rounded == 0:
            # too small for two decimals; keep two significant digits instead
            text = f"{value:.2g}"
        else:
            text = f"{rounded:.2f}".rstrip("0").rstrip(".")
    if unit:
        return f"{text} {unit}"
    return text


def scale_row_height(style: ScaleStyle, metrics: TextMetrics) -> float:
    _, label_height = metrics.measure("0", style.label_size, style.text_style)
    return 2 * style.tick + LABEL_GAP + label_height


def axis_row_height(style: ScaleStyle, metrics: TextMetrics) -> float:
    _, label_height = metrics.measure("0", style.label_size, style.text_style)
    return style.tick + LABEL_GAP + label_height


def draw_scale_bar(
    bar: ScaleBar,
    x: float,
    y: float,
    style: ScaleStyle,
    metrics: TextMetrics,
    *,
    row_x: float = 0.0,
    row_width: Optional[float] = None,
) -> Tuple[List[LineOp], List[TextOp]]:
    """Bar starting at (x, y + tick), end ticks and a centred label below."""
    bar_y = y + style.tick
    x_end = x + bar.width
    lines = [
        LineOp((x, bar_y), (x_end, bar_y), style.stroke_width, style.color),
        LineOp((x, y), (x, y + 2 * style.tick), style.stroke_width, style.color),
        LineOp((x_end, y), (x_end, y + 2 * style.tick), style.stroke_width, style.color),
    ]
    text = format_scale_value(bar.length, style.unit)
    label_x = x + bar.width / 2
    label = _centered_label(
        text, label_x, y + 2 * style.tick + LABEL_GAP, style, metrics, row_x, row_width
    )
    return lines, [label]


def axis_ticks(start: float, end: float, step: Optional[float] = None) -> List[float]:
    if not (math.isfinite(start) and math.isfinite(end)):
        raise ConfigurationError(f"axis range must be finite, got [{start}, {end}]")
    if end < start:
        raise ConfigurationError(f"axis range is inverted: start {_num(start)} > end {_num(end)}")
    if end == start:
        return [start]
    if step is None:
        step = round_scale((end - start) / AXIS_TICK_TARGET)
    elif not math.isfinite(step) or step <= 0:
        raise ConfigurationError(f"axis step must be positive, got {step!r}")
    if (end - start) / step > MAX_AXIS_TICKS:
        raise ConfigurationError(
            f"axis step {_num(step)} yields more than {MAX_AXIS_TICKS} ticks over [{_num(start)}, {_num(end)}]"
        )
    first = math.ceil(start / step - _REL_EPS)
    ticks: List[float] = []
    k = first
    while k * step <= end + step * _REL_EPS:
        ticks.append(k * step)
        k += 1
    return ticks


def draw_axis(
    start: float,
    end: float,
    x: float,
    y: float,
    width: float,
    style: ScaleStyle,
    metrics: TextMetrics,
    *,
    step: Optional[float] = None,
    row_x: float = 0.0,
    row_width: Optional[float] = None,
) -> Tuple[List[LineOp], List[TextOp]]:
    """Axis line along [x, x + width] mapping [start, end], ticks hanging below."""
    ticks = axis_ticks(start, end, step)
    lines = [LineOp((x, y), (x + width, y), style.stroke_width, style.color)]
    labels: List[TextOp] = []
    if end == start:
        positions: Sequence[Tuple[float, float]] = [(x + width / 2, start)]
    else:
        positions = [(x + (value - start) / (end - start) * width, value) for value in ticks]
    for idx, (tick_x, value) in enumerate(positions):
        lines.append(LineOp((tick_x, y), (tick_x, y + style.tick), style.stroke_width, style.color))
        unit = style.unit if idx == len(positions) - 1 else None
        labels.append(
            _centered_label(
                format_scale_value(value, unit),
                tick_x,
                y + style.tick + LABEL_GAP,
                style,
                metrics,
                row_x,
                row_width,
            )
        )
    return lines, labels


def _centered_label(
    text: str,
    center_x: float,
    top: float,
    style: ScaleStyle,
    metrics: TextMetrics,
    row_x: float,
    row_width: Optional[float],
) -> TextOp:
    text_style = style.text_style
    width, _ = metrics.measure(text, style.label_size, text_style)
    x_height = metrics.x_height(style.label_size, text_style)
    left = center_x - width / 2
    if row_width is not None:
        left = min(left, row_x + row_width - width)
        left = max(left, row_x)
    return TextOp(
        text=text,
        position=(left, top),
        size=style.label_size,
        width=width,
        height=x_height,
        baseline=x_height,
        color=style.label_color,
        family=style.family,
    )


def _num(value: float) -> str:
    return f"{value:.4g}"

"""Text metrics providers consumed by the layout engine."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from PIL import ImageFont

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "sans-serif"
GENERIC_FONT_FALLBACKS = {
    "sans-serif": ["Helvetica", "Arial", "Liberation Sans", "DejaVu Sans"],
    "serif": ["Times New Roman", "Times", "Liberation Serif", "DejaVu Serif"],
    "monospace": [
        "Courier New",
        "Courier",
        "Liberation Mono",
        "DejaVu Sans Mono",
    ],
}
ITALIC_SUFFIXES = ("Italic", "Oblique")

# Typical proportions of Latin text faces, used when no font can be loaded.
HEURISTIC_ASCENT = 0.8
HEURISTIC_DESCENT = 0.2
HEURISTIC_X_HEIGHT = 0.5


@dataclass(frozen=True)
class TextStyle:
    family: str = DEFAULT_FONT_FAMILY
    italic: bool = False


class TextMetrics(Protocol):
    def measure(self, text: str, size: float, style: TextStyle) -> Tuple[float, float]:
        ...

    def x_height(self, size: float, style: TextStyle) -> float:
        ...


class HeuristicTextMetrics:
    """Deterministic, font-free metrics based on per-character advance guesses."""

    def measure(self, text: str, size: float, style: TextStyle) -> Tuple[float, float]:
        width = _heuristic_width(text, size)
        if style.italic:
            # slanted glyphs overhang the advance of the last character
            width += 0.1 * size if text else 0.0
        return width, (HEURISTIC_ASCENT + HEURISTIC_DESCENT) * size

    def x_height(self, size: float, style: TextStyle) -> float:
        return HEURISTIC_X_HEIGHT * size


class PillowTextMetrics:
    """Caches Pillow fonts and exposes width/height helpers."""

    FONT_DIRS = [
        Path("/System/Library/Fonts"),
        Path("/System/Library/Fonts/Supplemental"),
        Path("/Library/Fonts"),
        Path("~/Library/Fonts").expanduser(),
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        Path("C:/Windows/Fonts"),
    ]

    def __init__(self) -> None:
        self._font_cache: Dict[Tuple[str, bool, int], Optional[ImageFont.FreeTypeFont]] = {}
        self._font_paths: Dict[str, Optional[str]] = {}
        self._fallback = HeuristicTextMetrics()

    def font(self, size: float, style: TextStyle) -> Optional[ImageFont.FreeTypeFont]:
        key_size = max(1, int(round(size)))
        family = style.family or DEFAULT_FONT_FAMILY
        cache_key = (family.lower(), style.italic, key_size)
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        font: Optional[ImageFont.FreeTypeFont] = None
        for candidate in self._candidates(family, style.italic):
            try:
                path, index = self._parse_font_candidate(candidate)
                font = ImageFont.truetype(path, key_size, index=index)
                break
            except OSError:
                continue
        if font is None:
            logger.debug("no TrueType font found for %r; using heuristic metrics", family)
        self._font_cache[cache_key] = font
        return font

    def measure(self, text: str, size: float, style: TextStyle) -> Tuple[float, float]:
        font = self.font(size, style)
        if font is None:
            return self._fallback.measure(text, size, style)
        scale = size / font.size
        ascent, descent = font.getmetrics()
        width = font.getlength(text) if text else 0.0
        return float(width) * scale, float(ascent + descent) * scale

    def x_height(self, size: float, style: TextStyle) -> float:
        font = self.font(size, style)
        if font is None:
            return self._fallback.x_height(size, style)
        scale = size / font.size
        ascent, _ = font.getmetrics()
        # bbox offsets are measured from the ascender line
        _, top, _, _ = font.getbbox("x")
        x_height = float(ascent - top)
        if x_height <= 0:
            return self._fallback.x_height(size, style)
        return x_height * scale

    def _candidates(self, family: str, italic: bool) -> List[str]:
        candidates: List[str] = []
        mapped_families = GENERIC_FONT_FALLBACKS.get(family.lower(), [family])
        for fam in mapped_families:
            names = [f"{fam} {suffix}" for suffix in ITALIC_SUFFIXES] if italic else [fam]
            for name in names:
                resolved = self._locate_font(name)
                if resolved:
                    candidates.append(resolved)
        candidates.append("DejaVuSans-Oblique.ttf" if italic else "DejaVuSans.ttf")
        return candidates

    def _locate_font(self, family: str) -> Optional[str]:
        key = family.lower()
        if key in self._font_paths:
            return self._font_paths[key]
        normalized = re.sub(r"[^a-z0-9]+", "", family, flags=re.IGNORECASE).lower()
        aliases = {normalized, normalized + "mt", normalized + "psmt"}
        best_match: Optional[Tuple[int, str]] = None
        for directory in self.FONT_DIRS:
            if not normalized or not directory.exists():
                continue
            try:
                for glob in ("*.ttf", "*.ttc"):
                    for path in directory.rglob(glob):
                        stem = re.sub(r"[^a-z0-9]+", "", path.stem, flags=re.IGNORECASE).lower()
                        if stem in aliases:
                            match_score = 0
                        elif stem.startswith(normalized):
                            match_score = 1
                        else:
                            continue
                        candidate = str(path) if glob == "*.ttf" else f"{path};0"
                        if best_match is None or match_score < best_match[0]:
                            best_match = (match_score, candidate)
            except OSError:
                continue
        resolved = best_match[1] if best_match else None
        self._font_paths[key] = resolved
        return resolved

    @staticmethod
    def _parse_font_candidate(candidate: str) -> Tuple[str, int]:
        if ";" in candidate:
            path, idx = candidate.split(";", 1)
            try:
                return path, int(idx)
            except ValueError:
                return path, 0
        return candidate, 0


def _heuristic_width(text: str, font_size: float) -> float:
    width = 0.0
    for ch in text:
        if ch.isspace():
            width += font_size * 0.33
        elif ch in "il":
            width += font_size * 0.3
        elif ch in "mwMW@#":
            width += font_size * 0.9
        else:
            width += font_size * 0.6
    return width

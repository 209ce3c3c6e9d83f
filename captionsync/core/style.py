"""Resolve an abstract PaintSpec into concrete paint parameters.

Malformed descriptors never raise: every field falls back to a documented
default so a hand-edited custom theme can at worst look plain.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from PySide6.QtGui import QColor

from captionsync.models.theme import (
    DEFAULT_THEME_ID,
    BackgroundToken,
    PaintSpec,
    TextToken,
    TextTransform,
    ThemeTable,
)

logger = logging.getLogger(__name__)

RGBA = Tuple[int, int, int, int]

DEFAULT_FONT_SIZE = 20.0
DEFAULT_PADDING_Y = 8.0
DEFAULT_PADDING_X = 10.0
DEFAULT_RADIUS = 4.0
LIGHT_TEXT: RGBA = (255, 255, 255, 255)
DARK_TEXT: RGBA = (0, 0, 0, 255)
DEFAULT_BACKGROUND = BackgroundToken.BLACK_80
DEFAULT_GRADIENT = (BackgroundToken.BLACK_80, BackgroundToken.BLACK_60)
DEFAULT_SHADOW_COLOR: RGBA = (0, 0, 0, 204)

_LENGTH_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(?:px)?\s*$", re.IGNORECASE)
_RGBA_RE = re.compile(
    r"^\s*rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*(\d*\.?\d+)\s*)?\)\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Shadow:
    offset_x: float
    offset_y: float
    blur: float
    color: RGBA


@dataclass(frozen=True)
class LinearGradient:
    """Two-stop, left-to-right gradient across the caption box."""

    start: RGBA
    end: RGBA


@dataclass(frozen=True)
class ResolvedStyle:
    font_families: Tuple[str, ...]
    font_size_px: float
    font_weight: int
    text_color: RGBA
    background: RGBA
    gradient: Optional[LinearGradient]
    shadow: Optional[Shadow]
    padding_x: float
    padding_y: float
    radius: float
    letter_spacing: float
    text_transform: TextTransform
    pulse: bool

    @property
    def has_background(self) -> bool:
        return self.gradient is not None or self.background[3] > 0

    def transform(self, text: str) -> str:
        if self.text_transform is TextTransform.UPPERCASE:
            return text.upper()
        if self.text_transform is TextTransform.LOWERCASE:
            return text.lower()
        return text


# --------------------------------------------------------------------------- #
#  Descriptor parsing
# --------------------------------------------------------------------------- #

def _token_rgba(token) -> RGBA:
    r, g, b, a = token.value
    return r, g, b, int(round(a * 255))


def parse_length(value: Optional[str]) -> Optional[float]:
    """``"12px"`` / ``"12"`` -> 12.0; anything else -> None."""
    if value is None:
        return None
    m = _LENGTH_RE.match(str(value))
    return float(m.group(1)) if m else None


def parse_color(value: Optional[str]) -> Optional[RGBA]:
    """Parse ``rgb()/rgba()``, hex and named colours; None when unparseable."""
    if not value:
        return None
    value = value.strip()
    m = _RGBA_RE.match(value)
    if m:
        r, g, b = (min(255, int(m.group(i))) for i in (1, 2, 3))
        alpha = float(m.group(4)) if m.group(4) is not None else 1.0
        return r, g, b, int(round(min(1.0, max(0.0, alpha)) * 255))
    if value.lower() == "transparent":
        return 0, 0, 0, 0
    if "(" in value:
        return None
    color = QColor(value)
    if not color.isValid():
        return None
    return color.red(), color.green(), color.blue(), color.alpha()


def _split_top_level(value: str, sep: Optional[str]) -> List[str]:
    """Split on *sep* (None = whitespace) outside of parentheses."""
    parts: List[str] = []
    depth = 0
    current = ""
    for ch in value:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        is_sep = ch.isspace() if sep is None else ch == sep
        if is_sep and depth == 0:
            if current.strip():
                parts.append(current.strip())
            current = ""
        else:
            current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def parse_padding(value: Optional[str]) -> Tuple[float, float]:
    """CSS-style padding -> (horizontal, vertical) pixels."""
    if value:
        lengths = [parse_length(p) for p in value.split()]
        if lengths and all(v is not None and v >= 0 for v in lengths):
            vertical = lengths[0]
            horizontal = lengths[1] if len(lengths) > 1 else lengths[0]
            return horizontal, vertical
    return DEFAULT_PADDING_X, DEFAULT_PADDING_Y


def parse_radius(value: Optional[str]) -> float:
    radius = parse_length(value)
    if radius is None or radius < 0:
        return DEFAULT_RADIUS
    return radius


def parse_shadow(value: Optional[str]) -> Optional[Shadow]:
    """First shadow of a ``"<x> <y> [blur] [color]"`` list; None for none/garbage."""
    if not value or value.strip().lower() == "none":
        return None
    layers = _split_top_level(value, ",")
    if not layers:
        return None
    numbers: List[float] = []
    color: Optional[RGBA] = None
    for token in _split_top_level(layers[0], None):
        length = parse_length(token)
        if length is not None and len(numbers) < 3 and color is None:
            numbers.append(length)
            continue
        color = parse_color(token)
        if color is None:
            return None
    if len(numbers) < 2:
        return None
    blur = numbers[2] if len(numbers) > 2 else 0.0
    return Shadow(numbers[0], numbers[1], max(0.0, blur), color or DEFAULT_SHADOW_COLOR)


def parse_font_weight(value: Optional[str]) -> int:
    if not value:
        return 400
    value = value.strip().lower()
    if value == "bold":
        return 700
    if value == "normal":
        return 400
    if value.isdigit() and 100 <= int(value) <= 900 and int(value) % 100 == 0:
        return int(value)
    return 400


def parse_families(value: str) -> Tuple[str, ...]:
    families = tuple(f.strip().strip("'\"") for f in value.split(",") if f.strip())
    return families or ("Arial",)


def _is_light(color: RGBA) -> bool:
    r, g, b, a = color
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return a >= 128 and luminance > 0.6


# --------------------------------------------------------------------------- #
#  Resolution
# --------------------------------------------------------------------------- #

@lru_cache(maxsize=128)
def resolve_style(spec: PaintSpec) -> ResolvedStyle:
    """Turn *spec* into concrete values. Pure; cached because specs are immutable."""
    gradient: Optional[LinearGradient] = None
    if spec.gradient:
        start, end = spec.gradient_stops or DEFAULT_GRADIENT
        gradient = LinearGradient(_token_rgba(start), _token_rgba(end))

    background = parse_color(spec.background_color)
    if background is None:
        if spec.background_token is not None:
            background = _token_rgba(spec.background_token)
        elif gradient is not None:
            background = gradient.start
        else:
            background = _token_rgba(DEFAULT_BACKGROUND)

    text_color = parse_color(spec.text_color)
    if text_color is None:
        if spec.text_token is not None:
            text_color = _token_rgba(spec.text_token)
        else:
            text_color = DARK_TEXT if _is_light(background) and gradient is None else LIGHT_TEXT

    padding_x, padding_y = parse_padding(spec.padding)
    font_size = parse_length(spec.font_size)
    letter_spacing = parse_length(spec.letter_spacing)

    return ResolvedStyle(
        font_families=parse_families(spec.font_family),
        font_size_px=font_size if font_size and font_size > 0 else DEFAULT_FONT_SIZE,
        font_weight=parse_font_weight(spec.font_weight),
        text_color=text_color,
        background=background,
        gradient=gradient,
        shadow=parse_shadow(spec.text_shadow),
        padding_x=padding_x,
        padding_y=padding_y,
        radius=parse_radius(spec.border_radius),
        letter_spacing=letter_spacing or 0.0,
        text_transform=spec.text_transform,
        pulse=spec.pulse,
    )


class StyleResolver:
    """Looks up theme ids in a :class:`ThemeTable` and resolves them.

    Unknown ids resolve to the default theme instead of failing.
    """

    def __init__(self, table: Optional[ThemeTable] = None):
        self.table = table if table is not None else ThemeTable()

    def spec(self, theme_id: Optional[str]) -> PaintSpec:
        spec = self.table.get(theme_id) if theme_id else None
        if spec is None:
            logger.warning("Unknown caption theme %r — falling back to '%s'", theme_id, DEFAULT_THEME_ID)
            spec = self.table.get(DEFAULT_THEME_ID) or PaintSpec()
        return spec

    def resolve(self, theme_id: Optional[str]) -> ResolvedStyle:
        return resolve_style(self.spec(theme_id))

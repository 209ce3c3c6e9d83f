"""Caption themes: the abstract PaintSpec and the append-only theme table."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple

from captionsync.errors import ThemeRegistrationError


class TextTransform(str, Enum):
    NONE      = "none"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"


class TextToken(Enum):
    """Named text colours (r, g, b, alpha 0-1)."""

    WHITE = (255, 255, 255, 1.0)
    BLACK = (0, 0, 0, 1.0)


class BackgroundToken(Enum):
    """Named background fills (r, g, b, alpha 0-1)."""

    TRANSPARENT   = (0, 0, 0, 0.0)
    BLACK_60      = (0, 0, 0, 0.6)
    BLACK_70      = (0, 0, 0, 0.7)
    BLACK_80      = (0, 0, 0, 0.8)
    BLACK_90      = (0, 0, 0, 0.9)
    WHITE_10      = (255, 255, 255, 0.1)
    WHITE_80      = (255, 255, 255, 0.8)
    YELLOW_400_80 = (250, 204, 21, 0.8)
    YELLOW_400_90 = (250, 204, 21, 0.9)
    PINK_500_80   = (236, 72, 153, 0.8)
    PURPLE_500_80 = (168, 85, 247, 0.8)
    GREEN_500_80  = (34, 197, 94, 0.8)
    BLUE_500_80   = (59, 130, 246, 0.8)


@dataclass(frozen=True)
class PaintSpec:
    """Declarative caption appearance.

    Size-like fields keep their CSS-ish descriptor strings (``"8px 16px"``,
    ``"12px"``); they are turned into pixels by the style resolver, which
    tolerates malformed values.
    """

    font_family: str = "Arial, sans-serif"
    font_size: str = "20px"
    font_weight: Optional[str] = None
    text_color: Optional[str] = None
    text_token: Optional[TextToken] = None
    background_color: Optional[str] = None
    background_token: Optional[BackgroundToken] = None
    gradient: bool = False
    gradient_stops: Optional[Tuple[BackgroundToken, BackgroundToken]] = None
    padding: Optional[str] = None
    border_radius: Optional[str] = None
    text_shadow: Optional[str] = None
    text_transform: TextTransform = TextTransform.NONE
    letter_spacing: Optional[str] = None
    pulse: bool = False
    description: str = "Custom theme"


def custom_theme(
    font_family: str = "Arial, sans-serif",
    font_size: str = "20px",
    background_color: str = "rgba(0, 0, 0, 0.8)",
    text_color: str = "#ffffff",
    padding: str = "8px 16px",
    border_radius: str = "4px",
    text_shadow: str = "none",
) -> PaintSpec:
    """Build the PaintSpec produced by the theme editor form."""
    return PaintSpec(
        font_family=font_family,
        font_size=font_size,
        background_color=background_color,
        text_color=text_color,
        padding=padding,
        border_radius=border_radius,
        text_shadow=None if text_shadow == "none" else text_shadow,
    )


# --------------------------------------------------------------------------- #
#  Built-in themes
# --------------------------------------------------------------------------- #

BUILTIN_THEMES: Mapping[str, PaintSpec] = MappingProxyType({
    "default": PaintSpec(
        font_family="Arial, sans-serif", font_size="20px",
        text_token=TextToken.WHITE, background_token=BackgroundToken.BLACK_80,
        padding="8px 16px", border_radius="4px",
        description="Classic black background with white text",
    ),
    "modern": PaintSpec(
        font_family="'Helvetica Neue', sans-serif", font_size="22px",
        text_token=TextToken.BLACK, background_token=BackgroundToken.WHITE_80,
        padding="10px 20px", border_radius="8px",
        description="Clean and minimal with light background",
    ),
    "minimal": PaintSpec(
        font_family="'SF Pro Display', sans-serif", font_size="24px",
        text_token=TextToken.WHITE, background_token=BackgroundToken.TRANSPARENT,
        text_shadow="2px 2px 4px rgba(0,0,0,0.8)", padding="8px 16px",
        description="Transparent with text shadow",
    ),
    "bold": PaintSpec(
        font_family="'Impact', sans-serif", font_size="26px", font_weight="bold",
        text_token=TextToken.BLACK, background_token=BackgroundToken.YELLOW_400_90,
        padding="6px 12px", text_transform=TextTransform.UPPERCASE,
        description="High contrast yellow with black text",
    ),
    "subtitle": PaintSpec(
        font_family="'Times New Roman', serif", font_size="20px",
        text_token=TextToken.WHITE, background_token=BackgroundToken.BLACK_60,
        padding="8px 16px",
        description="Traditional subtitle style",
    ),
    "capcut": PaintSpec(
        font_family="'SF Pro Display', sans-serif", font_size="24px",
        text_token=TextToken.WHITE, gradient=True,
        padding="12px 24px", border_radius="12px",
        text_shadow="0 2px 4px rgba(0,0,0,0.5)",
        description="Professional CapCut-style captions",
    ),
    "neon": PaintSpec(
        font_family="'SF Pro Display', sans-serif", font_size="24px",
        text_color="#fff", background_token=BackgroundToken.BLACK_80,
        padding="12px 24px", border_radius="12px",
        text_shadow="0 0 10px #fff, 0 0 20px #fff, 0 0 30px #00ff00, 0 0 40px #00ff00",
        pulse=True,
        description="Glowing neon effect",
    ),
    "glass": PaintSpec(
        font_family="'SF Pro Display', sans-serif", font_size="24px",
        text_token=TextToken.WHITE, background_token=BackgroundToken.WHITE_10,
        padding="12px 24px", border_radius="12px",
        description="Frosted glass effect",
    ),
    "cinematic": PaintSpec(
        font_family="'Playfair Display', serif", font_size="26px",
        text_token=TextToken.WHITE, gradient=True,
        gradient_stops=(BackgroundToken.BLACK_90, BackgroundToken.BLACK_70),
        padding="16px 32px", border_radius="4px", letter_spacing="1px",
        text_transform=TextTransform.UPPERCASE,
        text_shadow="1px 1px 2px rgba(0,0,0,0.5)",
        description="Movie-style dramatic captions",
    ),
    "retro": PaintSpec(
        font_family="'Courier Prime', monospace", font_size="22px",
        text_token=TextToken.BLACK, background_token=BackgroundToken.YELLOW_400_80,
        padding="8px 16px", border_radius="0px", letter_spacing="2px",
        text_transform=TextTransform.UPPERCASE,
        description="Vintage typewriter style",
    ),
    "social": PaintSpec(
        font_family="'Poppins', sans-serif", font_size="24px", font_weight="600",
        text_token=TextToken.WHITE, gradient=True,
        gradient_stops=(BackgroundToken.PINK_500_80, BackgroundToken.PURPLE_500_80),
        padding="12px 24px", border_radius="16px",
        text_shadow="1px 1px 2px rgba(0,0,0,0.3)",
        description="Modern social media style",
    ),
    "gaming": PaintSpec(
        font_family="'Rajdhani', sans-serif", font_size="26px", font_weight="bold",
        text_token=TextToken.WHITE, gradient=True,
        gradient_stops=(BackgroundToken.GREEN_500_80, BackgroundToken.BLUE_500_80),
        padding="10px 20px", border_radius="8px",
        text_shadow="0 0 10px rgba(0,255,255,0.5)",
        description="Dynamic gaming stream style",
    ),
})

DEFAULT_THEME_ID = "default"


class ThemeTable(Mapping[str, PaintSpec]):
    """Read-only theme lookup.

    Adding a theme never touches an existing table: :meth:`with_theme`
    returns a new table, so a resolver holding the old reference keeps
    seeing exactly what it saw before. Built-in ids cannot be replaced.
    """

    def __init__(self, themes: Optional[Mapping[str, PaintSpec]] = None):
        self._themes: Mapping[str, PaintSpec] = MappingProxyType(
            dict(BUILTIN_THEMES if themes is None else themes)
        )

    def __getitem__(self, theme_id: str) -> PaintSpec:
        return self._themes[theme_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._themes)

    def __len__(self) -> int:
        return len(self._themes)

    def with_theme(self, theme_id: str, spec: PaintSpec) -> "ThemeTable":
        if theme_id in BUILTIN_THEMES:
            raise ThemeRegistrationError(f"'{theme_id}' is a built-in theme and cannot be replaced")
        themes: Dict[str, PaintSpec] = dict(self._themes)
        themes[theme_id] = spec
        return ThemeTable(themes)

    def description(self, theme_id: str) -> str:
        spec = self._themes.get(theme_id)
        return spec.description if spec is not None else "Custom theme"

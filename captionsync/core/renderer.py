"""Paint a video frame plus its active caption chunks onto a QImage.

The same function serves the live preview (into a display buffer) and the
export (into an off-screen buffer handed to the encoder), so both produce
identical pixels for identical input.
"""
from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import (
    QBrush,
    QColor,
    QFont,
    QFontMetricsF,
    QImage,
    QLinearGradient,
    QPainter,
)

from captionsync.core.style import RGBA, ResolvedStyle
from captionsync.models.utterance import WordChunk

logger = logging.getLogger(__name__)

SURFACE_FORMAT = QImage.Format_RGBA8888
DEFAULT_BOTTOM_OFFSET = 50
PULSE_PERIOD_MS = 2000.0


def new_surface(width: int, height: int) -> QImage:
    """A blank surface in the pixel format the encoder consumes (rgba)."""
    surface = QImage(max(1, width), max(1, height), SURFACE_FORMAT)
    surface.fill(Qt.black)
    return surface


def pulse_factor(t_ms: Optional[float]) -> float:
    """Opacity multiplier for pulsing themes: 1 -> 0.5 -> 1 every two seconds."""
    if t_ms is None:
        return 1.0
    return 0.75 + 0.25 * math.cos(2 * math.pi * (t_ms % PULSE_PERIOD_MS) / PULSE_PERIOD_MS)


def caption_font(style: ResolvedStyle) -> QFont:
    font = QFont()
    font.setFamilies(list(style.font_families))
    font.setPixelSize(max(1, int(round(style.font_size_px))))
    font.setWeight(QFont.Weight(style.font_weight))
    if style.letter_spacing:
        font.setLetterSpacing(QFont.AbsoluteSpacing, style.letter_spacing)
    return font


def _qcolor(rgba: RGBA) -> QColor:
    return QColor(*rgba)


def _background_brush(style: ResolvedStyle, box: QRectF) -> QBrush:
    if style.gradient is not None:
        gradient = QLinearGradient(QPointF(box.left(), 0), QPointF(box.right(), 0))
        gradient.setColorAt(0.0, _qcolor(style.gradient.start))
        gradient.setColorAt(1.0, _qcolor(style.gradient.end))
        return QBrush(gradient)
    return QBrush(_qcolor(style.background))


def _paint_shadow(painter: QPainter, box: QRectF, text: str, font: QFont, style: ResolvedStyle) -> None:
    shadow = style.shadow
    target = box.translated(shadow.offset_x, shadow.offset_y)
    if shadow.blur <= 0:
        painter.setPen(_qcolor(shadow.color))
        painter.drawText(target, Qt.AlignCenter, text)
        return

    # Blur by rendering the text alone, shrinking and smoothly re-enlarging it.
    margin = math.ceil(shadow.blur)
    width = max(1, math.ceil(box.width()) + 2 * margin)
    height = max(1, math.ceil(box.height()) + 2 * margin)
    layer = QImage(width, height, QImage.Format_ARGB32_Premultiplied)
    layer.fill(Qt.transparent)
    layer_painter = QPainter(layer)
    try:
        layer_painter.setRenderHint(QPainter.TextAntialiasing)
        layer_painter.setFont(font)
        layer_painter.setPen(_qcolor(shadow.color))
        layer_painter.drawText(QRectF(margin, margin, box.width(), box.height()), Qt.AlignCenter, text)
    finally:
        layer_painter.end()

    factor = max(1.0, shadow.blur / 2)
    small = layer.scaled(
        max(1, int(width / factor)), max(1, int(height / factor)),
        Qt.IgnoreAspectRatio, Qt.SmoothTransformation,
    )
    blurred = small.scaled(width, height, Qt.IgnoreAspectRatio, Qt.SmoothTransformation)
    painter.drawImage(QPointF(target.left() - margin, target.top() - margin), blurred)


def _paint_chunk(
    painter: QPainter,
    chunk: WordChunk,
    style: ResolvedStyle,
    font: QFont,
    width: int,
    height: int,
    bottom_offset: float,
    pulse: float,
) -> None:
    opacity = max(0.0, min(1.0, chunk.opacity * pulse))
    if opacity <= 0:
        return

    text = style.transform(chunk.text)
    metrics = QFontMetricsF(font)
    text_width = metrics.horizontalAdvance(text)
    box_width = text_width + 2 * style.padding_x
    box_height = metrics.height() + 2 * style.padding_y
    box = QRectF(-box_width / 2, -box_height / 2, box_width, box_height)

    painter.save()
    try:
        painter.translate(width / 2, height - bottom_offset + chunk.translate_y)
        painter.scale(chunk.scale, chunk.scale)
        painter.setOpacity(opacity)
        painter.setFont(font)

        if style.has_background:
            painter.setPen(Qt.NoPen)
            painter.setBrush(_background_brush(style, box))
            if style.radius > 0:
                painter.drawRoundedRect(box, style.radius, style.radius)
            else:
                painter.drawRect(box)

        if style.shadow is not None:
            _paint_shadow(painter, box, text, font, style)

        painter.setPen(_qcolor(style.text_color))
        painter.drawText(box, Qt.AlignCenter, text)
    finally:
        painter.restore()


def render_frame(
    surface: QImage,
    frame: Optional[QImage],
    chunks: Sequence[WordChunk],
    style: ResolvedStyle,
    t_ms: Optional[float] = None,
    bottom_offset: float = DEFAULT_BOTTOM_OFFSET,
) -> QImage:
    """Draw *frame* scaled to *surface*, then *chunks* in order (later on top).

    *t_ms* only matters for pulsing themes. Returns *surface* for chaining.
    """
    painter = QPainter(surface)
    try:
        painter.setRenderHints(
            QPainter.Antialiasing | QPainter.TextAntialiasing | QPainter.SmoothPixmapTransform
        )
        painter.fillRect(surface.rect(), Qt.black)
        if frame is not None and not frame.isNull():
            painter.drawImage(QRectF(surface.rect()), frame, QRectF(frame.rect()))

        if chunks:
            font = caption_font(style)
            pulse = pulse_factor(t_ms) if style.pulse else 1.0
            for chunk in chunks:
                _paint_chunk(
                    painter, chunk, style, font,
                    surface.width(), surface.height(), bottom_offset, pulse,
                )
    finally:
        painter.end()
    return surface

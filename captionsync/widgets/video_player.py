"""Video preview widget: playback controls plus a caption-burned display surface."""
from __future__ import annotations

from typing import List, Optional

from PySide6.QtCore import QRectF, QSize, Qt, QUrl, Slot
from PySide6.QtGui import QImage, QPainter
from PySide6.QtMultimedia import QAudioOutput, QMediaPlayer, QVideoFrame, QVideoSink
from PySide6.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QPushButton,
    QSizePolicy,
    QSlider,
    QVBoxLayout,
    QWidget,
)

from captionsync.core.playback import PlaybackSource, ReadyState
from captionsync.core.renderer import new_surface
from captionsync.engine import CaptionEngine
from captionsync.models.utterance import WordChunk

_NOT_READY = {
    QMediaPlayer.MediaStatus.NoMedia,
    QMediaPlayer.MediaStatus.LoadingMedia,
    QMediaPlayer.MediaStatus.StalledMedia,
    QMediaPlayer.MediaStatus.BufferingMedia,
    QMediaPlayer.MediaStatus.InvalidMedia,
}


def _ms_to_hms(ms: int) -> str:
    s  = ms // 1000
    m  = s  // 60;  s  %= 60
    h  = m  // 60;  m  %= 60
    return f"{h:02d}:{m:02d}:{s:02d}"


class QtMediaPlayback(PlaybackSource):
    """Exposes a QMediaPlayer as a playback clock for the live scheduler.

    A requested seek reports SEEKING until the player confirms the new position.
    """

    def __init__(self, player: QMediaPlayer):
        self._player = player
        self._seeking = False
        player.positionChanged.connect(self._on_position_changed)

    def current_time_ms(self) -> float:
        return float(self._player.position())

    def duration_ms(self) -> float:
        return float(self._player.duration())

    def ready_state(self) -> ReadyState:
        if self._seeking:
            return ReadyState.SEEKING
        if self._player.mediaStatus() in _NOT_READY:
            return ReadyState.BUFFERING
        return ReadyState.READY

    def seek(self, position_ms: int) -> None:
        # no positionChanged arrives for a no-op seek
        self._seeking = position_ms != self._player.position()
        self._player.setPosition(position_ms)

    def _on_position_changed(self, _pos: int) -> None:
        self._seeking = False


class CaptionView(QWidget):
    """Shows the display surface, letterboxed to the widget."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self._image: Optional[QImage] = None
        self.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Expanding)
        self.setMinimumSize(QSize(320, 180))

    def set_image(self, image: QImage) -> None:
        self._image = image
        self.update()

    def paintEvent(self, event) -> None:  # type: ignore[override]
        painter = QPainter(self)
        painter.fillRect(self.rect(), Qt.black)
        if self._image is not None and not self._image.isNull():
            size = self._image.size().scaled(self.size(), Qt.KeepAspectRatio)
            x = (self.width() - size.width()) / 2
            y = (self.height() - size.height()) / 2
            painter.setRenderHint(QPainter.SmoothPixmapTransform)
            painter.drawImage(QRectF(x, y, size.width(), size.height()), self._image)
        painter.end()


class VideoPlayer(QWidget):
    """Embeds a QMediaPlayer + controls; paints captions with the engine's renderer."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self._engine: Optional[CaptionEngine] = None
        self._frame: Optional[QImage] = None
        self._chunks: List[WordChunk] = []
        self._surface: Optional[QImage] = None
        self._build_ui()
        self._connect_signals()
        self.playback = QtMediaPlayback(self.player)

    # ------------------------------------------------------------------ build
    def _build_ui(self) -> None:
        self.player       = QMediaPlayer(self)
        self.audio_output = QAudioOutput(self)
        self.player.setAudioOutput(self.audio_output)
        self.audio_output.setVolume(1.0)

        self.video_sink = QVideoSink(self)
        self.player.setVideoSink(self.video_sink)
        self.caption_view = CaptionView()

        # ---- Position slider ----
        self.position_slider = QSlider(Qt.Horizontal)
        self.position_slider.setRange(0, 0)
        self.position_slider.setSingleStep(1000)

        # ---- Time label ----
        self.time_label = QLabel("00:00:00 / 00:00:00")
        self.time_label.setAlignment(Qt.AlignCenter)

        # ---- Control buttons ----
        self.play_btn  = QPushButton("▶  Play")
        self.pause_btn = QPushButton("⏸  Pause")
        self.stop_btn  = QPushButton("⏹  Stop")

        ctrl = QHBoxLayout()
        ctrl.addWidget(self.play_btn)
        ctrl.addWidget(self.pause_btn)
        ctrl.addWidget(self.stop_btn)
        ctrl.addStretch()
        ctrl.addWidget(self.time_label)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self.caption_view, stretch=1)
        layout.addWidget(self.position_slider)
        layout.addLayout(ctrl)

    def _connect_signals(self) -> None:
        self.play_btn.clicked.connect(self.player.play)
        self.pause_btn.clicked.connect(self.player.pause)
        self.stop_btn.clicked.connect(self.player.stop)

        self.player.positionChanged.connect(self._on_position_changed)
        self.player.durationChanged.connect(self._on_duration_changed)
        self.video_sink.videoFrameChanged.connect(self._on_video_frame)

        # Allow manual scrubbing
        self.position_slider.sliderMoved.connect(self.seek_to_ms)

    # ------------------------------------------------------------------ API
    def set_engine(self, engine: CaptionEngine) -> None:
        self._engine = engine
        self.refresh()

    def load(self, path: str) -> None:
        """Load and immediately preview (but don't autoplay) a video file."""
        self._frame = None
        self._surface = None
        self.player.setSource(QUrl.fromLocalFile(path))
        self.player.pause()     # show first frame

    def seek_to(self, seconds: float) -> None:
        """Jump to a position in seconds."""
        self.seek_to_ms(int(seconds * 1000))

    def seek_to_ms(self, position_ms: int) -> None:
        self.playback.seek(position_ms)

    def current_frame(self) -> Optional[QImage]:
        return self._frame

    @Slot(list)
    def show_chunks(self, chunks: List[WordChunk]) -> None:
        self._chunks = list(chunks)
        self.refresh()

    def refresh(self) -> None:
        """Re-render the display surface from the latest frame and chunks."""
        if self._engine is None or self._frame is None:
            return
        if self._surface is None or self._surface.size() != self._frame.size():
            self._surface = new_surface(self._frame.width(), self._frame.height())
        self._engine.render_once(
            self._surface, self._chunks, frame=self._frame,
            t_ms=self.playback.current_time_ms(),
        )
        self.caption_view.set_image(self._surface)

    # ------------------------------------------------------------------ slots
    @Slot(QVideoFrame)
    def _on_video_frame(self, frame: QVideoFrame) -> None:
        image = frame.toImage()
        if image.isNull():
            return
        self._frame = image
        self.refresh()

    @Slot(int)
    def _on_position_changed(self, pos_ms: int) -> None:
        if not self.position_slider.isSliderDown():
            self.position_slider.setValue(pos_ms)
        dur = self.player.duration()
        self.time_label.setText(f"{_ms_to_hms(pos_ms)} / {_ms_to_hms(dur)}")

    @Slot(int)
    def _on_duration_changed(self, dur_ms: int) -> None:
        self.position_slider.setRange(0, dur_ms)

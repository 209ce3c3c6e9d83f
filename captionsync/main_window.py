"""Main application window."""
from __future__ import annotations

import logging
import os
from typing import List, Optional

from PySide6.QtCore import QObject, QThread, Qt, Slot
from PySide6.QtGui import QAction, QDragEnterEvent, QDropEvent, QKeySequence
from PySide6.QtWidgets import (
    QComboBox,
    QFileDialog,
    QLabel,
    QMainWindow,
    QMessageBox,
    QProgressBar,
    QPushButton,
    QSplitter,
    QToolBar,
    QVBoxLayout,
    QWidget,
)

from captionsync.config import get_config
from captionsync.core.clock import QtClock
from captionsync.engine import CaptionEngine
from captionsync.models.export_job import ExportConfig, ExportFormat, ExportQuality
from captionsync.models.utterance import Utterance
from captionsync.utils.transcript_utils import load_transcript_json
from captionsync.widgets.caption_table import CaptionTable
from captionsync.widgets.export_dialog import ExportDialog
from captionsync.widgets.theme_editor import ThemeEditorDialog
from captionsync.widgets.video_player import VideoPlayer

logger = logging.getLogger(__name__)

_VIDEO_EXTS = {".mp4", ".mkv", ".avi", ".mov", ".webm", ".flv", ".wmv"}
_CUSTOM_THEME_ID = "custom"


class MainWindow(QMainWindow):
    """Top-level window for the caption editor."""

    # ------------------------------------------------------------------ init
    def __init__(self):
        super().__init__()
        self.setWindowTitle("CaptionSync")
        self.resize(1400, 800)

        cfg = get_config()
        self._video_path: Optional[str] = None
        self._busy = False

        # Active QThread/worker references (prevent GC)
        self._thread: Optional[QThread] = None
        self._worker: Optional[QObject] = None
        self._export_dlg: Optional[ExportDialog] = None

        self.engine = CaptionEngine(theme_id=cfg.default_theme, bottom_offset=cfg.caption_bottom_offset)
        self._clock = QtClock(self)

        self.setAcceptDrops(True)
        self._build_ui()
        self._setup_menu()
        self._setup_statusbar()

        self.video_player.set_engine(self.engine)
        self.caption_table.set_engine(self.engine)
        self.engine.subscribe_active_chunks(self.video_player.show_chunks)
        self.engine.attach_playback(self.video_player.playback, self._clock, cfg.update_interval_ms)
        self._update_button_states()

    # ------------------------------------------------------------------ build
    def _build_ui(self) -> None:
        # ---- Toolbar ----
        toolbar = QToolBar("Main Toolbar", self)
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        self.load_btn       = QPushButton("📂  Load Video")
        self.transcript_btn = QPushButton("📄  Open Transcript")
        self.transcribe_btn = QPushButton("🎙️  Transcribe")
        self.export_btn     = QPushButton("💾  Export")

        self.theme_combo = QComboBox()
        self._reload_theme_combo()
        self.theme_combo.currentIndexChanged.connect(self._on_theme_changed)

        self.format_combo = QComboBox()
        for fmt in ExportFormat:
            self.format_combo.addItem(fmt.value.upper(), fmt.value)

        self.quality_combo = QComboBox()
        for quality in ExportQuality:
            self.quality_combo.addItem(quality.value.capitalize(), quality.value)

        for btn in (self.load_btn, self.transcript_btn, self.transcribe_btn, self.export_btn):
            btn.setFixedHeight(32)
            toolbar.addWidget(btn)

        toolbar.addSeparator()
        toolbar.addWidget(QLabel("  Theme: "))
        toolbar.addWidget(self.theme_combo)
        toolbar.addSeparator()
        toolbar.addWidget(QLabel("  Format: "))
        toolbar.addWidget(self.format_combo)
        toolbar.addWidget(QLabel("  Quality: "))
        toolbar.addWidget(self.quality_combo)

        # ---- Central splitter ----
        self.video_player  = VideoPlayer()
        self.caption_table = CaptionTable()

        splitter = QSplitter(Qt.Horizontal)
        splitter.addWidget(self._wrap_with_label(self.video_player, "📹  Video Preview  (drag & drop a video file here)"))
        splitter.addWidget(self._wrap_with_label(self.caption_table, "📝  Transcript"))
        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 2)

        self.setCentralWidget(splitter)

        # ---- Connect signals ----
        self.load_btn.clicked.connect(self._on_load_clicked)
        self.transcript_btn.clicked.connect(self._on_open_transcript_clicked)
        self.transcribe_btn.clicked.connect(self._on_transcribe_clicked)
        self.export_btn.clicked.connect(self._on_export_clicked)

        self.caption_table.utterance_selected.connect(self.video_player.seek_to)
        self.caption_table.data_changed.connect(self.video_player.refresh)

    @staticmethod
    def _wrap_with_label(widget: QWidget, title: str) -> QWidget:
        container = QWidget()
        lbl = QLabel(f"<b>{title}</b>")
        lbl.setContentsMargins(4, 4, 4, 0)
        layout = QVBoxLayout(container)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(lbl)
        layout.addWidget(widget, stretch=1)
        return container

    def _setup_menu(self) -> None:
        menu      = self.menuBar()
        file_menu = menu.addMenu("&File")

        open_act = QAction("&Open Video…", self)
        open_act.setShortcut(QKeySequence.Open)
        open_act.triggered.connect(self._on_load_clicked)
        file_menu.addAction(open_act)

        transcript_act = QAction("Open &Transcript…", self)
        transcript_act.triggered.connect(self._on_open_transcript_clicked)
        file_menu.addAction(transcript_act)

        file_menu.addSeparator()

        export_act = QAction("&Export…", self)
        export_act.setShortcut(QKeySequence("Ctrl+E"))
        export_act.triggered.connect(self._on_export_clicked)
        file_menu.addAction(export_act)

        vtt_act = QAction("Export &WebVTT…", self)
        vtt_act.triggered.connect(self._on_export_vtt_clicked)
        file_menu.addAction(vtt_act)

        snapshot_act = QAction("Save &Snapshot…", self)
        snapshot_act.setShortcut(QKeySequence("Ctrl+Shift+S"))
        snapshot_act.triggered.connect(self._on_snapshot_clicked)
        file_menu.addAction(snapshot_act)

        file_menu.addSeparator()
        quit_act = QAction("&Quit", self)
        quit_act.setShortcut(QKeySequence.Quit)
        quit_act.triggered.connect(self.close)
        file_menu.addAction(quit_act)

        theme_menu = menu.addMenu("&Theme")
        custom_act = QAction("&Custom Theme…", self)
        custom_act.triggered.connect(self._on_custom_theme_clicked)
        theme_menu.addAction(custom_act)

    def _setup_statusbar(self) -> None:
        self.status_label = QLabel("Ready — drop a video file or click Load Video.")
        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 100)
        self.progress_bar.setValue(0)
        self.progress_bar.setFixedWidth(220)
        self.progress_bar.setVisible(False)

        self.statusBar().addWidget(self.status_label, 1)
        self.statusBar().addPermanentWidget(self.progress_bar)

    def _reload_theme_combo(self) -> None:
        self.theme_combo.blockSignals(True)
        self.theme_combo.clear()
        for theme_id in self.engine.themes:
            self.theme_combo.addItem(theme_id.capitalize(), theme_id)
            self.theme_combo.setItemData(
                self.theme_combo.count() - 1, self.engine.themes.description(theme_id), Qt.ToolTipRole
            )
        index = self.theme_combo.findData(self.engine.theme_id)
        self.theme_combo.setCurrentIndex(max(index, 0))
        self.theme_combo.blockSignals(False)

    # ------------------------------------------------------------------ drag & drop
    def dragEnterEvent(self, event: QDragEnterEvent) -> None:
        if event.mimeData().hasUrls():
            urls  = event.mimeData().urls()
            valid = any(
                os.path.splitext(u.toLocalFile())[1].lower() in _VIDEO_EXTS
                for u in urls
            )
            if valid:
                event.acceptProposedAction()
                return
        event.ignore()

    def dropEvent(self, event: QDropEvent) -> None:
        urls = event.mimeData().urls()
        if urls:
            path = urls[0].toLocalFile()
            self._load_video(path)

    # ------------------------------------------------------------------ helpers
    def _load_video(self, path: str) -> None:
        if not os.path.isfile(path):
            self._show_error(f"File not found:\n{path}")
            return
        self._video_path = path
        self.video_player.load(path)
        self._set_status(f"Loaded: {os.path.basename(path)}")
        self._update_button_states()

    def _set_status(self, msg: str) -> None:
        self.status_label.setText(msg)

    def _set_busy(self, busy: bool, label: str = "") -> None:
        self._busy = busy
        self.progress_bar.setVisible(busy)
        if busy:
            self.progress_bar.setValue(0)
        status = label if label else ("Ready." if not busy else "Working…")
        self._set_status(status)
        self.format_combo.setEnabled(not busy)
        self.quality_combo.setEnabled(not busy)
        self._update_button_states()

    def _update_button_states(self) -> None:
        if self._busy:
            # Disable everything while a background job is running
            for btn in (self.load_btn, self.transcript_btn, self.transcribe_btn, self.export_btn):
                btn.setEnabled(False)
            return

        has_video = self._video_path is not None

        self.load_btn.setEnabled(True)
        self.transcript_btn.setEnabled(True)
        self.transcribe_btn.setEnabled(has_video)
        self.export_btn.setEnabled(has_video)

    def _show_error(self, msg: str) -> None:
        QMessageBox.critical(self, "Error", msg)

    def _start_worker(self, worker: QObject, thread: QThread) -> None:
        """Wire up and start a worker/thread pair."""
        self._worker = worker
        self._thread = thread

        worker.moveToThread(thread)
        thread.started.connect(worker.run)

        # Generic cleanup
        worker.finished.connect(thread.quit)
        worker.finished.connect(worker.deleteLater)
        thread.finished.connect(thread.deleteLater)

        thread.start()

    # ------------------------------------------------------------------ button handlers
    @Slot()
    def _on_load_clicked(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self, "Open Video", "",
            "Video Files (*.mp4 *.mkv *.avi *.mov *.webm *.flv *.wmv);;All Files (*)"
        )
        if path:
            self._load_video(path)

    @Slot()
    def _on_open_transcript_clicked(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self, "Open Transcript", "", "Transcript JSON (*.json);;All Files (*)"
        )
        if not path:
            return
        try:
            utterances = load_transcript_json(path)
        except (OSError, ValueError) as exc:
            logger.error("Could not load transcript %s: %s", path, exc)
            self._show_error(f"Could not load transcript:\n{exc}")
            return
        self._on_utterances_ready(utterances)

    @Slot()
    def _on_transcribe_clicked(self) -> None:
        if not self._video_path:
            return

        from captionsync.workers.transcribe_worker import TranscribeWorker

        self._set_busy(True, "Transcribing with speaker labels (this may take a while)…")

        worker = TranscribeWorker(self._video_path)
        thread = QThread(self)

        worker.progress.connect(self.progress_bar.setValue)
        worker.utterances_ready.connect(self._on_utterances_ready)
        worker.error.connect(self._on_worker_error)
        worker.finished.connect(lambda: self._set_busy(False))

        self._start_worker(worker, thread)

    @Slot(list)
    def _on_utterances_ready(self, utterances: List[Utterance]) -> None:
        self.engine.load_utterances(utterances)
        self.caption_table.reload()
        self.video_player.refresh()
        self._set_status(f"Transcript loaded — {len(utterances)} utterances.")
        self._update_button_states()

    @Slot(int)
    def _on_theme_changed(self, _index: int) -> None:
        theme_id = self.theme_combo.currentData()
        if theme_id:
            self.engine.select_theme(theme_id)
            self.video_player.refresh()

    @Slot()
    def _on_custom_theme_clicked(self) -> None:
        dlg = ThemeEditorDialog(self)
        if not dlg.exec():
            return
        self.engine.add_custom_theme(dlg.paint_spec(), _CUSTOM_THEME_ID)
        self._reload_theme_combo()
        self.video_player.refresh()

    @Slot()
    def _on_export_clicked(self) -> None:
        if not self._video_path or self._busy:
            return

        config = ExportConfig.from_values(self.format_combo.currentData(), self.quality_combo.currentData())
        ext = config.format.value
        out_path, _ = QFileDialog.getSaveFileName(
            self, "Export Video", f"captioned-video.{ext}",
            f"{ext.upper()} Video (*.{ext});;All Files (*)"
        )
        if not out_path:
            return

        from captionsync.workers.export_worker import ExportWorker

        self._set_busy(True, "Exporting video with captions…")

        worker = ExportWorker(
            video_path=self._video_path,
            utterances=self.engine.store.all(),
            themes=self.engine.themes,
            theme_id=self.engine.theme_id,
            output_path=out_path,
            config=config,
        )
        thread = QThread(self)

        # Progress popup
        self._export_dlg = ExportDialog(self)
        worker.progress.connect(self._export_dlg.set_progress)
        worker.state_changed.connect(self._export_dlg.set_state)
        self._export_dlg.cancel_requested.connect(worker.cancel)
        worker.finished.connect(self._export_dlg.close)

        worker.progress.connect(self.progress_bar.setValue)
        worker.done.connect(self._on_export_finished)
        worker.cancelled.connect(lambda: self._set_status("Export cancelled."))
        worker.error.connect(self._on_worker_error)
        worker.finished.connect(self._on_export_worker_finished)

        self._start_worker(worker, thread)
        self._export_dlg.show()

    @Slot()
    def _on_export_worker_finished(self) -> None:
        status = self.status_label.text()
        self._set_busy(False, status)

    @Slot(str)
    def _on_export_finished(self, output_path: str) -> None:
        self._set_status(f"Exported: {os.path.basename(output_path)}")
        QMessageBox.information(self, "Export complete", f"Video saved to:\n{output_path}")

    @Slot()
    def _on_export_vtt_clicked(self) -> None:
        if not len(self.engine.store):
            self._show_error("No transcript loaded.")
            return
        path, _ = QFileDialog.getSaveFileName(
            self, "Export WebVTT", "captions.vtt", "WebVTT (*.vtt);;All Files (*)"
        )
        if not path:
            return
        try:
            self.engine.export_vtt(path)
        except OSError as exc:
            self._show_error(f"Could not write captions:\n{exc}")
            return
        self._set_status(f"Captions saved: {os.path.basename(path)}")

    @Slot()
    def _on_snapshot_clicked(self) -> None:
        frame = self.video_player.current_frame()
        if frame is None:
            self._show_error("No video frame to capture.")
            return
        path, _ = QFileDialog.getSaveFileName(
            self, "Save Snapshot", "caption-preview.jpg", "JPEG Image (*.jpg);;All Files (*)"
        )
        if not path:
            return
        t_ms = self.video_player.playback.current_time_ms()
        if not self.engine.snapshot(frame, t_ms, path):
            self._show_error(f"Could not save snapshot:\n{path}")
            return
        self._set_status(f"Snapshot saved: {os.path.basename(path)}")

    @Slot(str)
    def _on_worker_error(self, message: str) -> None:
        self._set_busy(False)
        self._show_error(message)

    # ------------------------------------------------------------------ close
    def closeEvent(self, event) -> None:
        if self._worker is not None and self._busy and hasattr(self._worker, "cancel"):
            self._worker.cancel()
        self.engine.detach_playback()
        event.accept()

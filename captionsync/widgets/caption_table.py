"""Editable utterance table with search and speaker filter."""
from __future__ import annotations

from typing import Optional

from PySide6.QtCore import Qt, Signal, Slot
from PySide6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QHBoxLayout,
    QHeaderView,
    QLineEdit,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from captionsync.engine import CaptionEngine
from captionsync.errors import IndexOutOfRange

# Column indices
COL_IDX     = 0
COL_SPEAKER = 1
COL_START   = 2
COL_END     = 3
COL_TEXT    = 4

HEADERS = ["#", "Speaker", "Start", "End", "Text"]

_ALL_SPEAKERS = "All speakers"


def _fmt(ms: int) -> str:
    minutes, seconds = divmod(ms // 1000, 60)
    return f"{minutes}:{seconds:02d}"


class CaptionTable(QWidget):
    """QTableWidget over the engine's utterance store. Only text is editable.

    Signals
    -------
    utterance_selected(float):  start time (seconds) of a clicked row.
    data_changed():             emitted whenever a text cell is edited.
    """

    utterance_selected = Signal(float)
    data_changed       = Signal()

    def __init__(self, parent=None):
        super().__init__(parent)
        self._engine: Optional[CaptionEngine] = None
        self._ignore_changes = False
        self._build_ui()

    # ------------------------------------------------------------------ build
    def _build_ui(self) -> None:
        self.search_edit = QLineEdit()
        self.search_edit.setPlaceholderText("Search transcript…")
        self.speaker_combo = QComboBox()
        self.speaker_combo.addItem(_ALL_SPEAKERS, None)

        filters = QHBoxLayout()
        filters.addWidget(self.search_edit, stretch=1)
        filters.addWidget(self.speaker_combo)

        self.table = QTableWidget(0, len(HEADERS))
        self.table.setHorizontalHeaderLabels(HEADERS)

        hdr = self.table.horizontalHeader()
        hdr.setSectionResizeMode(COL_TEXT, QHeaderView.Stretch)
        for col in (COL_IDX, COL_SPEAKER, COL_START, COL_END):
            hdr.setSectionResizeMode(col, QHeaderView.ResizeToContents)

        self.table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.table.setAlternatingRowColors(True)
        self.table.itemChanged.connect(self._on_item_changed)
        self.table.cellClicked.connect(self._on_cell_clicked)
        self.search_edit.textChanged.connect(self._apply_filter)
        self.speaker_combo.currentIndexChanged.connect(self._apply_filter)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addLayout(filters)
        layout.addWidget(self.table)

    # ------------------------------------------------------------------ API
    def set_engine(self, engine: CaptionEngine) -> None:
        self._engine = engine
        self.reload()

    def reload(self) -> None:
        """Rebuild rows from the store (after loading a new transcript)."""
        utterances = self._engine.store.all() if self._engine else []
        self._ignore_changes = True
        self.table.setRowCount(0)
        self.table.setRowCount(len(utterances))
        for row, u in enumerate(utterances):
            items = [str(row + 1), u.speaker, _fmt(u.start_ms), _fmt(u.end_ms), u.text]
            for col, text in enumerate(items):
                item = QTableWidgetItem(text)
                if col != COL_TEXT:
                    item.setFlags(item.flags() & ~Qt.ItemIsEditable)
                self.table.setItem(row, col, item)
        self._ignore_changes = False

        self.speaker_combo.blockSignals(True)
        self.speaker_combo.clear()
        self.speaker_combo.addItem(_ALL_SPEAKERS, None)
        for speaker in (self._engine.store.speakers() if self._engine else []):
            self.speaker_combo.addItem(f"Speaker {speaker}", speaker)
        self.speaker_combo.blockSignals(False)
        self._apply_filter()

    # ------------------------------------------------------------------ slots
    def _apply_filter(self, *_args) -> None:
        if self._engine is None:
            return
        visible = set(self._engine.store.search(
            self.search_edit.text(), self.speaker_combo.currentData()
        ))
        for row in range(self.table.rowCount()):
            self.table.setRowHidden(row, row not in visible)

    @Slot(QTableWidgetItem)
    def _on_item_changed(self, item: QTableWidgetItem) -> None:
        if self._ignore_changes or self._engine is None or item.column() != COL_TEXT:
            return
        try:
            self._engine.edit_utterance_text(item.row(), item.text().strip())
        except IndexOutOfRange:
            return
        self.data_changed.emit()

    @Slot(int, int)
    def _on_cell_clicked(self, row: int, _col: int) -> None:
        if self._engine is None:
            return
        utterances = self._engine.store.all()
        if row < len(utterances):
            self.utterance_selected.emit(utterances[row].start_ms / 1000)

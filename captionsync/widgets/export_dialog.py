"""Modal progress dialog shown while an export records."""
from __future__ import annotations

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QDialog,
    QLabel,
    QProgressBar,
    QPushButton,
    QVBoxLayout,
)

_STATE_MESSAGES = {
    "preparing":  "Preparing export...",
    "recording":  "Recording video with captions...",
    "finalizing": "Assembling the final file...",
    "completed":  "Export completed successfully!",
}


class ExportDialog(QDialog):
    """Progress bar, status message and a Cancel button.

    Usage
    -----
    dlg = ExportDialog(parent)
    worker.progress.connect(dlg.set_progress)
    worker.state_changed.connect(dlg.set_state)
    dlg.cancel_requested.connect(worker.cancel)
    worker.finished.connect(dlg.close)
    dlg.show()
    """

    cancel_requested = Signal()

    def __init__(self, parent=None, *, title: str = "Exporting Video") -> None:
        super().__init__(parent)

        # Remove the close / minimise / maximise buttons
        self.setWindowFlags(
            Qt.Dialog
            | Qt.CustomizeWindowHint
            | Qt.WindowTitleHint
        )
        self.setWindowTitle(title)
        self.setModal(True)
        self.setMinimumWidth(360)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(24, 20, 24, 20)
        layout.setSpacing(14)

        self._label = QLabel(_STATE_MESSAGES["preparing"])
        self._label.setAlignment(Qt.AlignCenter)
        self._label.setWordWrap(True)
        layout.addWidget(self._label)

        self._bar = QProgressBar()
        self._bar.setRange(0, 100)
        self._bar.setValue(0)
        self._bar.setTextVisible(True)
        layout.addWidget(self._bar)

        self._cancel_btn = QPushButton("Cancel")
        self._cancel_btn.clicked.connect(self._on_cancel)
        layout.addWidget(self._cancel_btn, alignment=Qt.AlignRight)

    # ------------------------------------------------------------------ slots
    def set_progress(self, value: int) -> None:
        """Update the progress bar (0–100)."""
        self._bar.setValue(value)

    def set_state(self, state: str) -> None:
        message = _STATE_MESSAGES.get(state)
        if message:
            self._label.setText(message)
        if state in ("finalizing", "completed", "failed"):
            self._cancel_btn.setEnabled(False)

    def _on_cancel(self) -> None:
        self._cancel_btn.setEnabled(False)
        self._label.setText("Cancelling…")
        self.cancel_requested.emit()

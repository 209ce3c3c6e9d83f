"""Form for building the user's custom caption theme."""
from __future__ import annotations

from PySide6.QtWidgets import (
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QLineEdit,
)

from captionsync.models.theme import PaintSpec, custom_theme

# (field, label, default)
_FIELDS = [
    ("font_family",      "Font family",      "Arial, sans-serif"),
    ("font_size",        "Font size",        "20px"),
    ("background_color", "Background color", "rgba(0, 0, 0, 0.8)"),
    ("text_color",       "Text color",       "#ffffff"),
    ("padding",          "Padding",          "8px 16px"),
    ("border_radius",    "Border radius",    "4px"),
    ("text_shadow",      "Text shadow",      "none"),
]


class ThemeEditorDialog(QDialog):
    """CSS-like fields; unparseable values fall back to theme defaults when painted."""

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Custom Caption Theme")
        self.setMinimumWidth(380)

        self._edits = {}
        form = QFormLayout(self)
        for name, label, default in _FIELDS:
            edit = QLineEdit(default)
            self._edits[name] = edit
            form.addRow(label, edit)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        form.addRow(buttons)

    def paint_spec(self) -> PaintSpec:
        values = {name: edit.text().strip() for name, edit in self._edits.items()}
        return custom_theme(**values)

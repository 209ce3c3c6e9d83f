"""Entry point — CaptionSync."""
import logging
import sys
import os

# Make sure the workspace root is on sys.path so `captionsync` is importable
ROOT = os.path.dirname(os.path.abspath(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from captionsync.config import get_config  # noqa: E402

_cfg = get_config()

_handlers: list[logging.Handler] = [
    logging.StreamHandler(sys.stdout),
    logging.FileHandler(_cfg.log_file, encoding="utf-8"),
]

logging.basicConfig(
    level=getattr(logging, _cfg.log_level, logging.DEBUG),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
    handlers=_handlers,
)

from PySide6.QtWidgets import QApplication  # noqa: E402
from captionsync.main_window import MainWindow  # noqa: E402


def main() -> None:
    app = QApplication(sys.argv)
    app.setApplicationName("CaptionSync")
    app.setOrganizationName("captionsync")

    logging.getLogger(__name__).debug("Configuration: %s", _cfg.as_dict())
    window = MainWindow()
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()

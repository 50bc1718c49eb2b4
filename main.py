"""
JPEG Quality
Drop JPEG files on the window to save a recompressed copy of each next to it.
"""

import logging
import os
import sys
from typing import Callable, Optional

from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QLabel, QPushButton, QComboBox, QProgressBar, QMessageBox, QToolBar
)
from PyQt6.QtCore import Qt, QTimer, pyqtSignal
from PyQt6.QtGui import QIntValidator, QDragEnterEvent, QDragMoveEvent, QDropEvent

from quality_setting import QualitySetting
from recompress import (
    BatchController, JpegCodec, RunOutcome, RunStatus,
    MIN_QUALITY, MAX_QUALITY, is_valid_batch,
)

logger = logging.getLogger(__name__)

DEBUG_ENV = 'JPEG_QUALITY_DEBUG'
QUALITY_CHOICES = [str(q) for q in range(5, MAX_QUALITY + 1, 5)]

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID_ARGS = 2


# -----------------------------------------------------------------------------
# Visual Theme
# -----------------------------------------------------------------------------

DARK_THEME_STYLESHEET = """
QWidget {
    color: #E0E0E0;
    background-color: #1E1E1E;
    font-family: "Segoe UI", sans-serif;
    font-size: 10pt;
}

QToolBar {
    background-color: #252526;
    border-bottom: 1px solid #3A3A3A;
    spacing: 6px;
    padding: 4px;
}

QComboBox {
    background-color: #2D2D2D;
    border: 1px solid #3E3E3E;
    border-radius: 4px;
    padding: 3px 6px;
    min-width: 60px;
}
QComboBox:disabled {
    color: #606060;
}

/* Drop target */
QLabel#dropLabel {
    border: 2px dashed #505050;
    border-radius: 8px;
    color: #AAAAAA;
    padding: 20px;
}
QLabel#dropLabel[dragActive="true"] {
    border-color: #64B5F6;
    color: #FFFFFF;
}

QPushButton {
    background-color: #3C3C3C;
    border: 1px solid #505050;
    border-radius: 6px;
    padding: 4px 12px;
}
QPushButton:disabled {
    background-color: #252525;
    color: #606060;
    border-color: #303030;
}

QProgressBar {
    border: 1px solid #3E3E3E;
    border-radius: 4px;
    text-align: center;
    background-color: #2D2D2D;
}
QProgressBar::chunk {
    background-color: #0D47A1;
    border-radius: 3px;
}
"""


class DropLabel(QLabel):
    """Label that accepts dropped files when ``accepts(paths)`` says so."""

    files_dropped = pyqtSignal(list)

    def __init__(self, text: str, accepts: Callable[[list], bool], parent=None):
        super().__init__(text, parent)
        self.accepts = accepts
        self.setObjectName('dropLabel')
        self.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.setWordWrap(True)
        self.setAcceptDrops(True)

    @staticmethod
    def local_paths(event) -> list[str]:
        """Local file paths carried by a drag/drop event."""
        mime = event.mimeData()
        if not mime.hasUrls():
            return []
        return [url.toLocalFile() for url in mime.urls()]

    def _set_drag_active(self, active: bool):
        self.setProperty('dragActive', active)
        self.style().unpolish(self)
        self.style().polish(self)

    def _check(self, event):
        paths = self.local_paths(event)
        if paths and self.accepts(paths):
            event.setDropAction(Qt.DropAction.CopyAction)
            event.accept()
            self._set_drag_active(True)
        else:
            event.ignore()
            self._set_drag_active(False)

    def dragEnterEvent(self, event: QDragEnterEvent):
        self._check(event)

    def dragMoveEvent(self, event: QDragMoveEvent):
        self._check(event)

    def dragLeaveEvent(self, event):
        self._set_drag_active(False)
        super().dragLeaveEvent(event)

    def dropEvent(self, event: QDropEvent):
        self._set_drag_active(False)
        paths = self.local_paths(event)
        if paths and self.accepts(paths):
            logger.debug("Files dropped: %s", paths)
            event.setDropAction(Qt.DropAction.CopyAction)
            event.accept()
            self.files_dropped.emit(paths)
        else:
            event.ignore()


class MainWindow(QMainWindow):
    """Main application window."""

    def __init__(
        self,
        quality_setting: Optional[QualitySetting] = None,
        startup_files: Optional[list[str]] = None,
        codec: Optional[JpegCodec] = None,
    ):
        super().__init__()
        self.quality_setting = quality_setting or QualitySetting()
        self.startup_files = list(startup_files or [])
        self._startup_run = False
        self.controller = BatchController(codec=codec, parent=self)
        self.controller.progress_updated.connect(self.on_progress_updated)
        self.controller.run_finished.connect(self.on_run_finished)
        self.init_ui()

    def init_ui(self):
        """Initialize the user interface."""
        self.setWindowTitle("JPEG Quality")
        self.setMinimumSize(320, 180)

        # Toolbar: quality selector
        toolbar = QToolBar("Quality")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)
        toolbar.addWidget(QLabel("Quality"))

        self.quality_box = QComboBox()
        self.quality_box.setEditable(True)
        self.quality_box.addItems(QUALITY_CHOICES)
        self.quality_box.setValidator(QIntValidator(MIN_QUALITY, MAX_QUALITY, self))
        self.quality_box.setEditText(str(self.quality_setting.get()))
        self.quality_box.activated.connect(lambda _index: self.commit_quality())
        self.quality_box.lineEdit().editingFinished.connect(self.commit_quality)
        toolbar.addWidget(self.quality_box)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        layout = QVBoxLayout(central_widget)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(10)

        self.drop_label = DropLabel(
            "Drop JPEG files here to reduce their quality.\n"
            "A copy will be placed in the same directory.",
            self.can_accept,
        )
        self.drop_label.files_dropped.connect(self.submit_files)
        layout.addWidget(self.drop_label, 1)

        progress_layout = QHBoxLayout()
        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 1)
        self.progress_bar.setValue(0)
        self.progress_bar.setFormat("%v / %m")
        progress_layout.addWidget(self.progress_bar, 1)

        self.cancel_btn = QPushButton("Cancel")
        self.cancel_btn.setEnabled(False)
        self.cancel_btn.clicked.connect(self.cancel_batch)
        progress_layout.addWidget(self.cancel_btn)
        layout.addLayout(progress_layout)

    # -------------------------------------------------------------------------
    # Quality
    # -------------------------------------------------------------------------

    def commit_quality(self):
        """Persist the quality typed or picked in the selector."""
        text = self.quality_box.currentText().strip()
        try:
            self.quality_setting.set(int(text))
        except ValueError:
            # Not a usable number yet, show the stored value again
            self.quality_box.setEditText(str(self.quality_setting.get()))

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def can_accept(self, paths: list) -> bool:
        """Whether a drag carrying ``paths`` should show the accept cursor."""
        return not self.controller.is_busy() and is_valid_batch(paths)

    def submit_files(self, paths: list) -> bool:
        """Start a batch at the stored quality. Returns False if ignored."""
        try:
            quality = self.quality_setting.get()
            started = self.controller.submit(paths, quality)
        except Exception as e:
            logger.exception("Could not start batch")
            QMessageBox.critical(self, type(e).__name__, str(e))
            return False

        if started:
            self.set_ui_enabled(False)
        return started

    def cancel_batch(self):
        """Stop the running batch before its next file."""
        self.controller.cancel()
        self.cancel_btn.setEnabled(False)

    def set_ui_enabled(self, enabled: bool):
        """Enable or disable inputs while a batch runs."""
        self.quality_box.setEnabled(enabled)
        self.cancel_btn.setEnabled(not enabled)

    def on_progress_updated(self, completed: int, total: int):
        """Handle progress updates from the worker thread."""
        self.progress_bar.setMaximum(total)
        self.progress_bar.setValue(completed)

    def on_run_finished(self, outcome: RunOutcome):
        """Handle the end of a batch."""
        self.set_ui_enabled(True)

        if outcome.status is RunStatus.FAILED:
            QMessageBox.critical(
                self,
                outcome.error.value if outcome.error else "Error",
                f"File {outcome.index + 1} of {outcome.total} failed:\n"
                f"{outcome.path or ''}\n\n{outcome.message}",
            )

        startup_run, self._startup_run = self._startup_run, False
        if startup_run and outcome.status is not RunStatus.CANCELLED:
            QApplication.exit(EXIT_OK if outcome.ok else EXIT_FAILED)

    # -------------------------------------------------------------------------
    # Startup batch
    # -------------------------------------------------------------------------

    def start_startup_batch(self):
        """Run the files given on the command line, if any."""
        if not self.startup_files:
            return
        logger.info("Processing %d file(s) from the command line", len(self.startup_files))
        if not is_valid_batch(self.startup_files):
            QMessageBox.critical(
                self,
                "Invalid files",
                "Only .jpg and .jpeg files can be processed:\n" + "\n".join(self.startup_files),
            )
            QApplication.exit(EXIT_INVALID_ARGS)
        elif self.submit_files(self.startup_files):
            self._startup_run = True
        else:
            QApplication.exit(EXIT_FAILED)

    def closeEvent(self, event):
        """Cancel a running batch and let the current file finish."""
        if self.controller.is_busy():
            logger.info("Window closing, cancelling batch")
            self.controller.cancel()
            self.controller.wait()
        event.accept()


def main():
    """Application entry point."""
    logging.basicConfig(
        level=logging.DEBUG if os.environ.get(DEBUG_ENV) else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    app = QApplication(sys.argv)
    app.setStyle('Fusion')
    app.setStyleSheet(DARK_THEME_STYLESHEET)

    window = MainWindow(startup_files=app.arguments()[1:])
    window.show()
    QTimer.singleShot(0, window.start_startup_batch)

    sys.exit(app.exec())


if __name__ == '__main__':
    main()

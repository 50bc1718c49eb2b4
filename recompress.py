"""
Batch JPEG recompression.

Everything between "the user dropped some files" and "new files exist on
disk": the naming policy, the batch validator, the sequential encode loop and
the Qt worker/controller pair that runs it off the GUI thread.
"""

import enum
import logging
import os
import re
import threading
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence, Union

from PyQt6.QtCore import QObject, QThread, pyqtSignal
from PIL import Image

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

MIN_QUALITY = 0
MAX_QUALITY = 100
JPEG_PATTERN = re.compile(r'\.jpe?g$', re.IGNORECASE)

# Modes the JPEG encoder stores as-is
JPEG_MODES = ('L', 'RGB', 'CMYK')


# -----------------------------------------------------------------------------
# Naming & validation
# -----------------------------------------------------------------------------

def destination_path(source: PathLike, quality: int) -> Path:
    """Return the sibling output path ``<dir>/<stem>-<quality><suffix>``."""
    source = Path(source)
    return source.with_name(f"{source.stem}-{quality}{source.suffix}")


def is_valid_batch(paths: Iterable[PathLike]) -> bool:
    """True if every path has a .jpg/.jpeg extension (any case)."""
    return all(JPEG_PATTERN.search(os.fspath(p)) for p in paths)


def check_quality(quality: int) -> int:
    """Validate a quality value, returning it unchanged."""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise ValueError(f"Quality must be an integer, got {quality!r}")
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise ValueError(f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}")
    return quality


# -----------------------------------------------------------------------------
# Outcomes
# -----------------------------------------------------------------------------

class RunStatus(enum.Enum):
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


class ErrorKind(enum.Enum):
    FILE_NOT_FOUND = 'File not found'
    IO_ERROR = 'I/O error'
    CODEC_ERROR = 'Codec error'


@dataclass(frozen=True)
class RunOutcome:
    """Terminal state of one batch run."""
    status: RunStatus
    completed: int
    total: int
    error: Optional[ErrorKind] = None
    index: Optional[int] = None
    path: Optional[Path] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED


class RecompressError(Exception):
    """A file in the batch could not be recompressed."""

    def __init__(self, kind: ErrorKind, path: Path, message: str):
        super().__init__(f"{kind.value}: {path}: {message}")
        self.kind = kind
        self.path = path
        self.message = message


# -----------------------------------------------------------------------------
# Codec
# -----------------------------------------------------------------------------

class JpegCodec:
    """Decode JPEG bytes into pixels and encode pixels at a given quality."""

    def decode(self, data: bytes) -> Image.Image:
        img = Image.open(BytesIO(data), formats=['JPEG'])
        img.load()
        return img

    def encode(self, img: Image.Image, quality: int) -> bytes:
        # Metadata lives on the decoded image, convert() drops it
        icc_profile = img.info.get('icc_profile')
        exif = img.info.get('exif')

        if img.mode not in JPEG_MODES:
            img = img.convert('RGB')

        save_params = {'format': 'JPEG', 'quality': quality}
        if icc_profile:
            save_params['icc_profile'] = icc_profile
        if exif:
            save_params['exif'] = exif

        buffer = BytesIO()
        img.save(buffer, **save_params)
        return buffer.getvalue()


def recompress_file(source: Path, quality: int, codec: JpegCodec) -> Path:
    """Write a recompressed copy of ``source`` and return its path.

    Raises RecompressError tagged with what went wrong. The source file is
    only ever read.
    """
    if not source.is_file():
        raise RecompressError(ErrorKind.FILE_NOT_FOUND, source, "File does not exist.")

    try:
        data = source.read_bytes()
    except FileNotFoundError as e:
        raise RecompressError(ErrorKind.FILE_NOT_FOUND, source, str(e)) from e
    except OSError as e:
        raise RecompressError(ErrorKind.IO_ERROR, source, str(e)) from e

    try:
        img = codec.decode(data)
    except Exception as e:
        raise RecompressError(ErrorKind.CODEC_ERROR, source, str(e)) from e

    dest = destination_path(source, quality)

    try:
        with img:
            encoded = codec.encode(img, quality)
    except Exception as e:
        raise RecompressError(ErrorKind.CODEC_ERROR, source, str(e)) from e

    try:
        dest.write_bytes(encoded)
    except OSError as e:
        raise RecompressError(ErrorKind.IO_ERROR, dest, str(e)) from e

    return dest


# -----------------------------------------------------------------------------
# Batch loop
# -----------------------------------------------------------------------------

def run_batch(
    files: Sequence[PathLike],
    quality: int,
    progress: Callable[[int, int], None],
    is_cancelled: Callable[[], bool],
    codec: Optional[JpegCodec] = None,
) -> RunOutcome:
    """Recompress ``files`` one after another.

    ``progress(completed, total)`` is called once before the first file and
    once after each written file. ``is_cancelled()`` is polled before each
    file; a file that has started always finishes. The first error ends the
    run, later files are left alone.
    """
    check_quality(quality)
    if not files:
        raise ValueError("Cannot run an empty batch")

    codec = codec or JpegCodec()
    total = len(files)
    completed = 0
    logger.info("Recompressing %d file(s) at quality %d", total, quality)
    progress(completed, total)

    for index, file in enumerate(files):
        if is_cancelled():
            logger.info("Batch cancelled after %d of %d file(s)", completed, total)
            return RunOutcome(RunStatus.CANCELLED, completed, total)

        source = Path(file).absolute()
        try:
            dest = recompress_file(source, quality, codec)
        except RecompressError as e:
            logger.error("Batch failed at file %d (%s)", index, e, exc_info=e.__cause__)
            return RunOutcome(
                RunStatus.FAILED, completed, total,
                error=e.kind, index=index, path=e.path, message=e.message,
            )

        logger.debug("Wrote %s", dest)
        completed += 1
        progress(completed, total)

    logger.info("Batch complete: %d file(s)", total)
    return RunOutcome(RunStatus.COMPLETED, completed, total)


# -----------------------------------------------------------------------------
# Qt plumbing
# -----------------------------------------------------------------------------

class RecompressWorker(QThread):
    """Background thread running one batch."""

    progress_updated = pyqtSignal(int, int)  # completed, total
    run_finished = pyqtSignal(object)  # RunOutcome

    def __init__(self, files: Sequence[PathLike], quality: int,
                 codec: Optional[JpegCodec] = None, parent=None):
        super().__init__(parent)
        self.files = list(files)
        self.quality = quality
        self.codec = codec
        self._cancelled = False
        self._lock = threading.Lock()

    def cancel(self):
        """Request cancellation before the next file."""
        with self._lock:
            self._cancelled = True

    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        with self._lock:
            return self._cancelled

    def run(self):
        """Execute the batch and report its outcome."""
        try:
            outcome = run_batch(
                self.files,
                self.quality,
                self.progress_updated.emit,
                self.is_cancelled,
                self.codec,
            )
        except Exception as e:
            logger.exception("Recompression worker crashed")
            outcome = RunOutcome(
                RunStatus.FAILED, 0, len(self.files),
                error=ErrorKind.IO_ERROR, index=0, message=str(e),
            )
        self.run_finished.emit(outcome)


class BatchController(QObject):
    """Owns at most one running worker; submissions while busy are ignored."""

    progress_updated = pyqtSignal(int, int)
    run_finished = pyqtSignal(object)

    def __init__(self, codec: Optional[JpegCodec] = None, parent=None):
        super().__init__(parent)
        self._codec = codec
        self._worker: Optional[RecompressWorker] = None

    def is_busy(self) -> bool:
        return self._worker is not None

    def submit(self, files: Iterable[PathLike], quality: int) -> bool:
        """Start a run for ``files``. Returns False if nothing was started."""
        check_quality(quality)
        files = list(files)

        if self.is_busy():
            logger.info("Ignoring batch of %d file(s): a run is already active", len(files))
            return False
        if not files or not is_valid_batch(files):
            logger.info("Ignoring invalid batch: %s", files)
            return False

        worker = RecompressWorker(files, quality, self._codec, self)
        worker.progress_updated.connect(self.progress_updated)
        worker.run_finished.connect(self._on_run_finished)
        self._worker = worker
        worker.start()
        return True

    def cancel(self):
        """Ask the active run, if any, to stop before its next file."""
        if self._worker:
            self._worker.cancel()

    def wait(self, msecs: int = -1) -> bool:
        """Block until the active worker thread exits."""
        if not self._worker:
            return True
        if msecs < 0:
            return self._worker.wait()
        return self._worker.wait(msecs)

    def _on_run_finished(self, outcome: RunOutcome):
        worker, self._worker = self._worker, None
        if worker:
            worker.wait()
            worker.deleteLater()
        self.run_finished.emit(outcome)

"""Persisted JPEG quality, stored with QSettings."""

import logging
from typing import Optional

from PyQt6.QtCore import QSettings

from recompress import check_quality

logger = logging.getLogger(__name__)

ORGANIZATION = 'JpegQuality'
APPLICATION = 'JpegQuality'
QUALITY_KEY = 'Quality'
DEFAULT_QUALITY = 60


class QualitySetting:
    """Get/set access to the last quality the user picked."""

    def __init__(self, settings: Optional[QSettings] = None):
        self.settings = settings if settings is not None else QSettings(ORGANIZATION, APPLICATION)
        # First run: store the default so the value exists
        if not self.settings.contains(QUALITY_KEY):
            self.set(DEFAULT_QUALITY)

    def get(self) -> int:
        """Return the stored quality, or the default if it is missing or bad."""
        raw = self.settings.value(QUALITY_KEY, DEFAULT_QUALITY)
        try:
            return check_quality(int(raw))
        except (TypeError, ValueError):
            logger.warning("Ignoring stored quality %r, using %d", raw, DEFAULT_QUALITY)
            return DEFAULT_QUALITY

    def set(self, value: int):
        """Store a new quality (0-100)."""
        self.settings.setValue(QUALITY_KEY, check_quality(value))
        self.settings.sync()
        logger.debug("Quality set to %d", value)

import os
import threading

os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')

import pytest
from PIL import Image

from recompress import JpegCodec


class RecordingCodec(JpegCodec):
    """JpegCodec that remembers how many images it decoded."""

    def __init__(self):
        self.decoded = 0

    def decode(self, data):
        self.decoded += 1
        return super().decode(data)


class GatedCodec(RecordingCodec):
    """Blocks every decode until ``gate`` is set."""

    def __init__(self):
        super().__init__()
        self.gate = threading.Event()
        self.entered = threading.Event()

    def decode(self, data):
        self.entered.set()
        self.gate.wait(10)
        return super().decode(data)


@pytest.fixture
def make_jpegs(tmp_path):
    """Factory writing ``count`` small JPEG files into a fresh folder."""

    def _make(count, folder='batch', suffix='.jpg'):
        directory = tmp_path / folder
        directory.mkdir(exist_ok=True)
        paths = []
        for i in range(count):
            path = directory / f"photo{i}{suffix}"
            Image.new('RGB', (32, 24), (40 * i, 120, 200)).save(path, 'JPEG', quality=95)
            paths.append(path)
        return paths

    return _make


@pytest.fixture
def recording_codec():
    return RecordingCodec()


@pytest.fixture
def gated_codec():
    codec = GatedCodec()
    yield codec
    codec.gate.set()

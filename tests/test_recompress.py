from pathlib import Path

import pytest
from PIL import Image

from recompress import (
    ErrorKind, JpegCodec, RunStatus,
    check_quality, destination_path, is_valid_batch, run_batch,
)


class TestDestinationPath:
    def test_appends_quality_before_extension(self):
        assert destination_path(Path('/photos/cat.jpg'), 60) == Path('/photos/cat-60.jpg')

    def test_keeps_extension_case(self):
        assert destination_path('/photos/DOG.JPEG', 5) == Path('/photos/DOG-5.JPEG')

    def test_only_last_suffix_is_the_extension(self):
        assert destination_path('/p/a.b.jpg', 80) == Path('/p/a.b-80.jpg')

    def test_recomputing_never_raises(self):
        for quality in range(0, 101):
            once = destination_path('/p/img.jpg', quality)
            twice = destination_path(once, quality)
            assert twice == Path(f'/p/img-{quality}-{quality}.jpg')

    def test_is_deterministic(self):
        assert destination_path('x/y.jpg', 42) == destination_path('x/y.jpg', 42)


class TestIsValidBatch:
    def test_accepts_jpg_and_jpeg_any_case(self):
        assert is_valid_batch(['a.jpg', 'B.JPEG'])

    def test_rejects_other_extensions(self):
        assert not is_valid_batch(['a.png'])

    def test_one_bad_entry_rejects_batch(self):
        assert not is_valid_batch(['a.jpg', 'b.png'])

    def test_empty_batch_is_vacuously_valid(self):
        assert is_valid_batch([])

    def test_extension_must_be_at_the_end(self):
        assert not is_valid_batch(['a.jpg.txt', 'jpg'])

    def test_accepts_path_objects(self):
        assert is_valid_batch([Path('/a/b.Jpg'), Path('c.jpeg')])


class TestCheckQuality:
    @pytest.mark.parametrize('quality', [0, 1, 60, 100])
    def test_in_range(self, quality):
        assert check_quality(quality) == quality

    @pytest.mark.parametrize('quality', [-1, 101, 50.0, '60', True])
    def test_rejected(self, quality):
        with pytest.raises(ValueError):
            check_quality(quality)


class TestRunBatch:
    @pytest.mark.parametrize('quality', [0, 50, 100])
    def test_reports_progress_and_completes(self, make_jpegs, quality):
        files = make_jpegs(3)
        seen = []

        outcome = run_batch(files, quality, lambda c, t: seen.append((c, t)), lambda: False)

        assert seen == [(0, 3), (1, 3), (2, 3), (3, 3)]
        assert outcome.status is RunStatus.COMPLETED
        assert outcome.ok
        assert (outcome.completed, outcome.total) == (3, 3)
        for f in files:
            with Image.open(destination_path(f, quality)) as out:
                assert out.format == 'JPEG'
                assert out.size == (32, 24)

    def test_source_is_left_untouched(self, make_jpegs):
        (source,) = make_jpegs(1)
        before = source.read_bytes()

        run_batch([source], 10, lambda c, t: None, lambda: False)

        assert source.read_bytes() == before

    def test_cancel_after_first_file(self, make_jpegs, recording_codec):
        files = make_jpegs(3)
        seen = []

        outcome = run_batch(
            files, 50,
            lambda c, t: seen.append((c, t)),
            lambda: len(seen) >= 2,
            recording_codec,
        )

        assert outcome.status is RunStatus.CANCELLED
        assert outcome.completed == 1
        assert seen == [(0, 3), (1, 3)]
        assert recording_codec.decoded == 1
        assert destination_path(files[0], 50).exists()
        assert not destination_path(files[1], 50).exists()
        assert not destination_path(files[2], 50).exists()

    def test_cancel_before_start_touches_nothing(self, make_jpegs, recording_codec):
        files = make_jpegs(2)

        outcome = run_batch(files, 50, lambda c, t: None, lambda: True, recording_codec)

        assert outcome.status is RunStatus.CANCELLED
        assert outcome.completed == 0
        assert recording_codec.decoded == 0

    def test_missing_file_fails_fast(self, make_jpegs, recording_codec):
        files = make_jpegs(3)
        files[1].unlink()
        seen = []

        outcome = run_batch(files, 70, lambda c, t: seen.append((c, t)), lambda: False, recording_codec)

        assert outcome.status is RunStatus.FAILED
        assert outcome.error is ErrorKind.FILE_NOT_FOUND
        assert outcome.index == 1
        assert outcome.completed == 1
        assert outcome.path == files[1]
        assert seen == [(0, 3), (1, 3)]
        assert recording_codec.decoded == 1
        assert destination_path(files[0], 70).exists()
        assert not destination_path(files[2], 70).exists()

    def test_corrupt_content_is_codec_error(self, make_jpegs):
        files = make_jpegs(2)
        files[0].write_bytes(b'definitely not a jpeg')

        outcome = run_batch(files, 50, lambda c, t: None, lambda: False)

        assert outcome.status is RunStatus.FAILED
        assert outcome.error is ErrorKind.CODEC_ERROR
        assert outcome.index == 0
        assert not destination_path(files[1], 50).exists()

    def test_png_content_with_jpg_name_is_codec_error(self, tmp_path):
        fake = tmp_path / 'fake.jpg'
        Image.new('RGB', (4, 4)).save(fake, 'PNG')

        outcome = run_batch([fake], 50, lambda c, t: None, lambda: False)

        assert outcome.error is ErrorKind.CODEC_ERROR

    def test_unwritable_destination_is_io_error(self, make_jpegs):
        (source,) = make_jpegs(1)
        destination_path(source, 50).mkdir()

        outcome = run_batch([source], 50, lambda c, t: None, lambda: False)

        assert outcome.status is RunStatus.FAILED
        assert outcome.error is ErrorKind.IO_ERROR
        assert outcome.index == 0
        assert outcome.completed == 0

    def test_existing_output_is_overwritten(self, make_jpegs):
        (source,) = make_jpegs(1)
        dest = destination_path(source, 50)
        dest.write_bytes(b'old')

        outcome = run_batch([source], 50, lambda c, t: None, lambda: False)

        assert outcome.ok
        assert dest.read_bytes()[:2] == b'\xff\xd8'

    def test_rejects_bad_quality(self, make_jpegs):
        with pytest.raises(ValueError):
            run_batch(make_jpegs(1), 101, lambda c, t: None, lambda: False)

    def test_rejects_empty_batch(self):
        with pytest.raises(ValueError):
            run_batch([], 50, lambda c, t: None, lambda: False)


class TestJpegCodec:
    def test_keeps_exif(self, tmp_path):
        source = tmp_path / 'exif.jpg'
        exif = Image.Exif()
        exif[0x010F] = 'Maker'
        Image.new('RGB', (8, 8), 'red').save(source, 'JPEG', exif=exif)

        codec = JpegCodec()
        encoded = codec.encode(codec.decode(source.read_bytes()), 30)

        out = tmp_path / 'out.jpg'
        out.write_bytes(encoded)
        with Image.open(out) as img:
            assert img.getexif()[0x010F] == 'Maker'

    def test_keeps_grayscale_mode(self, tmp_path):
        source = tmp_path / 'gray.jpg'
        Image.new('L', (8, 8), 128).save(source, 'JPEG')

        codec = JpegCodec()
        encoded = codec.encode(codec.decode(source.read_bytes()), 30)

        out = tmp_path / 'out.jpg'
        out.write_bytes(encoded)
        with Image.open(out) as img:
            assert img.mode == 'L'

    def test_lower_quality_gives_smaller_file(self, tmp_path):
        source = tmp_path / 'noise.jpg'
        Image.effect_noise((64, 64), 64).convert('RGB').save(source, 'JPEG', quality=95)

        codec = JpegCodec()
        img = codec.decode(source.read_bytes())
        assert len(codec.encode(img, 10)) < len(codec.encode(img, 95))

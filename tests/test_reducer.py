import pytest

from explainit.errors import EncodingError
from explainit.models import ImageAsset
from explainit.reducer import SizeReducer, encode_jpeg

from conftest import make_image

MIB = 1024 * 1024


def asset(data: bytes) -> ImageAsset:
    return ImageAsset(uri="test://image", data=data)


class TestQualitySchedule:
    def test_default_schedule(self):
        reducer = SizeReducer()
        assert reducer.quality_schedule == [70, 60, 50, 40, 30, 20, 10]
        assert reducer.max_iterations == (70 - 10) // 10 + 1

    def test_schedule_stops_at_floor(self):
        reducer = SizeReducer(start_quality=90, quality_floor=10, quality_step=15)
        assert reducer.quality_schedule == [90, 75, 60, 45, 30, 15]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"quality_step": 0},
            {"quality_floor": 0},
            {"start_quality": 5, "quality_floor": 10},
            {"start_quality": 101},
        ],
    )
    def test_rejects_unbounded_configuration(self, kwargs):
        with pytest.raises(ValueError):
            SizeReducer(**kwargs)


class TestReduce:
    def test_small_image_needs_one_encode(self, small_png):
        payload = SizeReducer().reduce(asset(small_png), MIB)

        assert len(payload.attempts) == 1
        assert payload.quality == 70
        assert payload.within_ceiling
        assert payload.data[:2] == b"\xff\xd8"
        assert (payload.width, payload.height) == (200, 100)

    def test_wide_image_resized_to_baseline(self):
        raw = make_image(2560, 400)
        payload = SizeReducer().reduce(asset(raw), MIB)
        assert (payload.width, payload.height) == (1280, 200)

    def test_narrow_image_not_upscaled(self):
        raw = make_image(640, 480)
        payload = SizeReducer().reduce(asset(raw), MIB)
        assert (payload.width, payload.height) == (640, 480)

    def test_lowers_quality_until_under_ceiling(self, noise_png):
        reducer = SizeReducer()
        prepared = reducer._prepare(noise_png)
        first = len(encode_jpeg(prepared, 70))
        last = len(encode_jpeg(prepared, 10))
        ceiling = (first + last) // 2

        payload = reducer.reduce(asset(noise_png), ceiling)

        assert payload.size <= ceiling
        assert payload.within_ceiling
        assert payload.quality < 70
        assert 1 < len(payload.attempts) <= reducer.max_iterations
        assert payload.attempts[0] == (70, first)
        # every earlier candidate was over the ceiling
        assert all(size > ceiling for _, size in payload.attempts[:-1])
        assert payload.size <= min(size for _, size in payload.attempts)

    def test_unreachable_ceiling_returns_best_effort(self, noise_png):
        reducer = SizeReducer()
        payload = reducer.reduce(asset(noise_png), 100)

        assert len(payload.attempts) == reducer.max_iterations
        assert [q for q, _ in payload.attempts] == reducer.quality_schedule
        assert not payload.within_ceiling
        assert payload.size == min(size for _, size in payload.attempts)
        assert payload.size <= payload.attempts[0][1]

    def test_converts_transparent_png(self):
        raw = make_image(120, 80, mode="RGBA")
        payload = SizeReducer().reduce(asset(raw), MIB)
        assert payload.data[:2] == b"\xff\xd8"

    def test_reads_from_path(self, tmp_path, small_png):
        path = tmp_path / "photo.png"
        path.write_bytes(small_png)
        image = ImageAsset(uri=str(path), path=path)

        assert image.byte_size == len(small_png)
        payload = SizeReducer().reduce(image, MIB)
        assert payload.within_ceiling

    def test_corrupt_image_raises_encoding_error(self):
        with pytest.raises(EncodingError):
            SizeReducer().reduce(asset(b"definitely not an image"), MIB)

    def test_missing_file_raises_encoding_error(self, tmp_path):
        missing = tmp_path / "gone.jpg"
        with pytest.raises(EncodingError):
            SizeReducer().reduce(ImageAsset(uri="gone", path=missing), MIB)

    async def test_reduce_async_runs_in_executor(self, small_png):
        payload = await SizeReducer().reduce_async(asset(small_png), MIB)
        assert len(payload.attempts) == 1


class TestImageAsset:
    def test_requires_exactly_one_source(self, tmp_path):
        with pytest.raises(ValueError):
            ImageAsset(uri="x")
        with pytest.raises(ValueError):
            ImageAsset(uri="x", data=b"a", path=tmp_path / "a")

    def test_known_size_wins(self):
        assert ImageAsset(uri="x", data=b"abc", known_size=10).byte_size == 10
        assert ImageAsset(uri="x", data=b"abc").byte_size == 3

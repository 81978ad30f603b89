import asyncio
import io
import logging
from typing import List, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from explainit.config import get_settings
from explainit.errors import EncodingError
from explainit.models import EncodedPayload, ImageAsset

logger = logging.getLogger(__name__)


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


class SizeReducer:
    """Re-encodes an image as JPEG so that it fits under a byte ceiling.

    The image is resized once to the baseline width, then only the JPEG
    quality is lowered, following a finite schedule:

        start, start - step, ..., down to (and including) floor

    so at most ``(start - floor) // step + 1`` encodes happen. The first
    candidate that fits is returned. If none fits, the smallest candidate
    is returned rather than the last one encoded, so the result is never
    larger than any earlier attempt even when a lower quality happens to
    encode bigger. ``EncodedPayload.within_ceiling`` is False in that case.
    """

    def __init__(
        self,
        baseline_width: int = 1280,
        start_quality: int = 70,
        quality_floor: int = 10,
        quality_step: int = 10,
    ):
        if quality_step <= 0:
            raise ValueError("quality_step must be positive")
        if not 0 < quality_floor <= start_quality <= 100:
            raise ValueError(
                "expected 0 < quality_floor <= start_quality <= 100, got "
                f"floor={quality_floor} start={start_quality}"
            )
        self.baseline_width = baseline_width
        self.start_quality = start_quality
        self.quality_floor = quality_floor
        self.quality_step = quality_step

    @classmethod
    def from_settings(cls) -> "SizeReducer":
        settings = get_settings()
        return cls(
            baseline_width=settings.BASELINE_WIDTH,
            start_quality=settings.START_QUALITY,
            quality_floor=settings.QUALITY_FLOOR,
            quality_step=settings.QUALITY_STEP,
        )

    @property
    def quality_schedule(self) -> List[int]:
        return list(
            range(self.start_quality, self.quality_floor - 1, -self.quality_step)
        )

    @property
    def max_iterations(self) -> int:
        return len(self.quality_schedule)

    def _prepare(self, raw: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(raw))
            image.load()
            image = ImageOps.exif_transpose(image)
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
        ) as e:
            raise EncodingError(f"Could not decode image: {e}") from e

        if image.mode != "RGB":
            image = image.convert("RGB")

        if image.width > self.baseline_width:
            height = max(1, round(image.height * self.baseline_width / image.width))
            image = image.resize(
                (self.baseline_width, height), Image.Resampling.LANCZOS
            )
        return image

    def reduce(self, image: ImageAsset, byte_ceiling: int) -> EncodedPayload:
        try:
            raw = image.read_bytes()
        except OSError as e:
            raise EncodingError(f"Could not read {image.uri}: {e}") from e

        resized = self._prepare(raw)

        attempts: List[Tuple[int, int]] = []
        best: Optional[Tuple[int, bytes]] = None
        for quality in self.quality_schedule:
            try:
                data = encode_jpeg(resized, quality)
            except OSError as e:
                raise EncodingError(f"JPEG encode failed: {e}") from e
            attempts.append((quality, len(data)))

            if best is None or len(data) <= len(best[1]):
                best = (quality, data)
            if len(data) <= byte_ceiling:
                break

        quality, data = best
        payload = EncodedPayload(
            data=data,
            quality=quality,
            width=resized.width,
            height=resized.height,
            byte_ceiling=byte_ceiling,
            attempts=attempts,
        )

        if payload.within_ceiling:
            logger.info(
                "Reduced %s from %d to %d bytes (quality %d, %d encode(s))",
                image.uri, len(raw), payload.size, quality, len(attempts),
            )
        else:
            logger.warning(
                "Could not fit %s under %d bytes; sending best effort of %d "
                "bytes at quality %d",
                image.uri, byte_ceiling, payload.size, quality,
            )
        return payload

    async def reduce_async(
        self, image: ImageAsset, byte_ceiling: int
    ) -> EncodedPayload:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, lambda: self.reduce(image, byte_ceiling)
        )

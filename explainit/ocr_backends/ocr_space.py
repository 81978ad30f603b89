import base64
import logging
from typing import Optional

import httpx

from explainit.errors import OcrServiceError
from explainit.models import EncodedPayload
from explainit.ocr_backends.base import OCRBackend
from explainit.schemas import OcrSpaceResponse

logger = logging.getLogger(__name__)


class OcrSpaceBackend(OCRBackend):
    """OCR backend for the hosted OCR.space parse API.

    The image travels as a ``data:image/jpeg;base64,...`` URI in a multipart
    form next to the API key. One POST per call, no retries.
    """

    def __init__(
        self,
        url: str = "https://api.ocr.space/parse/image",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @staticmethod
    def to_data_uri(payload: EncodedPayload) -> str:
        base64_str = base64.b64encode(payload.data).decode("ascii")
        return f"data:image/jpeg;base64,{base64_str}"

    @staticmethod
    def parse_text(data: OcrSpaceResponse) -> str:
        """Text of the first parsed result, trimmed; "" when there is none."""
        if data.ParsedResults:
            return (data.ParsedResults[0].ParsedText or "").strip()
        if data.IsErroredOnProcessing:
            message = data.ErrorMessage
            if isinstance(message, list):
                message = "; ".join(message)
            raise OcrServiceError(f"OCR.space could not process image: {message}")
        return ""

    async def extract(self, payload: EncodedPayload, api_key: str) -> str:
        if not api_key:
            raise OcrServiceError(
                "OCR backend not configured: set OCR_API_KEY env var"
            )

        # (None, value) makes httpx send a plain multipart form field
        form = {
            "apikey": (None, api_key),
            "base64Image": (None, self.to_data_uri(payload)),
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._url, files=form)
                response.raise_for_status()
                data = OcrSpaceResponse.model_validate(response.json())
        except httpx.HTTPError as e:
            raise OcrServiceError(f"OCR request failed: {e}") from e
        except ValueError as e:
            raise OcrServiceError(f"Unexpected OCR response format: {e}") from e

        text = self.parse_text(data)
        logger.info(
            "OCR returned %d characters for a %d byte payload",
            len(text), payload.size,
        )
        return text

from abc import ABC, abstractmethod

from explainit.models import EncodedPayload


class OCRBackend(ABC):
    """Abstract base class for OCR backends.

    All backends must implement extract which takes an encoded JPEG payload
    and returns the recognised text as a plain string.
    """

    @abstractmethod
    async def extract(self, payload: EncodedPayload, api_key: str) -> str:
        """Submit an image to the OCR service and return its text.

        Args:
            payload: JPEG payload produced by the size reducer
            api_key: Credential for the OCR service

        Returns:
            The extracted text, whitespace-trimmed. An empty string means
            the service found no text; that is not an error.

        Raises:
            OcrServiceError: On transport failure, non-2xx status or an
                unparseable response. No retry is attempted.
        """
        ...

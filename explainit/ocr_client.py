from explainit.config import get_settings
from explainit.ocr_backends.base import OCRBackend
from explainit.ocr_backends.ocr_space import OcrSpaceBackend


def get_ocr_backend() -> OCRBackend:
    settings = get_settings()
    if settings.OCR_BACKEND != "ocr_space":
        raise ValueError(f"Unknown OCR_BACKEND '{settings.OCR_BACKEND}'")
    return OcrSpaceBackend(url=settings.OCR_URL, timeout=settings.HTTP_TIMEOUT)

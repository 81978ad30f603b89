from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    OCR_API_KEY: str = ""
    OCR_URL: str = "https://api.ocr.space/parse/image"
    OCR_BACKEND: str = "ocr_space"
    ANALYSIS_BASE_URL: str = "http://localhost:8080"
    HTTP_TIMEOUT: float = 60.0

    # JPEG qualities are percentages: 70 -> 0.7
    BYTE_CEILING: int = 1024 * 1024
    BASELINE_WIDTH: int = 1280
    START_QUALITY: int = 70
    QUALITY_FLOOR: int = 10
    QUALITY_STEP: int = 10

    MAX_FILE_SIZE_MB: int = 25

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()

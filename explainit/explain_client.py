import logging
from typing import Optional

import httpx

from explainit.config import get_settings
from explainit.errors import AnalysisServiceError
from explainit.schemas import AnalyzeRequest, AnalyzeResponse

logger = logging.getLogger(__name__)

NO_RESULT_FALLBACK = "No result from AI."


class ExplainClient:
    """Client for the text-analysis service (``POST /api/analyze``)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self._base_url}/api/analyze"

    async def explain(self, text: str) -> str:
        """Return the simplified explanation of ``text``.

        A response without a ``result`` is a successful run with nothing to
        say, and yields NO_RESULT_FALLBACK.
        """
        body = AnalyzeRequest(text=text).model_dump()
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.url,
                    json=body,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                data = AnalyzeResponse.model_validate(response.json())
        except httpx.HTTPError as e:
            raise AnalysisServiceError(f"Analysis request failed: {e}") from e
        except ValueError as e:
            raise AnalysisServiceError(
                f"Unexpected analysis response format: {e}"
            ) from e

        if not data.result:
            logger.info("Analysis service returned no result")
            return NO_RESULT_FALLBACK
        return data.result


def get_explain_client() -> ExplainClient:
    settings = get_settings()
    return ExplainClient(
        base_url=settings.ANALYSIS_BASE_URL, timeout=settings.HTTP_TIMEOUT
    )

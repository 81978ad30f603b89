import io
import random
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

from explainit.config import get_settings
from explainit.display import SessionDisplay
from explainit.main import app
from explainit.models import EncodedPayload
from explainit.orchestrator import PipelineOrchestrator
from explainit.reducer import SizeReducer


def make_image(width, height, noise=False, mode="RGB", fmt="PNG") -> bytes:
    if noise:
        rng = random.Random(width * 7919 + height)
        img = Image.frombytes(
            "RGB", (width, height), rng.randbytes(width * height * 3)
        )
        if mode != "RGB":
            img = img.convert(mode)
    else:
        img = Image.new(mode, (width, height), "white")
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def small_png() -> bytes:
    return make_image(200, 100)


@pytest.fixture
def noise_png() -> bytes:
    return make_image(400, 300, noise=True)


@pytest.fixture
def payload() -> EncodedPayload:
    return EncodedPayload(
        data=b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9",
        quality=70,
        width=10,
        height=10,
        byte_ceiling=1024 * 1024,
        attempts=[(70, 15)],
    )


@pytest.fixture
def mock_backend():
    backend = AsyncMock()
    backend.extract = AsyncMock(return_value="Invoice #123")
    return backend


@pytest.fixture
def mock_explainer():
    explainer = AsyncMock()
    explainer.explain = AsyncMock(return_value="This is an invoice reference.")
    return explainer


@pytest.fixture
def orchestrator(mock_backend, mock_explainer) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        display=SessionDisplay(),
        reducer=SizeReducer(),
        ocr_backend=mock_backend,
        explain_client=mock_explainer,
        api_key="test-key",
        byte_ceiling=1024 * 1024,
    )


@pytest_asyncio.fixture(scope="function")
async def client(orchestrator) -> AsyncGenerator[AsyncClient, None]:
    # ASGITransport does not run the lifespan, so the consumer is started here
    await orchestrator.start()

    with patch("explainit.routes.pipeline", orchestrator):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac

    await orchestrator.stop()

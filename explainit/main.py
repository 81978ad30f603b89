import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from explainit.config import get_settings
from explainit.routes import explain_router, health_router, pipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    logger.info("Starting ExplainIt service")

    settings = get_settings()
    if not settings.OCR_API_KEY:
        logger.warning("OCR_API_KEY is not set; text extraction will fail")

    await pipeline.start()

    yield

    logger.info("Shutting down ExplainIt service")
    await pipeline.stop()


app = FastAPI(
    title="ExplainIt",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(explain_router)
app.include_router(health_router)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

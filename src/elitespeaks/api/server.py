"""
FastAPI server for Elite Speaks.

Exposes transcript evaluation behind the admission-control queue, audio
transcription, and a few status endpoints. Shared services (the queue, the
providers, metrics) are built once in ``create_app`` and handed to the
route handlers through dependencies.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

import structlog
from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import SecretStr

from elitespeaks import __version__
from elitespeaks.core.config import Settings, get_settings
from elitespeaks.core.models import (
    EvaluationRequest,
    EvaluationResult,
    QueueStatus,
    TranscriptionResult,
    TranscriptionUrlRequest,
)
from elitespeaks.evaluation.parser import EvaluationParseError
from elitespeaks.evaluation.service import SpeechEvaluator
from elitespeaks.providers.base import (
    AuthenticationError,
    ProviderError,
    ProviderNotConfiguredError,
)
from elitespeaks.providers.deepgram_provider import (
    AudioTooLargeError,
    DeepgramProvider,
    EmptyTranscriptError,
    InvalidAudioError,
    TranscriptionError,
)
from elitespeaks.providers.gemini_provider import GeminiProvider
from elitespeaks.queue.request_queue import RequestQueue
from elitespeaks.utils.logging import setup_logging
from elitespeaks.utils.metrics import Metrics
from elitespeaks.utils.retry import RetryConfig, is_retryable_error

logger = structlog.get_logger()

BUSY_MESSAGE = (
    "The evaluation service is currently busy. Your request has been queued - "
    "please try again in a few moments."
)
TIMEOUT_MESSAGE = (
    "The evaluation is taking longer than expected due to high demand. "
    "Your request has been queued - please try again in a few moments."
)

router = APIRouter()


# Dependencies

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_queue(request: Request) -> RequestQueue:
    return request.app.state.queue


def get_evaluator(request: Request) -> SpeechEvaluator:
    return request.app.state.evaluator


def get_transcriber(request: Request) -> DeepgramProvider:
    return request.app.state.transcriber


def get_metrics(request: Request) -> Metrics:
    return request.app.state.metrics


def _secret(value: SecretStr | None) -> str | None:
    return value.get_secret_value() if value is not None else None


def _mask(value: SecretStr | None) -> str:
    secret = _secret(value)
    if not secret:
        return "Not set"
    return f"Set (starts with: {secret[:5]}...)"


def _finish_abandoned(
    abandoned: set[asyncio.Task],
) -> Callable[[asyncio.Task], None]:
    """Build a done-callback that collects the outcome of a timed-out evaluation."""

    def callback(task: asyncio.Task) -> None:
        abandoned.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                "Abandoned evaluation failed",
                error=str(error),
                error_type=type(error).__name__,
            )
        else:
            logger.info("Abandoned evaluation completed")

    return callback


def _busy_response(message: str = BUSY_MESSAGE, status_code: int = 429) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "inQueue": True},
    )


# Routes

@router.get("/")
async def api_info() -> dict[str, str]:
    """API information endpoint."""
    return {
        "name": "Elite Speaks API",
        "version": __version__,
        "description": "Speech practice transcription and evaluation",
    }


@router.get("/health")
async def health_check(
    settings: Settings = Depends(get_app_settings),
    queue: RequestQueue = Depends(get_queue),
) -> dict[str, Any]:
    """Health check endpoint."""
    providers = {
        "gemini": settings.providers.has_gemini,
        "deepgram": settings.providers.has_deepgram,
    }
    return {
        "status": "healthy" if all(providers.values()) else "degraded",
        "providers": providers,
        "queue": {
            "queue_length": queue.queue_length,
            "active_count": queue.active_count,
        },
    }


@router.get("/metrics")
async def get_metrics_summary(
    metrics: Metrics = Depends(get_metrics),
    limit: int = 20,
) -> dict[str, Any]:
    """Provider call metrics."""
    return {
        "summary": metrics.get_summary(),
        "recent": metrics.get_recent_requests(limit=limit),
    }


@router.get("/api/test-env")
async def test_env(settings: Settings = Depends(get_app_settings)) -> dict[str, str]:
    """Report which provider keys are configured, masked."""
    return {
        "geminiApiKey": _mask(settings.providers.gemini_api_key),
        "deepgramApiKey": _mask(settings.providers.deepgram_api_key),
    }


@router.get("/api/queue", response_model=QueueStatus)
async def queue_status(
    queue: RequestQueue = Depends(get_queue),
    evaluator: SpeechEvaluator = Depends(get_evaluator),
) -> QueueStatus:
    """Current depth of the evaluation queue."""
    return QueueStatus(
        queue_length=queue.queue_length,
        active_count=queue.active_count,
        max_concurrent=queue.max_concurrent,
        admission_threshold=evaluator.admission_threshold,
        accepting=evaluator.accepting,
        stats=queue.stats.to_dict(),
    )


@router.post("/api/evaluate", response_model=EvaluationResult)
async def evaluate_transcript(
    body: EvaluationRequest,
    request: Request,
    settings: Settings = Depends(get_app_settings),
    evaluator: SpeechEvaluator = Depends(get_evaluator),
) -> Any:
    """Evaluate a transcript, shedding load when the queue is backed up."""
    if not settings.providers.has_gemini:
        logger.error("Gemini API key is not set in environment variables")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Gemini API key not set",
                "errorType": "MISSING_API_KEY",
                "message": (
                    "The AI evaluation service is not properly configured. "
                    "Please add a GEMINI_API_KEY to your environment variables."
                ),
            },
        )

    if not (body.transcript or "").strip():
        return JSONResponse(status_code=400, content={"error": "No transcript provided"})

    if not evaluator.accepting:
        logger.warning(
            "Evaluation rejected, queue saturated",
            queue_length=evaluator.queue.queue_length,
            threshold=evaluator.admission_threshold,
        )
        return _busy_response()

    task = asyncio.ensure_future(evaluator.evaluate(body.transcript, body.topic))
    try:
        # shield: a timed-out caller must not abort the queued provider call
        return await asyncio.wait_for(
            asyncio.shield(task),
            timeout=settings.queue.request_timeout,
        )

    except asyncio.TimeoutError:
        logger.warning("Evaluation timed out", timeout=settings.queue.request_timeout)
        abandoned: set[asyncio.Task] = request.app.state.abandoned_evaluations
        abandoned.add(task)
        task.add_done_callback(_finish_abandoned(abandoned))
        return _busy_response(TIMEOUT_MESSAGE, status_code=408)

    except EvaluationParseError as e:
        logger.warning("Evaluation response unusable", error=str(e))
        return _busy_response()

    except AuthenticationError as e:
        logger.error("Evaluation provider rejected credentials", error=str(e))
        return JSONResponse(
            status_code=401,
            content={
                "error": "API authentication error",
                "errorType": "API_KEY_ERROR",
                "message": (
                    "There was a problem with the AI service authentication. "
                    "Please check your API key configuration."
                ),
            },
        )

    except ProviderError as e:
        if is_retryable_error(e):
            logger.warning("Evaluation provider still busy after retries", error=str(e))
            return _busy_response()
        logger.error("Evaluation failed", error=str(e), status_code=e.status_code)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to evaluate transcript", "message": str(e)},
        )

    except Exception as e:
        logger.exception("Evaluation failed")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to evaluate transcript", "message": str(e)},
        )


def _transcription_failed(error: TranscriptionError, metrics: Metrics) -> JSONResponse:
    metrics.record_error("deepgram", "transcribe", type(error).__name__)
    if isinstance(error, AudioTooLargeError):
        status_code = 413
    elif isinstance(error, InvalidAudioError):
        status_code = 415
    elif isinstance(error, EmptyTranscriptError):
        status_code = 422
    else:
        status_code = 502
        logger.error("Transcription failed", error=str(error), code=error.error_code)
    return JSONResponse(
        status_code=status_code,
        content={"error": str(error), "code": error.error_code},
    )


async def _run_transcription(
    call: Awaitable[TranscriptionResult],
    metrics: Metrics,
) -> Any:
    loop = asyncio.get_running_loop()
    start_time = loop.time()

    try:
        result = await call
    except TranscriptionError as e:
        return _transcription_failed(e, metrics)
    except ProviderNotConfiguredError:
        return JSONResponse(status_code=500, content={"error": "Deepgram API key not set"})

    metrics.record_success("deepgram", "transcribe", (loop.time() - start_time) * 1000)
    return result


@router.post("/api/transcribe", response_model=TranscriptionResult)
async def transcribe_upload(
    audio: UploadFile | None = File(default=None),
    settings: Settings = Depends(get_app_settings),
    transcriber: DeepgramProvider = Depends(get_transcriber),
    metrics: Metrics = Depends(get_metrics),
) -> Any:
    """Transcribe an uploaded audio file (multipart field ``audio``)."""
    if not settings.providers.has_deepgram:
        return JSONResponse(status_code=500, content={"error": "Deepgram API key not set"})

    if audio is None:
        return JSONResponse(status_code=400, content={"error": "No audio file provided"})

    # reject before reading the upload into memory
    try:
        transcriber.validate_audio(audio.size, audio.content_type)
    except TranscriptionError as e:
        return _transcription_failed(e, metrics)

    data = await audio.read()
    return await _run_transcription(
        transcriber.transcribe_bytes(data, audio.content_type),
        metrics,
    )


@router.post("/api/transcribe/url", response_model=TranscriptionResult)
async def transcribe_url(
    body: TranscriptionUrlRequest,
    settings: Settings = Depends(get_app_settings),
    transcriber: DeepgramProvider = Depends(get_transcriber),
    metrics: Metrics = Depends(get_metrics),
) -> Any:
    """Transcribe audio stored at a public URL."""
    if not settings.providers.has_deepgram:
        return JSONResponse(status_code=500, content={"error": "Deepgram API key not set"})

    return await _run_transcription(transcriber.transcribe_url(body.audio_url), metrics)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    server_settings = app.state.settings.server
    setup_logging(server_settings.log_level, json_format=server_settings.log_format == "json")
    logger.info(
        "Starting Elite Speaks API server",
        environment=app.state.settings.environment,
        max_concurrent=app.state.queue.max_concurrent,
        admission_threshold=app.state.evaluator.admission_threshold,
    )

    yield

    logger.info(
        "Shutting down Elite Speaks API server",
        pending=app.state.queue.queue_length,
        active=app.state.queue.active_count,
    )
    await app.state.transcriber.aclose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The evaluation queue is created here, once per application, and shared
    by every request through ``get_queue`` / ``get_evaluator``.
    """
    settings = settings or get_settings()
    queue_settings = settings.queue

    queue = RequestQueue(
        max_concurrent=queue_settings.max_concurrent,
        retry_config=RetryConfig(
            max_retries=queue_settings.max_retries,
            base_delay=queue_settings.retry_delay,
            exponential_base=queue_settings.backoff_multiplier,
        ),
    )
    metrics = Metrics()
    evaluator = SpeechEvaluator(
        GeminiProvider(
            api_key=_secret(settings.providers.gemini_api_key),
            model=settings.providers.gemini_model,
        ),
        queue,
        admission_threshold=queue_settings.admission_threshold,
        metrics=metrics,
    )
    transcriber = DeepgramProvider(
        api_key=_secret(settings.providers.deepgram_api_key),
        base_url=settings.providers.deepgram_base_url,
        model=settings.providers.deepgram_model,
    )

    app = FastAPI(
        title="Elite Speaks API",
        description="Speech practice transcription and AI evaluation",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.queue = queue
    app.state.metrics = metrics
    app.state.evaluator = evaluator
    app.state.transcriber = transcriber
    app.state.abandoned_evaluations = set()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)

    return app


app = create_app()


def run_server(
    host: str = "0.0.0.0",
    port: int = 8000,
    reload: bool = False,
) -> None:
    """Run the API server."""
    import uvicorn
    uvicorn.run(
        "elitespeaks.api.server:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    run_server()

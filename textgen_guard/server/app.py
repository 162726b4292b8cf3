"""
FastAPI application for constrained text generation.

The model is loaded once in the lifespan handler (startup failure is fatal:
uvicorn refuses to serve without a model) and released at shutdown. Request
handlers run generation in the threadpool so the event loop stays free while
requests queue on the generator's model lock.

Status codes:
    200  success, `{"output": str}` or a list of completions
    400  body is not valid JSON
    413  body larger than `max_body_bytes`
    422  body does not match TextGenQuery
    500  generation failed
    503  generator busy (waiting queue full) or model not loaded
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from textgen_guard.config import ServerConfig
from textgen_guard.exceptions import GenerationError, GeneratorBusyError
from textgen_guard.generator import TextGenerator
from textgen_guard.server.models import GenerateResponse, HealthResponse, TextGenQuery

logger = logging.getLogger(__name__)


def _check_body_size(request: Request, max_body_bytes: int) -> Optional[JSONResponse]:
    """Return a 413 response if Content-Length exceeds the limit, else None."""
    content_length_raw = request.headers.get("content-length")
    if content_length_raw is None:
        return None

    try:
        content_length = int(content_length_raw)
    except ValueError:
        return JSONResponse({"detail": "Invalid Content-Length header"}, status_code=400)

    if content_length > max_body_bytes:
        return _too_large(max_body_bytes, content_length)
    return None


def _too_large(limit: int, size: Optional[int] = None) -> JSONResponse:
    received = f"{size} bytes" if size is not None else "over the limit"
    return JSONResponse(
        {"detail": f"Request body too large: {received} (limit is {limit} bytes)"},
        status_code=413,
    )


async def _read_body(request: Request, max_body_bytes: int) -> Optional[bytes]:
    """Read the body in chunks; None as soon as it grows past the limit."""
    chunks = []
    total = 0
    async for chunk in request.stream():
        total += len(chunk)
        if total > max_body_bytes:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


def _validation_response(error: ValidationError) -> JSONResponse:
    errors = error.errors(include_url=False)
    status_code = 400 if any(e.get("type") == "json_invalid" for e in errors) else 422
    return JSONResponse({"detail": jsonable_encoder(errors)}, status_code=status_code)


def create_app(
    config: Optional[ServerConfig] = None,
    generator: Optional[TextGenerator] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        config: Server settings (defaults to ServerConfig.from_env())
        generator: Pre-built generator; when given, the lifespan does not load
                   or close a model (used by tests and embedding callers)

    Returns:
        FastAPI application
    """
    if config is None:
        config = generator.config if generator is not None else ServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.generator is not None:
            yield
            return

        logger.info(f"Loading model {config.model_id}...")
        # ModelLoadError propagates: the server must not start without a model
        loaded = await run_in_threadpool(TextGenerator.from_config, config)
        app.state.generator = loaded
        logger.info(f"Serving on http://{config.host}:{config.port}")

        try:
            yield
        finally:
            logger.info("Server shutting down...")
            app.state.generator = None
            await run_in_threadpool(loaded.close)

    app = FastAPI(
        title="TextGen Guard",
        description="Constrained text generation with sentence/paragraph caps and context grounding",
        lifespan=lifespan,
    )
    app.state.generator = generator
    app.state.config = config

    @app.post("/generate")
    async def generate(request: Request):
        size_error = _check_body_size(request, config.max_body_bytes)
        if size_error is not None:
            return size_error

        # chunked uploads carry no Content-Length
        body = await _read_body(request, config.max_body_bytes)
        if body is None:
            return _too_large(config.max_body_bytes)

        try:
            query = TextGenQuery.model_validate_json(body)
        except ValidationError as e:
            return _validation_response(e)

        active = request.app.state.generator
        if active is None:
            return JSONResponse({"detail": "Model not loaded"}, status_code=503)

        try:
            result = await run_in_threadpool(
                active.generate,
                query.prompt,
                query.context,
                query.generate_sentences,
                query.generate_paragraphs,
            )
        except GeneratorBusyError as e:
            return JSONResponse({"detail": str(e)}, status_code=503)
        except GenerationError as e:
            logger.error(f"Request failed: {e}")
            return JSONResponse({"detail": "Generation failed"}, status_code=500)

        if active.config.num_return_sequences == 1:
            return GenerateResponse(output=result.completions[0])
        return result.completions

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        active = request.app.state.generator
        if active is None:
            return HealthResponse(status="loading", model_loaded=False, model=config.model_id)

        info = active.backend.get_model_info()
        return HealthResponse(
            status="ok",
            model_loaded=True,
            model=info.get("model_id"),
            device=info.get("device"),
            busy=active.busy,
            waiting=active.waiting,
        )

    return app


def serve(config: ServerConfig) -> None:
    """Run the app under uvicorn until interrupted."""
    import uvicorn

    config.validate()
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )

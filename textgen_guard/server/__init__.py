"""
HTTP server module.

Exposes the constrained generator over FastAPI:

    POST /generate   {"prompt": ..., "context": [...], "generate_sentences": n,
                      "generate_paragraphs": m}
    GET  /health

Example:
    ```python
    from textgen_guard.config import ServerConfig
    from textgen_guard.server import serve

    serve(ServerConfig(model_id="gpt2", port=3030))
    ```
"""

from textgen_guard.server.app import create_app, serve
from textgen_guard.server.models import GenerateResponse, HealthResponse, TextGenQuery

__all__ = ["create_app", "serve", "TextGenQuery", "GenerateResponse", "HealthResponse"]

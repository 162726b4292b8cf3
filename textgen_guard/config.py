"""
Server and generation configuration.

Values come from constructor arguments, from `TEXTGEN_GUARD_*` environment
variables via `ServerConfig.from_env()`, or from CLI options layered on top
with `ServerConfig.override()`.

Usage:
    ```python
    from textgen_guard.config import ServerConfig

    config = ServerConfig.from_env()
    config = config.override(port=8080, num_return_sequences=5)
    config.validate()
    ```
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "TEXTGEN_GUARD_"

DEFAULT_MODEL_ID = "gpt2"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3030
DEFAULT_MAX_LENGTH = 200
DEFAULT_NUM_BEAMS = 5
DEFAULT_MAX_BODY_BYTES = 16 * 1024
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

# field name -> environment variable suffix
_ENV_NAMES = {
    "model_id": "MODEL",
    "device": "DEVICE",
    "host": "HOST",
    "port": "PORT",
    "max_length": "MAX_LENGTH",
    "num_beams": "NUM_BEAMS",
    "num_return_sequences": "NUM_RETURN_SEQUENCES",
    "max_body_bytes": "MAX_BODY_BYTES",
    "max_pending_requests": "MAX_PENDING",
    "log_level": "LOG_LEVEL",
}

_INT_FIELDS = {
    "port",
    "max_length",
    "num_beams",
    "num_return_sequences",
    "max_body_bytes",
    "max_pending_requests",
}


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the model, the generation call and the HTTP listener.

    Attributes:
        model_id: Pretrained resource identifier passed to `from_pretrained`
        device: Torch device ("cpu", "cuda", "mps") or None for auto-detect
        host: Listen address
        port: Listen port
        max_length: Hard cap on total sequence length (prompt + completion)
        num_beams: Beam width for greedy beam search
        num_return_sequences: Completions returned per request
        max_body_bytes: Request body size limit
        max_pending_requests: Waiters allowed on the model lock (None = unbounded)
        log_level: Root log level
    """
    model_id: str = DEFAULT_MODEL_ID
    device: Optional[str] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_length: int = DEFAULT_MAX_LENGTH
    num_beams: int = DEFAULT_NUM_BEAMS
    num_return_sequences: int = 1
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    max_pending_requests: Optional[int] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Build a config from `TEXTGEN_GUARD_*` environment variables.

        Unset variables keep their defaults. Integer fields that fail to
        parse raise ValueError naming the variable.
        """
        if environ is None:
            environ = os.environ

        values: Dict[str, Any] = {}
        for name, suffix in _ENV_NAMES.items():
            key = ENV_PREFIX + suffix
            raw = environ.get(key)
            if raw is None or raw == "":
                continue
            if name in _INT_FIELDS:
                try:
                    values[name] = int(raw)
                except ValueError:
                    raise ValueError(f"{key} must be an integer, got: {raw!r}") from None
            else:
                values[name] = raw

        config = cls(**values)
        logger.debug(f"Loaded config from environment: {config}")
        return config

    def override(self, **overrides: Any) -> "ServerConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {sorted(unknown)}")

        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ValueError: If any value is out of range
        """
        if not self.model_id:
            raise ValueError("model_id must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")
        if self.max_length < 1:
            raise ValueError("max_length must be positive")
        if self.num_beams < 1:
            raise ValueError("num_beams must be positive")
        if self.num_return_sequences < 1:
            raise ValueError("num_return_sequences must be positive")
        if self.num_return_sequences > self.num_beams:
            raise ValueError(
                f"num_return_sequences ({self.num_return_sequences}) "
                f"cannot exceed num_beams ({self.num_beams})"
            )
        if self.max_body_bytes < 1:
            raise ValueError("max_body_bytes must be positive")
        if self.max_pending_requests is not None and self.max_pending_requests < 0:
            raise ValueError("max_pending_requests must be >= 0")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(
                f"Unknown log_level: {self.log_level!r}. Use one of {', '.join(LOG_LEVELS)}"
            )

    def generation_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments forwarded to the model's `generate` call."""
        return {
            "max_length": self.max_length,
            "num_beams": self.num_beams,
            "num_return_sequences": self.num_return_sequences,
            "do_sample": False,
        }

"""
Model backend module.

The generator talks to the language model only through the `Backend`
interface, so tests can substitute a stub.

Components:
    - base: Abstract Backend interface
    - transformers_backend: HuggingFace causal LM implementation
    - device_utils: Device resolution (MPS, CUDA, CPU)
"""

from textgen_guard.backends.base import Backend
from textgen_guard.backends.device_utils import default_dtype, resolve_device
from textgen_guard.backends.transformers_backend import TransformersBackend

__all__ = [
    "Backend",
    "TransformersBackend",
    "default_dtype",
    "resolve_device",
]

"""
Device selection for model placement.

Auto-detection order is mps, cuda, cpu. A device that was asked for but is
not present falls back to CPU with a warning rather than failing the load.
"""

import logging
from typing import Optional

import torch

logger = logging.getLogger(__name__)

SUPPORTED_DEVICES = ("mps", "cuda", "cpu")


def is_mps_available() -> bool:
    mps = getattr(torch.backends, "mps", None)
    return mps is not None and mps.is_available()


def is_cuda_available() -> bool:
    return torch.cuda.is_available()


def _available(device: str) -> bool:
    if device == "mps":
        return is_mps_available()
    if device == "cuda":
        return is_cuda_available()
    return True


def resolve_device(requested: Optional[str] = None) -> str:
    """
    Pick the device a model is loaded on.

    Args:
        requested: "mps", "cuda", "cpu", or None to auto-detect

    Returns:
        str: A device torch can use right now

    Raises:
        ValueError: If `requested` is not a supported device name

    Example:
        ```python
        resolve_device()         # "cuda" on an NVIDIA box
        resolve_device("mps")    # "cpu" when Metal is missing
        ```
    """
    if requested is None:
        device = next(d for d in SUPPORTED_DEVICES if _available(d))
        logger.info(f"Auto-selected device: {device}")
        return device

    device = requested.lower()
    if device not in SUPPORTED_DEVICES:
        raise ValueError(f"Unknown device: {requested}. Use 'mps', 'cuda', or 'cpu'")

    if not _available(device):
        logger.warning(f"{device.upper()} requested but not available, falling back to CPU")
        return "cpu"
    return device


def default_dtype(device: str) -> torch.dtype:
    """Half precision on accelerators, full precision on CPU."""
    return torch.float16 if device in ("mps", "cuda") else torch.float32

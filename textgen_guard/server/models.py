"""
Request/response models for the HTTP surface.

The JSON body of `POST /generate` is parsed into `TextGenQuery`. Validation
happens here, at the boundary: a query that reaches the generator always has
a non-empty prompt and non-negative caps.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TextGenQuery(BaseModel):
    """Request body for text generation."""
    model_config = ConfigDict(extra="ignore")

    prompt: str = Field(..., min_length=1, description="Text to continue")
    context: Optional[List[str]] = Field(
        default=None,
        description="Reference passages the completion must continue verbatim",
    )
    generate_sentences: Optional[int] = Field(
        default=None, ge=0, description="Stop once this many sentences are generated"
    )
    generate_paragraphs: Optional[int] = Field(
        default=None, ge=0, description="Stop once this many paragraphs are generated"
    )


class GenerateResponse(BaseModel):
    """Single-completion response."""
    output: str


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    model_loaded: bool
    model: Optional[str] = None
    device: Optional[str] = None
    busy: bool = False
    waiting: int = 0

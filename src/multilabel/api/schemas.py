"""Pydantic request/response schemas for the multilabel API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LabelScore(BaseModel):
    """One predicted label with its raw network confidence."""

    label: str
    confidence: float


class HeadPredictions(BaseModel):
    """Ranked predictions of one classification head."""

    head: str
    predictions: list[LabelScore] = Field(description="Top-N predictions, best first")


class ClassifyImageResponse(BaseModel):
    """Response for the image classification endpoint."""

    heads: list[HeadPredictions]


class HeadInfo(BaseModel):
    """A classification head and its label table."""

    name: str
    num_classes: int
    labels: list[str]


class HeadsResponse(BaseModel):
    """Response for the heads listing endpoint."""

    heads: list[HeadInfo]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    heads: list[str]
    concurrent_requests: int
    queue_depth: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str

"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, UploadFile, status
from fastapi.responses import JSONResponse

from multilabel.api.schemas import (
    ClassifyImageResponse,
    ErrorResponse,
    HeadInfo,
    HeadPredictions,
    HeadsResponse,
    HealthResponse,
    LabelScore,
)
from multilabel.errors import ImageDecodeError
from multilabel.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from multilabel.config import Settings
    from multilabel.ml.inference import InferenceQueue
    from multilabel.ml.predictor import Prediction, Predictor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_predictor(request: Request) -> Predictor:
    predictor: Predictor = request.app.state.predictor
    return predictor


def _get_inference_queue(request: Request) -> InferenceQueue:
    queue: InferenceQueue = request.app.state.inference_queue
    return queue


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify an image with both heads",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse | JSONResponse:
    """Return the top-N predictions of each head for an uploaded image."""
    settings = _get_settings(request)
    predictor = _get_predictor(request)
    queue = _get_inference_queue(request)

    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, f"File exceeds {settings.max_file_size} bytes")

    try:
        image = decode_image(data, max_pixels=settings.max_image_pixels)
    except ImageDecodeError as exc:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))

    try:
        results: tuple[list[Prediction], list[Prediction]] = await queue.run(
            predictor.predict, image, settings.top_n
        )
    except TimeoutError:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Inference queue is full, retry later")

    return ClassifyImageResponse(
        heads=[
            HeadPredictions(
                head=name,
                predictions=[LabelScore(label=p.label, confidence=p.confidence) for p in predictions],
            )
            for name, predictions in zip(settings.head_names, results, strict=True)
        ]
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    queue = _get_inference_queue(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        heads=list(settings.head_names),
        concurrent_requests=queue.active_count,
        queue_depth=queue.queue_depth,
    )


@router.get(
    "/heads",
    response_model=HeadsResponse,
    summary="List classification heads",
)
async def list_heads(request: Request) -> HeadsResponse:
    """Return each head with its label table."""
    settings = _get_settings(request)
    predictor = _get_predictor(request)
    return HeadsResponse(
        heads=[
            HeadInfo(name=name, num_classes=len(labels), labels=list(labels))
            for name, labels in zip(settings.head_names, predictor.labels, strict=True)
        ]
    )

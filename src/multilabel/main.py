"""FastAPI application entry point.

Serve with an ASGI server, e.g. ``uvicorn multilabel.main:app``. Model
artifacts come from MULTILABEL_MODEL_PATH, MULTILABEL_MEAN_PATH and
MULTILABEL_LABEL_PATHS.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from multilabel.config import Settings

from fastapi import FastAPI

from multilabel.api.routes import router
from multilabel.config import get_settings
from multilabel.errors import ConfigurationError
from multilabel.ml.inference import InferenceQueue
from multilabel.ml.predictor import Predictor

logger = logging.getLogger(__name__)


def load_predictor(settings: Settings) -> Predictor:
    """Build the predictor from the artifact paths in settings."""
    if settings.model_path is None or settings.mean_path is None or settings.label_paths is None:
        raise ConfigurationError(
            "MULTILABEL_MODEL_PATH, MULTILABEL_MEAN_PATH and MULTILABEL_LABEL_PATHS must be set to serve"
        )
    return Predictor.from_files(settings.model_path, settings.mean_path, settings.label_paths, settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the predictor on startup, stop the queue on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting multilabel (device=%s, top_n=%s, heads=%s, model=%s)",
        settings.device,
        settings.top_n,
        list(settings.head_names),
        settings.model_path,
    )

    app.state.predictor = load_predictor(settings)
    inference_queue = InferenceQueue(settings)
    app.state.inference_queue = inference_queue

    logger.info("multilabel ready")
    yield

    logger.info("Shutting down multilabel")
    inference_queue.shutdown()
    logger.info("multilabel shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="multilabel",
        description="Two-head image classification (top-N per head)",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.include_router(router)
    return application


app = create_app()

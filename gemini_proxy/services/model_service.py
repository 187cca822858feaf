"""
Model Catalog Service Module

Serves the static list of models the proxy advertises.
"""

import time
from typing import Optional, Sequence

from gemini_proxy.common.errors import NotFoundError
from gemini_proxy.domain.model import ModelCard, ModelList

AVAILABLE_MODEL_IDS: tuple[str, ...] = (
    "gemini-2.5-pro",
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
    "gemini-3-pro-preview",
    "gemini-3-flash-preview",
    "auto",
)

_PROCESS_START = int(time.time())


class ModelService:
    """
    Model Catalog Service

    `created` is the same for every model and fixed when the process starts.
    """

    def __init__(
        self,
        model_ids: Sequence[str] = AVAILABLE_MODEL_IDS,
        created: Optional[int] = None,
    ):
        created_at = created if created is not None else _PROCESS_START
        self._models = [ModelCard(id=model_id, created=created_at) for model_id in model_ids]

    def list_models(self) -> ModelList:
        return ModelList(data=list(self._models))

    def get_model(self, model_id: str) -> ModelCard:
        """
        Get a model by id

        Raises:
            NotFoundError: model is not in the catalog
        """
        for model in self._models:
            if model.id == model_id:
                return model
        raise NotFoundError(message=f"Model '{model_id}' not found", code="model_not_found")

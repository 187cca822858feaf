"""
Model Catalog Domain Model
"""

from typing import Literal

from pydantic import BaseModel, Field


class ModelCard(BaseModel):
    """OpenAI `model` object"""

    id: str = Field(..., description="Model identifier")
    object: Literal["model"] = "model"
    created: int = Field(..., description="Unix timestamp (seconds)")
    owned_by: str = "google"


class ModelList(BaseModel):
    """OpenAI model list response"""

    object: Literal["list"] = "list"
    data: list[ModelCard]

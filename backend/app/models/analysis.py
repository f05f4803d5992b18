from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .recipe import new_id, utcnow


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RecipeData(BaseModel):
    """Loosely structured recipe fields as returned by the extraction model."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    title: Optional[str] = None
    ingredients: Optional[List[str]] = None
    instructions: Optional[List[str]] = None
    servings: Optional[str] = None
    prep_time: Optional[str] = Field(None, alias="prepTime")
    cook_time: Optional[str] = Field(None, alias="cookTime")


class AnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    raw_text: str = Field(..., alias="rawText")
    description: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    content_type: str = Field(..., alias="contentType")
    recipe_data: Optional[RecipeData] = Field(None, alias="recipeData")


class AnalysisErrorInfo(BaseModel):
    code: str
    message: str
    retryable: bool


class Analysis(BaseModel):
    """A single document's extraction job."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    upload_id: str = Field(..., alias="uploadId")
    storage_id: str = Field(..., alias="storageId")
    status: AnalysisStatus = AnalysisStatus.PENDING
    analysis_result: Optional[AnalysisResult] = Field(None, alias="analysisResult")
    error: Optional[AnalysisErrorInfo] = None
    retry_count: int = Field(0, ge=0, alias="retryCount")
    max_retries: int = Field(..., ge=0, alias="maxRetries")
    recipe_id: Optional[str] = Field(None, alias="recipeId")
    recipe_created_at: Optional[datetime] = Field(None, alias="recipeCreatedAt")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")

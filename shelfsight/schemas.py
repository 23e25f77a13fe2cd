from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, HttpUrl, model_validator


class ImagePayload(BaseModel):
    id: str = Field(min_length=1)
    image_b64: str | None = None
    url: HttpUrl | None = None
    mime_type: str = "image/jpeg"

    @model_validator(mode="after")
    def _exactly_one_source(self) -> ImagePayload:
        if (self.image_b64 is None) == (self.url is None):
            raise ValueError("provide exactly one of image_b64 or url")
        return self


class AnalyzeRequest(BaseModel):
    images: list[ImagePayload] = Field(default_factory=list)
    profile: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class AnalysisResultPayload(BaseModel):
    imageId: str
    originalSrc: str
    heatmapSrc: str
    attentionScore: float
    colorImpact: float
    readability: float
    brandVisibility: float
    overallScore: float
    suggestions: list[str]
    aiAnalysis: str
    heatmapSource: str
    scoringSource: str


class AnalyzeResponse(BaseModel):
    analysis_id: str
    results: list[AnalysisResultPayload]


class HealthResponse(BaseModel):
    status: str = "ok"
    stored_analyses: int

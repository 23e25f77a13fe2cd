from __future__ import annotations

import base64
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal, Union

import numpy as np

ImageReference = Union[str, bytes]
HeatmapSource = Literal["saliency", "fallback", "original"]
ScoringSource = Literal["remote", "fallback", "minimal"]


def round_half_up(value: float, places: int = 0) -> float:
    """Round with ties going up, like JavaScript's ``Math.round``."""
    if places == 0:
        return float(math.floor(value + 0.5))
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True, slots=True)
class EncodedImage:
    data: bytes
    mime_type: str

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


@dataclass(frozen=True, slots=True)
class PixelBuffer:
    """Decoded RGBA pixels, row-major, shape ``(height, width, 4)``."""

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.dtype != np.uint8:
            raise ValueError("pixels must be uint8")
        if self.pixels.size != self.width * self.height * 4:
            raise ValueError(
                f"pixel data has {self.pixels.size} samples, expected {self.width * self.height * 4}"
            )
        self.pixels.setflags(write=False)

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels.reshape(self.height, self.width, 4)[:, :, :3]


@dataclass(frozen=True, slots=True)
class SaliencyField:
    width: int
    height: int
    values: np.ndarray

    def __post_init__(self) -> None:
        if self.values.shape != (self.height, self.width):
            raise ValueError(f"field shape {self.values.shape} does not match {self.height}x{self.width}")
        self.values.setflags(write=False)


@dataclass(frozen=True, slots=True)
class HeatmapArtifact:
    payload: str
    source: HeatmapSource


@dataclass(frozen=True, slots=True)
class ScoreSet:
    attention_score: float
    color_impact: float
    readability: float
    brand_visibility: float
    overall_score: float
    suggestions: tuple[str, ...] = ()
    narrative: str = ""

    @classmethod
    def from_subscores(
        cls,
        *,
        attention_score: float,
        color_impact: float,
        readability: float,
        brand_visibility: float,
        suggestions: list[str] | tuple[str, ...] = (),
        narrative: str = "",
    ) -> ScoreSet:
        # The overall score is always derived here, never taken from upstream.
        average = (attention_score + color_impact + readability + brand_visibility) / 4
        return cls(
            attention_score=attention_score,
            color_impact=color_impact,
            readability=readability,
            brand_visibility=brand_visibility,
            overall_score=round_half_up(average, 1),
            suggestions=tuple(suggestions),
            narrative=narrative,
        )


@dataclass(frozen=True, slots=True)
class ImageInput:
    image_id: str
    reference: ImageReference
    mime_type: str = "image/jpeg"

    @property
    def original_src(self) -> str:
        if isinstance(self.reference, bytes):
            return EncodedImage(self.reference, self.mime_type).to_data_url()
        return self.reference


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    image_id: str
    original_src: str
    heatmap_src: str
    attention_score: float
    color_impact: float
    readability: float
    brand_visibility: float
    overall_score: float
    suggestions: tuple[str, ...]
    ai_analysis: str
    heatmap_source: HeatmapSource
    scoring_source: ScoringSource

    @classmethod
    def join(
        cls,
        image: ImageInput,
        heatmap: HeatmapArtifact,
        scores: ScoreSet,
        scoring_source: ScoringSource,
    ) -> AnalysisResult:
        return cls(
            image_id=image.image_id,
            original_src=image.original_src,
            heatmap_src=heatmap.payload,
            attention_score=scores.attention_score,
            color_impact=scores.color_impact,
            readability=scores.readability,
            brand_visibility=scores.brand_visibility,
            overall_score=scores.overall_score,
            suggestions=scores.suggestions,
            ai_analysis=scores.narrative,
            heatmap_source=heatmap.source,
            scoring_source=scoring_source,
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "imageId": self.image_id,
            "originalSrc": self.original_src,
            "heatmapSrc": self.heatmap_src,
            "attentionScore": self.attention_score,
            "colorImpact": self.color_impact,
            "readability": self.readability,
            "brandVisibility": self.brand_visibility,
            "overallScore": self.overall_score,
            "suggestions": list(self.suggestions),
            "aiAnalysis": self.ai_analysis,
            "heatmapSource": self.heatmap_source,
            "scoringSource": self.scoring_source,
        }

from __future__ import annotations

from pydantic import BaseModel, Field, ValidationError

from shelfsight.pipeline.errors import ScoringError
from shelfsight.pipeline.types import ScoreSet


class PackagingAnalysis(BaseModel):
    """Structured output expected from the vision model."""

    attentionScore: float = Field(
        ge=1,
        le=10,
        description="Overall attention score (1-10) based on visual hierarchy, focal point strength, and eye-tracking patterns",
    )
    colorImpact: float = Field(
        ge=1,
        le=10,
        description="Impact of color choices (1-10) evaluating contrast, palette cohesion, and emotional resonance",
    )
    readability: float = Field(
        ge=1,
        le=10,
        description="Readability of on-pack text (1-10) assessing font choice, sizing, contrast, and information hierarchy",
    )
    brandVisibility: float = Field(
        ge=1,
        le=10,
        description="Brand/logo visibility (1-10) measuring prominence, placement, and memorability",
    )
    suggestions: list[str] = Field(description="Specific, actionable design improvement suggestions")
    analysis: str = Field(
        description="Comprehensive analysis of the packaging design with specific strengths and weaknesses"
    )

    def to_score_set(self) -> ScoreSet:
        return ScoreSet.from_subscores(
            attention_score=self.attentionScore,
            color_impact=self.colorImpact,
            readability=self.readability,
            brand_visibility=self.brandVisibility,
            suggestions=self.suggestions,
            narrative=self.analysis,
        )


def parse_score_set(content: str | None) -> ScoreSet:
    if not content:
        raise ScoringError("scoring response was empty")
    try:
        parsed = PackagingAnalysis.model_validate_json(content)
    except ValidationError as error:
        raise ScoringError(f"scoring response failed validation: {error.error_count()} error(s)") from error
    return parsed.to_score_set()

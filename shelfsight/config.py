from __future__ import annotations

from copy import deepcopy
import os
from typing import Any, Literal

from pydantic import BaseModel, Field


class ScoringConfig(BaseModel):
    mode: Literal["remote", "fallback"] = Field(
        default_factory=lambda: os.getenv("SCORING_MODE", "remote")
    )
    model: str = Field(default_factory=lambda: os.getenv("SCORING_MODEL", "o4-mini"))
    api_key: str | None = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    base_url: str | None = Field(default_factory=lambda: os.getenv("OPENAI_BASE_URL"))
    timeout_s: float | None = Field(default=None, gt=0.0, le=600.0)
    max_output_tokens: int = Field(default=4000, ge=256, le=32000)


class HeatmapConfig(BaseModel):
    jpeg_quality: int = Field(default=85, ge=50, le=100)
    overlay_opacity: float = Field(default=0.7, ge=0.0, le=1.0)
    saliency_alpha_peak: int = Field(default=180, ge=0, le=255)
    fallback_alpha_peak: int = Field(default=128, ge=0, le=255)
    timeout_s: float | None = Field(default=None, gt=0.0, le=600.0)


class AnalysisConfig(BaseModel):
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    heatmap: HeatmapConfig = Field(default_factory=HeatmapConfig)
    fetch_timeout_s: float = Field(default=30.0, gt=0.0, le=300.0)
    seed: int | None = None
    results_dir: str | None = Field(default_factory=lambda: os.getenv("RESULTS_DIR"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


DEFAULT_PROFILES: dict[str, dict[str, Any]] = {
    "remote": {
        "scoring": {"mode": "remote", "timeout_s": 120.0},
        "heatmap": {"timeout_s": 60.0},
    },
    "offline": {
        "scoring": {"mode": "fallback"},
        "heatmap": {"jpeg_quality": 80},
    },
}

# Keys a client may override per request. Credentials, endpoints, the model
# and server paths stay with the environment.
REQUEST_PATCHABLE_KEYS: dict[str, Any] = {
    "seed": True,
    "fetch_timeout_s": True,
    "heatmap": True,
    "scoring": {"mode": True, "timeout_s": True},
}


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    merged = deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def merge_analysis_config(current: AnalysisConfig, patch: dict[str, Any]) -> AnalysisConfig:
    merged_dict = deep_merge(current.model_dump(), patch)
    return AnalysisConfig.model_validate(merged_dict)


def disallowed_patch_keys(
    patch: dict[str, Any],
    allowed: dict[str, Any] = REQUEST_PATCHABLE_KEYS,
    prefix: str = "",
) -> list[str]:
    """Dotted paths in ``patch`` that a request is not allowed to set."""
    rejected: list[str] = []
    for key, value in patch.items():
        path = f"{prefix}{key}"
        rule = allowed.get(key)
        if rule is True:
            continue
        if isinstance(rule, dict) and isinstance(value, dict):
            rejected.extend(disallowed_patch_keys(value, rule, prefix=f"{path}."))
        else:
            rejected.append(path)
    return rejected


def resolve_profile(name: str) -> AnalysisConfig:
    patch = DEFAULT_PROFILES.get(name.lower())
    if patch is None:
        raise ValueError(f"Unknown profile: {name}")
    # Built per call so env values loaded after import are honoured.
    return merge_analysis_config(AnalysisConfig(), patch)

from __future__ import annotations

import numpy as np

from shelfsight.pipeline.types import ScoreSet, round_half_up

SUGGESTION_POOL: tuple[str, ...] = (
    "Increase contrast between product name and background.",
    "Use a larger font for key claims.",
    "Position the logo in the top third for maximum noticeability.",
    "Reduce visual clutter to focus attention on core message.",
    "Consider higher-saturation colors for stronger shelf pop.",
    "Add negative space around hero elements.",
    "Try a distinctive die-cut or silhouette.",
    "Apply the rule of thirds to layout.",
    "Add texture contrast to make elements pop.",
    "Re-evaluate hierarchy based on consumer priorities.",
)

FALLBACK_SCORE_RANGE = (4.0, 9.5)
FALLBACK_NARRATIVE = "Simulated analysis due to API error."


def suggestion_count(score: float) -> int:
    # Weaker scores get more suggestions, bounded to 2..5.
    return max(2, min(5, int(round_half_up(10 - score))))


def select_suggestions(score: float, rng: np.random.Generator) -> list[str]:
    order = rng.permutation(len(SUGGESTION_POOL))
    return [SUGGESTION_POOL[i] for i in order[: suggestion_count(score)]]


def synthesize_fallback_scores(rng: np.random.Generator) -> ScoreSet:
    low, high = FALLBACK_SCORE_RANGE
    score = round_half_up(float(rng.uniform(low, high)), 1)
    return ScoreSet(
        attention_score=score,
        color_impact=score,
        readability=score,
        brand_visibility=score,
        overall_score=score,
        suggestions=tuple(select_suggestions(score, rng)),
        narrative=FALLBACK_NARRATIVE,
    )

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Iterable
from typing import TypeVar

import httpx
import numpy as np

from shelfsight.config import AnalysisConfig
from shelfsight.pipeline.errors import DecodeError
from shelfsight.pipeline.fallback import FallbackHeatmapGenerator
from shelfsight.pipeline.loader import ImageLoader
from shelfsight.pipeline.renderer import HeatmapRenderer
from shelfsight.pipeline.saliency import SaliencyEngine
from shelfsight.pipeline.types import (
    AnalysisResult,
    HeatmapArtifact,
    ImageInput,
    ScoreSet,
    ScoringSource,
)
from shelfsight.scoring.adapter import ScoringAdapter, build_scoring_adapter
from shelfsight.scoring.suggestions import synthesize_fallback_scores

logger = logging.getLogger(__name__)

T = TypeVar("T")

MINIMAL_SCORE = 5.0
MINIMAL_SUGGESTIONS = ("Unable to generate analysis. Please try again.",)
MINIMAL_NARRATIVE = "Analysis failed. Please try uploading a different image."


class AnalysisOrchestrator:
    """Runs the heatmap and scoring tracks for each image and joins them.

    Heatmap track: saliency engine and renderer, else the geometry fallback,
    else the original image. Scoring track: the scoring adapter, else
    synthesized scores. Neither track raises; cancellation still propagates.
    """

    def __init__(
        self,
        loader: ImageLoader,
        engine: SaliencyEngine,
        renderer: HeatmapRenderer,
        fallback: FallbackHeatmapGenerator,
        scorer: ScoringAdapter,
        rng: np.random.Generator | None = None,
        heatmap_timeout_s: float | None = None,
        scoring_timeout_s: float | None = None,
    ) -> None:
        self._loader = loader
        self._engine = engine
        self._renderer = renderer
        self._fallback = fallback
        self._scorer = scorer
        self._rng = rng if rng is not None else np.random.default_rng()
        self._heatmap_timeout_s = heatmap_timeout_s
        self._scoring_timeout_s = scoring_timeout_s

    @classmethod
    def from_config(
        cls,
        config: AnalysisConfig,
        scorer: ScoringAdapter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> AnalysisOrchestrator:
        loader = ImageLoader(http_client=http_client, timeout_s=config.fetch_timeout_s)
        heatmap = config.heatmap
        return cls(
            loader=loader,
            engine=SaliencyEngine(),
            renderer=HeatmapRenderer(
                loader,
                alpha_peak=heatmap.saliency_alpha_peak,
                overlay_opacity=heatmap.overlay_opacity,
                jpeg_quality=heatmap.jpeg_quality,
            ),
            fallback=FallbackHeatmapGenerator(
                loader,
                alpha_peak=heatmap.fallback_alpha_peak,
                overlay_opacity=heatmap.overlay_opacity,
                jpeg_quality=heatmap.jpeg_quality,
            ),
            scorer=scorer if scorer is not None else build_scoring_adapter(config.scoring),
            rng=np.random.default_rng(config.seed),
            heatmap_timeout_s=heatmap.timeout_s,
            scoring_timeout_s=config.scoring.timeout_s,
        )

    async def analyze_batch(self, images: Iterable[ImageInput] | None) -> list[AnalysisResult]:
        items = list(images or [])
        if not items:
            return []

        logger.info("Analyzing batch of %d image(s)", len(items))
        # One child generator per position keeps seeded batches independent of completion order.
        rngs = self._rng.spawn(len(items))
        results = await asyncio.gather(*(self.analyze_image(image, rng) for image, rng in zip(items, rngs)))
        degraded = sum(
            1 for result in results if result.heatmap_source != "saliency" or result.scoring_source != "remote"
        )
        logger.info("Batch complete: %d result(s), %d degraded", len(results), degraded)
        return list(results)

    async def analyze_image(self, image: ImageInput, rng: np.random.Generator | None = None) -> AnalysisResult:
        if rng is None:
            (rng,) = self._rng.spawn(1)
        heatmap_rng, scoring_rng = rng.spawn(2)
        image = self._with_sniffed_mime_type(image)
        try:
            heatmap, (scores, scoring_source) = await asyncio.gather(
                self._heatmap_track(image, heatmap_rng),
                self._scoring_track(image, scoring_rng),
            )
            return AnalysisResult.join(image, heatmap, scores, scoring_source)
        except Exception:
            logger.exception("Unexpected analysis error for image %s", image.image_id)
            return self._minimal_result(image)

    @staticmethod
    def _with_sniffed_mime_type(image: ImageInput) -> ImageInput:
        """Label inline bytes with their actual format; keep the declared type if unreadable."""
        if not isinstance(image.reference, bytes):
            return image
        try:
            mime_type = ImageLoader.sniff_mime_type(image.reference)
        except DecodeError:
            return image
        if mime_type == image.mime_type:
            return image
        return dataclasses.replace(image, mime_type=mime_type)

    async def _heatmap_track(self, image: ImageInput, rng: np.random.Generator) -> HeatmapArtifact:
        try:
            return await self._bounded(self._saliency_heatmap(image), self._heatmap_timeout_s)
        except Exception as error:
            logger.warning("Heatmap processing failed for %s, using fallback: %r", image.image_id, error)

        try:
            return await self._bounded(self._fallback.generate(image.reference, rng), self._heatmap_timeout_s)
        except Exception as error:
            logger.warning("Fallback heatmap failed for %s, using original image: %r", image.image_id, error)

        return HeatmapArtifact(payload=image.original_src, source="original")

    async def _saliency_heatmap(self, image: ImageInput) -> HeatmapArtifact:
        buffer = await self._loader.load(image.reference)
        field = await asyncio.to_thread(self._engine.compute, buffer)
        return await self._renderer.render(field, image.reference)

    async def _scoring_track(self, image: ImageInput, rng: np.random.Generator) -> tuple[ScoreSet, ScoringSource]:
        try:
            scores = await self._bounded(self._remote_scores(image), self._scoring_timeout_s)
            return scores, "remote"
        except Exception as error:
            logger.warning("AI analysis failed for %s, showing simulated scores: %r", image.image_id, error)
        return synthesize_fallback_scores(rng), "fallback"

    async def _remote_scores(self, image: ImageInput) -> ScoreSet:
        encoded = await self._loader.fetch(image.reference)
        return await self._scorer.score(encoded)

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], timeout_s: float | None) -> T:
        if timeout_s is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=timeout_s)

    @staticmethod
    def _minimal_result(image: ImageInput) -> AnalysisResult:
        original_src = image.original_src
        return AnalysisResult(
            image_id=image.image_id,
            original_src=original_src,
            heatmap_src=original_src,
            attention_score=MINIMAL_SCORE,
            color_impact=MINIMAL_SCORE,
            readability=MINIMAL_SCORE,
            brand_visibility=MINIMAL_SCORE,
            overall_score=MINIMAL_SCORE,
            suggestions=MINIMAL_SUGGESTIONS,
            ai_analysis=MINIMAL_NARRATIVE,
            heatmap_source="original",
            scoring_source="minimal",
        )

from __future__ import annotations

import logging
from typing import Any, Protocol

import openai

from shelfsight.config import ScoringConfig
from shelfsight.pipeline.errors import ScoringError
from shelfsight.pipeline.types import EncodedImage, ScoreSet
from shelfsight.scoring.prompts import SYSTEM_PROMPT, USER_PROMPT
from shelfsight.scoring.schema import PackagingAnalysis, parse_score_set

logger = logging.getLogger(__name__)


class ScoringAdapter(Protocol):
    """Remote vision scoring. Any failure surfaces as :class:`ScoringError`."""

    async def score(self, image: EncodedImage) -> ScoreSet:
        ...


class OpenAIScoringAdapter:
    def __init__(
        self,
        client: openai.AsyncOpenAI,
        model: str = "o4-mini",
        max_output_tokens: int = 4000,
    ) -> None:
        self._client = client
        self.model = model
        self.max_output_tokens = max_output_tokens

    @classmethod
    def from_config(cls, config: ScoringConfig) -> OpenAIScoringAdapter:
        client_kwargs: dict[str, Any] = {"api_key": config.api_key, "max_retries": 0}
        if config.base_url:
            client_kwargs["base_url"] = config.base_url
        if config.timeout_s is not None:
            client_kwargs["timeout"] = config.timeout_s
        return cls(
            client=openai.AsyncOpenAI(**client_kwargs),
            model=config.model,
            max_output_tokens=config.max_output_tokens,
        )

    async def score(self, image: EncodedImage) -> ScoreSet:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                max_completion_tokens=self.max_output_tokens,
                messages=self._messages(image),
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "package_analysis",
                        "schema": PackagingAnalysis.model_json_schema(),
                    },
                },
            )
        except openai.OpenAIError as error:
            raise ScoringError(f"{self.model} request failed: {error}") from error

        if not response.choices:
            raise ScoringError("scoring response contained no choices")
        score_set = parse_score_set(response.choices[0].message.content)
        logger.info("Remote scoring completed with model %s (overall %.1f)", self.model, score_set.overall_score)
        return score_set

    @staticmethod
    def _messages(image: EncodedImage) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": USER_PROMPT},
                    {"type": "image_url", "image_url": {"url": image.to_data_url(), "detail": "high"}},
                ],
            },
        ]


class DisabledScoringAdapter:
    """Stands in when remote scoring is switched off; every call fails."""

    def __init__(self, reason: str = "remote scoring disabled") -> None:
        self.reason = reason

    async def score(self, image: EncodedImage) -> ScoreSet:
        raise ScoringError(self.reason)


def build_scoring_adapter(config: ScoringConfig) -> ScoringAdapter:
    if config.mode == "fallback":
        return DisabledScoringAdapter("scoring forced to fallback mode")
    if not config.api_key:
        return DisabledScoringAdapter("OpenAI API key missing")
    return OpenAIScoringAdapter.from_config(config)

from __future__ import annotations

import base64
import binascii
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from shelfsight.config import (
    AnalysisConfig,
    disallowed_patch_keys,
    merge_analysis_config,
    resolve_profile,
)
from shelfsight.pipeline.orchestrator import AnalysisOrchestrator
from shelfsight.pipeline.types import ImageInput
from shelfsight.schemas import (
    AnalysisResultPayload,
    AnalyzeRequest,
    AnalyzeResponse,
    HealthResponse,
    ImagePayload,
)
from shelfsight.services.store import ResultStore, StoredAnalysis

load_dotenv()


base_config = AnalysisConfig()
store = ResultStore(base_config.results_dir)

logging.basicConfig(
    level=base_config.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("Scoring mode: %s", base_config.scoring.mode)
    yield


app = FastAPI(
    title="shelfsight backend",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _resolve_config(request: AnalyzeRequest) -> AnalysisConfig:
    config = base_config
    if request.profile:
        try:
            config = resolve_profile(request.profile)
        except ValueError as error:
            raise HTTPException(status_code=422, detail=str(error)) from error
    if request.config:
        rejected = disallowed_patch_keys(request.config)
        if rejected:
            raise HTTPException(
                status_code=422,
                detail=f"config keys cannot be set per request: {', '.join(rejected)}",
            )
        try:
            config = merge_analysis_config(config, request.config)
        except ValidationError as error:
            raise HTTPException(status_code=422, detail=error.errors(include_url=False)) from error
    return config


def _to_image_input(payload: ImagePayload) -> ImageInput:
    if payload.url is not None:
        return ImageInput(image_id=payload.id, reference=str(payload.url), mime_type=payload.mime_type)

    encoded = payload.image_b64 or ""
    if encoded.startswith("data:"):
        encoded = encoded.partition(",")[2]
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as error:
        raise HTTPException(
            status_code=422,
            detail=f"image {payload.id} is not valid base64",
        ) from error
    return ImageInput(image_id=payload.id, reference=data, mime_type=payload.mime_type)


def _response(stored: StoredAnalysis) -> AnalyzeResponse:
    return AnalyzeResponse(
        analysis_id=stored.analysis_id,
        results=[AnalysisResultPayload.model_validate(record) for record in stored.to_records()],
    )


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(stored_analyses=await store.count())


@app.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze(request: AnalyzeRequest) -> AnalyzeResponse:
    config = _resolve_config(request)
    images = [_to_image_input(payload) for payload in request.images]

    orchestrator = AnalysisOrchestrator.from_config(config)
    results = await orchestrator.analyze_batch(images)
    stored = await store.save(results)
    return _response(stored)


@app.get("/api/analysis/{analysis_id}", response_model=AnalyzeResponse)
async def get_analysis(analysis_id: str) -> AnalyzeResponse:
    stored = await store.get(analysis_id)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"Unknown analysis: {analysis_id}")
    return _response(stored)


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("shelfsight.main:app", host=host, port=port, reload=True)

"""
POST /api/analyze
=================
Runs the ReportGenerator on one Solidity source and returns the Report.

The report stage never fails: an unreachable or unproductive inference
backend yields the local fallback report (meta.inference_backend = "local").
"""
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, field_validator

from prophet.agents.report_generator import ReportGenerator
from prophet.api.streaming import get_gateway
from prophet.models.report import Report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Audit"])


class AnalyzeRequest(BaseModel):
    source: str
    premium: bool = False

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source must not be empty")
        return v


@router.post("/analyze", response_model=Report)
async def analyze(request: AnalyzeRequest) -> Report:
    logger.info(
        "[API] Analyze request (%d chars, tier=%s)",
        len(request.source), "premium" if request.premium else "standard",
    )
    generator = ReportGenerator(get_gateway())
    try:
        return await generator.generate(request.source, premium=request.premium)
    except Exception as exc:
        logger.exception("[API] Analyze failed")
        raise HTTPException(status_code=500, detail=f"Analysis error: {exc}")

"""
POST /api/generate-attack
=========================
Synthesizes a Foundry test file for a contract.

With a `report` in the body the test targets that report's vulnerabilities
and exploit paths; without one it attacks the contract's general logic.
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, field_validator

from prophet.agents.attack_synthesizer import AttackSynthesizer
from prophet.api.streaming import get_gateway
from prophet.core.constants import STUB_CONTRACT_NAME
from prophet.models.report import Report
from prophet.parser.solidity import extract_contract_name

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Audit"])


class GenerateAttackRequest(BaseModel):
    source: str
    report: Optional[Report] = None

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source must not be empty")
        return v


class GenerateAttackResponse(BaseModel):
    contract_name: str
    mode: str
    test_code: str


@router.post("/generate-attack", response_model=GenerateAttackResponse)
async def generate_attack(request: GenerateAttackRequest) -> GenerateAttackResponse:
    synthesizer = AttackSynthesizer(get_gateway())
    try:
        if request.report is not None:
            logger.info("[API] Targeted attack request for %s", request.report.contract_name)
            test_code = await synthesizer.synthesize_targeted(request.source, request.report)
            return GenerateAttackResponse(
                contract_name=request.report.contract_name, mode="targeted", test_code=test_code
            )

        contract_name = extract_contract_name(request.source, STUB_CONTRACT_NAME)
        logger.info("[API] Generic attack request for %s", contract_name)
        test_code = await synthesizer.synthesize_generic(request.source)
        return GenerateAttackResponse(contract_name=contract_name, mode="generic", test_code=test_code)
    except Exception as exc:
        logger.exception("[API] Attack synthesis failed")
        raise HTTPException(status_code=500, detail=f"Attack synthesis error: {exc}")

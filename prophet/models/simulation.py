"""
Simulation Models
=================
Input and output shapes of one sandboxed Foundry run.

SimulationRequest
    source          — Solidity source of the target contract (written to src/<Name>.sol)
    test_code       — synthesized or hand-written test file (written to test/<Name>.t.sol)
    contract_name   — plain identifier; becomes a file name inside the workspace

StreamChunk
    text            — one line of process output (newline-terminated) or an informational line
    is_final        — True only on the single terminal chunk of a run
    exit_code       — set on the terminal chunk (-1 when the run crashed)
    error           — set on the terminal chunk when infrastructure failed, never for failing tests
"""
import re
from dataclasses import dataclass, asdict
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


class SimulationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    test_code: str
    contract_name: str

    @field_validator("contract_name")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        v = v.strip()
        if not _IDENTIFIER_RE.match(v):
            raise ValueError("contract_name must be a plain Solidity identifier")
        return v


@dataclass(frozen=True)
class StreamChunk:
    text: str
    is_final: bool = False
    exit_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

"""
Report Model
============
Pydantic models for the structured audit report.
This is the contract between the report stage, the attack synthesizer and the HTTP transport.

Fields:
    contract_name       — first `contract <Name>` declared in the audited source
    source_fingerprint  — "sha256:<hex>" of the source, identity only
    risk_score          — float in [0, 1]
    risk_level          — critical / high / medium / low
    summary             — one-paragraph description
    vulnerabilities     — List[Vulnerability], always present
    exploit_paths       — List[ExploitPath], always present
    fix_suggestions     — List[FixSuggestion], always present
    meta                — ReportMeta (generation time, generator, backend, version, tier)

All models are frozen: a Report is built once per analysis request and only
read afterwards. Validation is lenient because the bulk of a Report comes from
model output: every nested field has a default, scores are clamped and enum-like
strings are normalised instead of rejected.
"""
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from prophet.core.constants import RISK_LEVELS, SEVERITIES, GENERATOR_ID, SCHEMA_VERSION


class InferenceBackend(str, Enum):
    """Wire values are fixed by the frontend transport schema."""
    REMOTE = "0g"
    LOCAL_FALLBACK = "local"


class Tier(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"


def _clamp_unit(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(0.0, min(1.0, number))


def risk_level_for_score(score: float) -> str:
    """Map a risk score onto a risk level when the model omitted or garbled it."""
    if score >= 0.9:
        return "critical"
    if score >= 0.7:
        return "high"
    if score >= 0.4:
        return "medium"
    return "low"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class Location(_Frozen):
    file: str = ""
    function: str = ""
    line_start: int = 0
    line_end: int = 0

    @field_validator("line_start", "line_end", mode="before")
    @classmethod
    def parse_line(cls, v: Any) -> int:
        # Models write "L42" or "42-50" as often as 42
        match = re.search(r"\d+", str(v if v is not None else ""))
        return int(match.group(0)) if match else 0


class Evidence(_Frozen):
    patterns: List[str] = []
    call_graph: List[str] = []


class Vulnerability(_Frozen):
    id: str = ""
    title: str = ""
    severity: str = "low"
    confidence: float = 0.0
    locations: List[Location] = []
    explanation: str = ""
    evidence: Optional[Evidence] = None
    references: List[str] = []

    @field_validator("severity", mode="before")
    @classmethod
    def normalise_severity(cls, v: Any) -> str:
        text = str(v or "").strip().lower()
        return text if text in SEVERITIES else "low"

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return _clamp_unit(v)


class Step(_Frozen):
    action: str = ""
    pre_state: Dict[str, str] = {}
    post_state: Dict[str, str] = {}
    notes: str = ""

    @field_validator("pre_state", "post_state", mode="before")
    @classmethod
    def stringify_state(cls, v: Any) -> Dict[str, str]:
        if not isinstance(v, dict):
            return {}
        return {str(key): str(value) for key, value in v.items()}


class ExploitPath(_Frozen):
    name: str = ""
    success_criteria: str = ""
    steps: List[Step] = []


class FixSuggestion(_Frozen):
    id: str = ""
    title: str = ""
    strategy: str = ""
    explanation: str = ""
    diff_preview: Optional[str] = None
    tradeoffs: Optional[str] = None


class ReportMeta(_Frozen):
    generated_at: str
    generator: str = GENERATOR_ID
    inference_backend: InferenceBackend
    version: str = SCHEMA_VERSION
    tier: Tier = Tier.STANDARD


class Report(_Frozen):
    contract_name: str
    source_fingerprint: str
    risk_score: float = 0.0
    risk_level: str = "low"
    summary: str = ""
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)
    exploit_paths: List[ExploitPath] = Field(default_factory=list)
    fix_suggestions: List[FixSuggestion] = Field(default_factory=list)
    meta: ReportMeta

    @model_validator(mode="before")
    @classmethod
    def normalise_risk(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        score = _clamp_unit(data.get("risk_score"))
        data["risk_score"] = score
        level = data.get("risk_level")
        if level is None:
            data["risk_level"] = "low"
        else:
            text = str(level).strip().lower()
            data["risk_level"] = text if text in RISK_LEVELS else risk_level_for_score(score)
        return data

    @field_validator("vulnerabilities", "exploit_paths", "fix_suggestions", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

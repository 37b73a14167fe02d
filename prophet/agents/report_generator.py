"""
Report Generator
================
Builds the structured audit Report for one Solidity source.

Flow:
    1. Fingerprint the source and extract the contract name.
    2. Backend unavailable → fallback report (no network call at all).
    3. Otherwise up to MAX_REPORT_ATTEMPTS calls to the inference gateway:
         response → first balanced JSON object → validated Report.
       A missing object, invalid JSON, schema violation or gateway error
       is logged and consumes one attempt.
    4. Attempts exhausted → fallback report.

BOUNDARY RULES:
    - generate() NEVER raises. The report stage always yields a Report.
    - The generator never inspects the Solidity itself beyond the contract
      name; vulnerability detection is entirely the backend's job.
    - Premium only changes the prompt, never the schema or the code path.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from prophet.core.constants import MAX_REPORT_ATTEMPTS, STUB_CONTRACT_NAME
from prophet.llm.gateway import InferenceGateway, InferenceError
from prophet.llm.prompts import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt
from prophet.models.report import (
    Report, ReportMeta, ExploitPath, Step, InferenceBackend, Tier,
)
from prophet.parser.json_extractor import parse_json_object
from prophet.parser.solidity import fingerprint_source, extract_contract_name

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = (
    "Stub analysis: no findings yet. Connect the inference backend for "
    "AI-powered analysis and attack paths."
)


def build_fallback_report(
    contract_name: str,
    source_fingerprint: str,
    tier: Tier = Tier.STANDARD,
    generated_at: Optional[str] = None,
) -> Report:
    """Deterministic report used when inference is unavailable or unproductive."""
    return Report(
        contract_name=contract_name,
        source_fingerprint=source_fingerprint,
        risk_score=0.0,
        risk_level="low",
        summary=FALLBACK_SUMMARY,
        vulnerabilities=[],
        exploit_paths=[
            ExploitPath(
                name="Example attack path",
                success_criteria=(
                    "Attack paths are populated when remote AI analysis runs successfully."
                ),
                steps=[
                    Step(
                        action="Run analysis with the inference backend enabled",
                        notes=(
                            "Requires INFERENCE_API_KEY and INFERENCE_BASE_URL and a "
                            "reachable inference backend."
                        ),
                    ),
                ],
            ),
        ],
        fix_suggestions=[],
        meta=ReportMeta(
            generated_at=generated_at or _now_iso(),
            inference_backend=InferenceBackend.LOCAL_FALLBACK,
            tier=tier,
        ),
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReportGenerator:
    """
    Produces Reports with bounded retries and a deterministic fallback.

    Usage:
        generator = ReportGenerator(gateway)
        report = await generator.generate(source, premium=True)
    """

    def __init__(
        self,
        gateway: InferenceGateway,
        max_attempts: int = MAX_REPORT_ATTEMPTS,
    ) -> None:
        self.gateway = gateway
        self.max_attempts = max_attempts

    async def generate(self, source: str, premium: bool = False) -> Report:
        """
        Analyze *source* and return a Report. Never raises.

        Parameters
        ----------
        source : str
            Solidity source of the contract under audit.
        premium : bool
            Request the deeper premium analysis (prompt only).

        Returns
        -------
        Report
            Remote report on the first valid response, fallback otherwise.
        """
        fingerprint = fingerprint_source(source)
        contract_name = extract_contract_name(source, STUB_CONTRACT_NAME)
        tier = Tier.PREMIUM if premium else Tier.STANDARD
        generated_at = _now_iso()

        try:
            available = self.gateway.is_available()
        except Exception as e:
            logger.warning("[ReportGenerator] Availability check failed: %s", e)
            available = False

        if not available:
            logger.info("[ReportGenerator] Inference backend unavailable, using stub report")
            return build_fallback_report(contract_name, fingerprint, tier, generated_at)

        prompt = build_analysis_prompt(source, premium=premium)

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.gateway.complete(prompt, ANALYSIS_SYSTEM_PROMPT)
                parsed = parse_json_object(response)
                if parsed is None:
                    logger.warning(
                        "[ReportGenerator] Attempt %d/%d: no JSON in response (%d chars)",
                        attempt, self.max_attempts, len(response or ""),
                    )
                    continue

                report = self._build_remote_report(
                    parsed, contract_name, fingerprint, tier, generated_at
                )
                logger.info(
                    "[ReportGenerator] Remote analysis succeeded (attempt %d) | risk=%s | findings=%d",
                    attempt, report.risk_level, len(report.vulnerabilities),
                )
                return report

            except InferenceError as e:
                logger.warning(
                    "[ReportGenerator] Attempt %d/%d: inference failed: %s",
                    attempt, self.max_attempts, e,
                )
            except (ValueError, ValidationError) as e:
                # ValidationError subclasses ValueError; both mean unusable model output
                logger.warning(
                    "[ReportGenerator] Attempt %d/%d: invalid report JSON: %s",
                    attempt, self.max_attempts, e,
                )
            except Exception as e:
                logger.warning(
                    "[ReportGenerator] Attempt %d/%d failed: %s: %s",
                    attempt, self.max_attempts, type(e).__name__, e,
                )

        logger.warning(
            "[ReportGenerator] All %d attempts failed, using stub report.", self.max_attempts
        )
        return build_fallback_report(contract_name, fingerprint, tier, generated_at)

    @staticmethod
    def _build_remote_report(
        parsed: dict,
        contract_name: str,
        fingerprint: str,
        tier: Tier,
        generated_at: str,
    ) -> Report:
        """Validate model output into a Report, filling safe defaults."""
        return Report(
            contract_name=contract_name,
            source_fingerprint=fingerprint,
            risk_score=parsed.get("risk_score", 0),
            risk_level=parsed.get("risk_level"),
            summary=str(parsed.get("summary") or "AI analysis completed"),
            vulnerabilities=parsed.get("vulnerabilities") or [],
            exploit_paths=parsed.get("exploit_paths") or [],
            fix_suggestions=parsed.get("fix_suggestions") or [],
            meta=ReportMeta(
                generated_at=generated_at,
                inference_backend=InferenceBackend.REMOTE,
                tier=tier,
            ),
        )

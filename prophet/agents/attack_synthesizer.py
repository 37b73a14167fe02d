"""
Attack Synthesizer
==================
Turns a contract (and optionally its audit Report) into a single Foundry test
file designed to break it.

Modes:
    generic  — prompt with the source only; tests target the contract's core logic.
    targeted — prompt with the source plus the report's vulnerabilities and
               exploit paths; tests try to reproduce those specific findings.

Output Contract (enforced, not just requested):
    header → TARGET CONTRACT → ATTACKER / HELPER CONTRACTS → TEST SUITE,
    test contract named <ContractName>Test. Responses are sanitised
    (fences stripped, leading prose dropped) and re-assembled into that
    layout; anything that cannot be re-assembled is replaced by the
    deterministic template. Targeted output always lists the report's findings
    as comments at the top of the helpers section.

BOUNDARY RULES:
    - One gateway call per synthesis, no retries.
    - Synthesis NEVER raises. Unavailable backend or any failure → template.
"""
import logging
from typing import Optional

from prophet.core.constants import STUB_CONTRACT_NAME
from prophet.llm.gateway import InferenceGateway
from prophet.llm.prompts import (
    ATTACK_SYSTEM_PROMPT, TARGETED_ATTACK_SYSTEM_PROMPT,
    build_generic_attack_prompt, build_targeted_attack_prompt,
)
from prophet.models.report import Report
from prophet.parser.solidity import (
    extract_contract_name, sanitize_test_source,
    enforce_test_layout, render_fallback_test,
)

logger = logging.getLogger(__name__)


def describe_targets(report: Report) -> list[str]:
    """Short one-line descriptions of the findings a targeted test aims at."""
    targets = [
        f"[{vuln.severity}] {vuln.title}".strip() for vuln in report.vulnerabilities
    ]
    targets.extend(f"exploit path: {path.name}" for path in report.exploit_paths if path.name)
    return targets


class AttackSynthesizer:
    """
    Generates adversarial Foundry tests through the inference gateway.

    Usage:
        synthesizer = AttackSynthesizer(gateway)
        test_code = await synthesizer.synthesize_targeted(source, report)
    """

    def __init__(self, gateway: InferenceGateway) -> None:
        self.gateway = gateway

    async def synthesize_generic(self, source: str) -> str:
        """Single-file adversarial test aimed at the contract's general logic."""
        contract_name = extract_contract_name(source, STUB_CONTRACT_NAME)
        return await self._synthesize(
            prompt=build_generic_attack_prompt(source),
            system_prompt=ATTACK_SYSTEM_PROMPT,
            contract_name=contract_name,
            mode="generic",
        )

    async def synthesize_targeted(self, source: str, report: Report) -> str:
        """Single-file adversarial test reproducing the report's findings."""
        return await self._synthesize(
            prompt=build_targeted_attack_prompt(source, report),
            system_prompt=TARGETED_ATTACK_SYSTEM_PROMPT,
            contract_name=report.contract_name,
            mode="targeted",
            targets=describe_targets(report),
        )

    async def _synthesize(
        self,
        prompt: str,
        system_prompt: str,
        contract_name: str,
        mode: str,
        targets: Optional[list[str]] = None,
    ) -> str:
        try:
            available = self.gateway.is_available()
        except Exception as e:
            logger.warning("[AttackSynthesizer] Availability check failed: %s", e)
            available = False

        if not available:
            logger.info(
                "[AttackSynthesizer] Inference backend unavailable, using %s template for %s",
                mode, contract_name,
            )
            return render_fallback_test(contract_name, targets)

        try:
            raw = await self.gateway.complete(prompt, system_prompt)
        except Exception as e:
            logger.error("[AttackSynthesizer] Failed to generate %s attack: %s", mode, e)
            return render_fallback_test(contract_name, targets)

        code = enforce_test_layout(sanitize_test_source(raw), contract_name, targets)
        if code is None:
            logger.warning(
                "[AttackSynthesizer] No test contract in %s response (%d chars), using template",
                mode, len(raw or ""),
            )
            return render_fallback_test(contract_name, targets)

        logger.info(
            "[AttackSynthesizer] Synthesized %s attack for %s (%d lines)",
            mode, contract_name, code.count("\n") + 1,
        )
        return code

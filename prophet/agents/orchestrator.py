"""
Audit Pipeline
==============
Chains the three stages for one audit request:

    source ──► ReportGenerator ──► Report
                                      │
    source ──────────────► AttackSynthesizer (targeted) ──► test code
                                                               │
    source + test code ──────────────► SandboxExecutor ──► StreamChunks

Events are yielded in that order: one "report", one "test_code", then every
"chunk" of the sandbox run. The report and synthesis stages never fail, so
every pipeline run reaches the sandbox stage. That stage always ends in a
single final chunk, including when the run request itself is rejected.
"""
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from pydantic import ValidationError

from prophet.agents.attack_synthesizer import AttackSynthesizer
from prophet.agents.report_generator import ReportGenerator
from prophet.core.constants import LOG_PREFIX
from prophet.executor.sandbox_executor import SandboxExecutor
from prophet.llm.gateway import InferenceGateway, HttpInferenceGateway
from prophet.models.simulation import SimulationRequest, StreamChunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineEvent:
    """One step of pipeline progress: kind is "report", "test_code" or "chunk"."""
    kind: str
    data: Any = field(default=None)

    def to_dict(self) -> dict:
        if self.kind == "report":
            return self.data.model_dump(mode="json")
        if self.kind == "chunk":
            return self.data.to_dict()
        return {"test_code": self.data}


class AuditPipeline:
    """
    Runs analyze → synthesize (targeted) → simulate for a single source.

    Usage:
        pipeline = AuditPipeline.from_gateway(HttpInferenceGateway())
        async for event in pipeline.run(source, premium=False):
            ...
    """

    def __init__(
        self,
        report_generator: ReportGenerator,
        synthesizer: AttackSynthesizer,
        executor: SandboxExecutor,
    ) -> None:
        self.report_generator = report_generator
        self.synthesizer = synthesizer
        self.executor = executor

    @classmethod
    def from_gateway(
        cls,
        gateway: Optional[InferenceGateway] = None,
        executor: Optional[SandboxExecutor] = None,
    ) -> "AuditPipeline":
        gateway = gateway or HttpInferenceGateway()
        return cls(
            report_generator=ReportGenerator(gateway),
            synthesizer=AttackSynthesizer(gateway),
            executor=executor or SandboxExecutor(),
        )

    async def run(self, source: str, premium: bool = False) -> AsyncIterator[PipelineEvent]:
        report = await self.report_generator.generate(source, premium=premium)
        logger.info(
            "[Pipeline] Report ready | contract=%s | risk=%s | backend=%s",
            report.contract_name, report.risk_level, report.meta.inference_backend.value,
        )
        yield PipelineEvent("report", report)

        test_code = await self.synthesizer.synthesize_targeted(source, report)
        yield PipelineEvent("test_code", test_code)

        try:
            request = SimulationRequest(
                source=source,
                test_code=test_code,
                contract_name=report.contract_name,
            )
        except ValidationError as e:
            message = f"invalid simulation request: {e.errors()[0]['msg']}"
            logger.error("[Pipeline] %s | contract=%r", message, report.contract_name)
            yield PipelineEvent("chunk", StreamChunk(
                text=f"{LOG_PREFIX} Cannot start sandbox run: {message}\n",
                is_final=True, exit_code=-1, error=message,
            ))
            return

        async with aclosing(self.executor.run(request)) as chunks:
            async for chunk in chunks:
                yield PipelineEvent("chunk", chunk)

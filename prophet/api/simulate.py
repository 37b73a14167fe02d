"""
POST /api/simulate  and  POST /api/audit
========================================
Server-Sent Events endpoints streaming sandboxed Foundry runs.

/api/simulate
    Body: SimulationRequest. Emits one `chunk` event per output line and a
    single `done` event carrying the terminal chunk (exit_code, error).

/api/audit
    Body: {source, premium}. Emits `report`, then `test_code`, then the same
    `chunk` ... `done` sequence as /api/simulate.

Both streams are bounded by SIMULATION_TIMEOUT_SECONDS when it is set. A
client disconnect cancels the stream; the sandbox kills its child process and
removes the workspace.
"""
import logging
from contextlib import aclosing
from typing import AsyncIterator

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, field_validator

from prophet.agents.orchestrator import AuditPipeline, PipelineEvent
from prophet.api.streaming import SSE_HEADERS, get_gateway, sse_event
from prophet.core.config import SIMULATION_TIMEOUT_SECONDS
from prophet.executor.sandbox_executor import SandboxExecutor, with_deadline
from prophet.models.simulation import SimulationRequest, StreamChunk

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Simulation"])


class AuditRequest(BaseModel):
    source: str
    premium: bool = False

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source must not be empty")
        return v


def _chunk_frame(chunk: StreamChunk) -> str:
    return sse_event("done" if chunk.is_final else "chunk", chunk.to_dict())


@router.post("/simulate")
async def simulate(request: SimulationRequest) -> StreamingResponse:
    """Stream `forge build` / `forge test` output for the given contract and test file."""
    logger.info("[API] Simulation request for %s", request.contract_name)
    executor = SandboxExecutor()

    async def gen() -> AsyncIterator[str]:
        bounded = with_deadline(executor.run(request), SIMULATION_TIMEOUT_SECONDS)
        async with aclosing(bounded) as chunks:
            async for chunk in chunks:
                yield _chunk_frame(chunk)

    return StreamingResponse(gen(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/audit")
async def audit(request: AuditRequest) -> StreamingResponse:
    """Stream the full analyze → synthesize → simulate pipeline."""
    logger.info("[API] Audit pipeline request (%d chars)", len(request.source))
    pipeline = AuditPipeline.from_gateway(get_gateway(), SandboxExecutor())

    async def gen() -> AsyncIterator[str]:
        async with aclosing(pipeline.run(request.source, premium=request.premium)) as events:
            async for event in events:
                if event.kind != "chunk":
                    yield sse_event(event.kind, event.to_dict())
                    continue
                # Only the sandbox stage is bounded by the deadline
                bounded = with_deadline(_chunks_of(event, events), SIMULATION_TIMEOUT_SECONDS)
                async with aclosing(bounded) as chunks:
                    async for chunk in chunks:
                        yield _chunk_frame(chunk)
                break

    return StreamingResponse(gen(), media_type="text/event-stream", headers=SSE_HEADERS)


async def _chunks_of(
    first: PipelineEvent, events: AsyncIterator[PipelineEvent]
) -> AsyncIterator[StreamChunk]:
    yield first.data
    async for event in events:
        yield event.data

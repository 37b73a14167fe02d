"""
Sandbox Executor
================
Compiles and runs a synthesized Foundry test against its target contract in
a throwaway project directory, streaming the toolchain output as it happens.

BOUNDARY RULES (CRITICAL):
    - Executor ONLY observes execution.
    - Executor NEVER edits the contract or the test code.
    - Executor NEVER calls the inference backend.
    - Executor NEVER touches a directory it did not create for this run.

Pipeline (one run):
    Provisioning → InitializingVcs → InstallingDeps → Building → Testing → Completed
                                         │               │
                                         └──► Aborted ◄──┘        (non-zero exit)
    any state ──► Crashed   (provisioning failure, spawn failure, internal fault)

Stream Contract:
    - Chunks are delivered in the order produced; process output lines are
      forwarded as-is, interleaved with "[prophet] ..." progress lines.
    - Exactly one chunk with is_final=True ends every run and carries the
      terminal exit code. The test step's exit code is the terminal status
      of a completed run: failing tests are a finding, not an error.
    - error is set only for Crashed runs (exit code -1).

Cleanup:
    The workspace is released through its context manager on every exit path,
    including early termination, crashes, consumer cancellation and
    generator close. Removal errors are logged and swallowed.

TIMEOUTS:
    The executor never bounds a run. `with_deadline` wraps a chunk stream for
    callers that need a wall-clock limit.
"""
import asyncio
import logging
import os
import time
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, Mapping, Optional, Sequence

from prophet.core.config import SANDBOX_TEMP_ROOT
from prophet.core.constants import LOG_PREFIX
from prophet.executor.process_stream import SpawnFn, stream_command
from prophet.executor.tool_resolver import resolve_tool_binary, resolve_commands
from prophet.executor.workspace import SandboxWorkspace
from prophet.models.simulation import SimulationRequest, StreamChunk

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    PROVISIONING = "provisioning"
    INITIALIZING_VCS = "initializing_vcs"
    INSTALLING_DEPS = "installing_deps"
    BUILDING = "building"
    TESTING = "testing"
    COMPLETED = "completed"
    ABORTED = "aborted"
    CRASHED = "crashed"


TERMINAL_STATES = frozenset({RunState.COMPLETED, RunState.ABORTED, RunState.CRASHED})


@dataclass
class StepOutcome:
    """Exit status of one pipeline command, filled in by `_forward`."""
    exit_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class RunContext:
    """Mutable per-run bookkeeping; never shared between runs."""
    request: SimulationRequest
    workspace: Optional[SandboxWorkspace] = None
    state: RunState = RunState.PROVISIONING

    def transition(self, state: RunState) -> None:
        logger.info(
            "[Sandbox] %s: %s -> %s",
            self.request.contract_name, self.state.value, state.value,
        )
        self.state = state


def _info(message: str) -> StreamChunk:
    return StreamChunk(text=f"{LOG_PREFIX} {message}\n")


def _final(message: str, exit_code: int, error: Optional[str] = None) -> StreamChunk:
    return StreamChunk(
        text=f"{LOG_PREFIX} {message}\n", is_final=True, exit_code=exit_code, error=error
    )


class SandboxExecutor:
    """
    Runs SimulationRequests through forge in isolated temp projects.

    Usage:
        executor = SandboxExecutor()
        async for chunk in executor.run(request):
            send(chunk.text)

    Every collaborator is injectable so runs can be driven without Foundry:
    `spawn` replaces asyncio.create_subprocess_exec, `env`/`home_dir`/`exists`
    feed the forge resolver.
    """

    def __init__(
        self,
        temp_root: Optional[str] = None,
        spawn: Optional[SpawnFn] = None,
        env: Optional[Mapping[str, str]] = None,
        home_dir: Optional[str] = None,
        exists: Callable[[str], bool] = os.path.exists,
    ) -> None:
        self.temp_root = temp_root or SANDBOX_TEMP_ROOT
        self._spawn = spawn
        self._env = env
        self._home_dir = home_dir
        self._exists = exists

    def resolve_forge(self) -> str:
        env = self._env if self._env is not None else os.environ
        home = self._home_dir if self._home_dir is not None else str(Path.home())
        return resolve_tool_binary(env, home, self._exists)

    async def run(self, request: SimulationRequest) -> AsyncIterator[StreamChunk]:
        """
        Execute one simulation and stream its output.

        Parameters
        ----------
        request : SimulationRequest
            Contract source, test code and contract name for this run.

        Yields
        ------
        StreamChunk
            Progress and process output lines, then exactly one final chunk.
        """
        started = time.monotonic()
        ctx = RunContext(request=request)

        try:
            ctx.workspace = SandboxWorkspace.provision(self.temp_root, request)
        except (OSError, UnicodeError) as e:
            message = getattr(e, "strerror", None) or str(e)
            ctx.transition(RunState.CRASHED)
            logger.error("[Sandbox] Provisioning failed under %s: %s", self.temp_root, message)
            yield _final(f"Failed to provision workspace: {message}", -1, error=message)
            return

        logger.info(
            "[Sandbox] Run started | contract=%s | workspace=%s",
            request.contract_name, ctx.workspace.root_dir,
        )

        with ctx.workspace:
            try:
                async with aclosing(self._drive(ctx)) as chunks:
                    async for chunk in chunks:
                        yield chunk
            except Exception as e:
                ctx.transition(RunState.CRASHED)
                logger.exception("[Sandbox] Unexpected executor error")
                message = f"{type(e).__name__}: {e}"
                yield _final(f"Unexpected executor error: {message}", -1, error=message)
            finally:
                if ctx.state not in TERMINAL_STATES:
                    logger.warning(
                        "[Sandbox] Run cancelled during %s; releasing workspace", ctx.state.value
                    )
                logger.info(
                    "[Sandbox] Run finished | state=%s | time=%.2fs",
                    ctx.state.value, time.monotonic() - started,
                )

    async def _drive(self, ctx: RunContext) -> AsyncIterator[StreamChunk]:
        cwd = ctx.workspace.root_dir
        commands = resolve_commands(self.resolve_forge())

        yield _info(f"Temp project: {cwd}")

        # --- Initializing VCS (best effort) ---
        ctx.transition(RunState.INITIALIZING_VCS)
        outcome = StepOutcome()
        async with aclosing(self._forward(commands.vcs_init, cwd, outcome)) as chunks:
            async for chunk in chunks:
                yield chunk
        if outcome.error or outcome.exit_code != 0:
            yield _info(
                f"git init failed (exit {outcome.exit_code}); continuing without a git root"
            )

        # --- Installing dependencies / Building: non-zero exit aborts the run ---
        gated_steps = (
            (RunState.INSTALLING_DEPS, commands.install, "Installing forge-std...",
             "forge install failed (exit {code}). Is Foundry installed and git available?",
             "Run aborted while installing dependencies"),
            (RunState.BUILDING, commands.build, "Running forge build...",
             "forge build failed (exit {code})",
             "Run aborted while building"),
        )
        for state, argv, banner, diagnostic, summary in gated_steps:
            ctx.transition(state)
            yield _info(banner)
            outcome = StepOutcome()
            async with aclosing(self._forward(argv, cwd, outcome)) as chunks:
                async for chunk in chunks:
                    yield chunk
            if outcome.error:
                ctx.transition(RunState.CRASHED)
                yield _final(f"Failed to run {argv[0]}: {outcome.error}", -1, error=outcome.error)
                return
            if outcome.exit_code != 0:
                ctx.transition(RunState.ABORTED)
                yield _info(diagnostic.format(code=outcome.exit_code))
                yield _final(summary, outcome.exit_code)
                return

        # --- Testing: exit code becomes the run's terminal status ---
        ctx.transition(RunState.TESTING)
        yield _info("Running forge test...")
        outcome = StepOutcome()
        async with aclosing(self._forward(commands.test, cwd, outcome)) as chunks:
            async for chunk in chunks:
                yield chunk
        if outcome.error:
            ctx.transition(RunState.CRASHED)
            yield _final(f"Failed to run {commands.test[0]}: {outcome.error}", -1, error=outcome.error)
            return

        ctx.transition(RunState.COMPLETED)
        if outcome.exit_code == 0:
            yield _final("forge test passed: no exploit succeeded (exit 0)", 0)
        else:
            yield _final(
                f"forge test failed: exploit demonstrated (exit {outcome.exit_code})",
                outcome.exit_code,
            )

    async def _forward(
        self, argv: Sequence[str], cwd: str, outcome: StepOutcome
    ) -> AsyncIterator[StreamChunk]:
        """Yield a command's output lines; record its status chunk in *outcome*."""
        async with aclosing(stream_command(argv, cwd, spawn=self._spawn)) as chunks:
            async for chunk in chunks:
                if chunk.is_final:
                    outcome.exit_code = chunk.exit_code
                    outcome.error = chunk.error
                else:
                    yield chunk


async def with_deadline(
    chunks: AsyncIterator[StreamChunk], seconds: float
) -> AsyncIterator[StreamChunk]:
    """
    Bound a chunk stream by wall-clock time.

    On expiry the pending step is cancelled (which kills the child process and
    releases the workspace) and a final chunk with exit code -1 is yielded.
    A non-positive *seconds* passes the stream through unchanged.
    """
    if seconds <= 0:
        async for chunk in chunks:
            yield chunk
        return

    deadline = time.monotonic() + seconds
    iterator = chunks.__aiter__()
    try:
        while True:
            remaining = deadline - time.monotonic()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                chunk = await asyncio.wait_for(iterator.__anext__(), timeout=remaining)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError:
                message = f"timed out after {seconds:g}s"
                logger.warning("[Sandbox] Run %s", message)
                yield _final(f"Run {message}", -1, error=message)
                return
            yield chunk
            if chunk.is_final:
                return
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()

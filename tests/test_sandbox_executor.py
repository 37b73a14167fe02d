"""
Unit Tests — SandboxExecutor
============================
Pipeline gating, terminal chunks, workspace lifecycle, cancellation and the
deadline wrapper. Every forge/git invocation goes through a scripted spawner.
"""
import asyncio
import os
from contextlib import aclosing

from prophet.executor.sandbox_executor import SandboxExecutor, with_deadline
from prophet.models.simulation import SimulationRequest

TEST_CODE = "// SPDX-License-Identifier: MIT\ncontract VaultTest {}\n"


def _request(source):
    return SimulationRequest(source=source, test_code=TEST_CODE, contract_name="Vault")


def _executor(temp_root, spawner):
    return SandboxExecutor(
        temp_root=str(temp_root), spawn=spawner, env={"FORGE_PATH": "forge"}, home_dir=""
    )


async def _drain(chunks):
    return [chunk async for chunk in chunks]


def _run(executor, request):
    return asyncio.run(_drain(executor.run(request)))


# ---------------------------------------------------------------------------
# 1. Completed runs
# ---------------------------------------------------------------------------
class TestCompletedRuns:

    def test_passing_tests_end_in_single_zero_chunk(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner({"test": {"stdout": b"[PASS] testPlaceholder() (gas: 5000)\n"}})

        chunks = _run(_executor(temp_root, spawner), _request(vault_source))

        finals = [c for c in chunks if c.is_final]
        assert len(finals) == 1
        assert chunks[-1] is finals[0]
        assert finals[0].exit_code == 0
        assert finals[0].error is None
        assert "[PASS] testPlaceholder() (gas: 5000)\n" in [c.text for c in chunks]
        assert spawner.steps == ["init", "install", "build", "test"]
        assert os.listdir(temp_root) == []

    def test_failing_tests_are_an_exploit_not_an_error(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner({"test": {"stdout": b"[FAIL] testDrain()\n", "returncode": 1}})

        chunks = _run(_executor(temp_root, spawner), _request(vault_source))

        final = chunks[-1]
        assert final.is_final
        assert final.exit_code == 1
        assert final.error is None
        assert "exploit demonstrated" in final.text
        assert os.listdir(temp_root) == []

    def test_all_commands_run_in_the_workspace(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner()

        chunks = _run(_executor(temp_root, spawner), _request(vault_source))

        assert len(set(spawner.cwds)) == 1
        workspace = spawner.cwds[0]
        assert os.path.dirname(workspace) == str(temp_root)
        assert chunks[0].text == f"[prophet] Temp project: {workspace}\n"

    def test_forge_override_is_used(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner()
        executor = SandboxExecutor(
            temp_root=str(temp_root), spawn=spawner, env={"FORGE_PATH": "/opt/bin/forge"}
        )

        _run(executor, _request(vault_source))

        assert spawner.calls[1] == ("/opt/bin/forge", "install", "foundry-rs/forge-std")
        assert spawner.calls[3] == ("/opt/bin/forge", "test")

    def test_git_init_failure_is_not_fatal(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner(fail={"init": FileNotFoundError(2, "No such file or directory")})

        chunks = _run(_executor(temp_root, spawner), _request(vault_source))

        assert spawner.steps == ["init", "install", "build", "test"]
        assert any("git init failed" in c.text for c in chunks)
        assert chunks[-1].exit_code == 0


# ---------------------------------------------------------------------------
# 2. Aborted and crashed runs
# ---------------------------------------------------------------------------
class TestAbortedRuns:

    def test_install_failure_skips_build_and_test(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner({"install": {"stderr": b"error: git not found\n", "returncode": 1}})

        chunks = _run(_executor(temp_root, spawner), _request(vault_source))

        assert spawner.steps == ["init", "install"]
        assert chunks[-1].is_final
        assert chunks[-1].exit_code == 1
        assert any("forge install failed (exit 1)" in c.text for c in chunks)
        assert os.listdir(temp_root) == []

    def test_build_failure_skips_test(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner({"build": {"stdout": b"Error: Compiler run failed\n", "returncode": 2}})

        chunks = _run(_executor(temp_root, spawner), _request(vault_source))

        assert spawner.steps == ["init", "install", "build"]
        assert chunks[-1].exit_code == 2
        assert "Error: Compiler run failed\n" in [c.text for c in chunks]
        assert os.listdir(temp_root) == []

    def test_forge_spawn_failure_is_crash(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner(fail={"install": PermissionError(13, "Permission denied")})

        chunks = _run(_executor(temp_root, spawner), _request(vault_source))

        assert spawner.steps == ["init", "install"]
        assert chunks[-1].exit_code == -1
        assert chunks[-1].error == "Permission denied"
        assert len([c for c in chunks if c.is_final]) == 1
        assert os.listdir(temp_root) == []

    def test_provisioning_failure_is_crash(self, tmp_path, make_spawner, vault_source):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("occupied")
        spawner = make_spawner()

        chunks = _run(_executor(blocker, spawner), _request(vault_source))

        assert len(chunks) == 1
        assert chunks[0].is_final
        assert chunks[0].exit_code == -1
        assert chunks[0].error
        assert spawner.calls == []

    def test_unencodable_source_is_crash(self, temp_root, make_spawner):
        spawner = make_spawner()
        request = _request("contract Vault {} // \ud800")

        chunks = _run(_executor(temp_root, spawner), request)

        assert len(chunks) == 1
        assert chunks[0].is_final
        assert chunks[0].exit_code == -1
        assert "surrogates not allowed" in chunks[0].error
        assert spawner.calls == []
        assert os.listdir(temp_root) == []


# ---------------------------------------------------------------------------
# 3. Isolation and cleanup
# ---------------------------------------------------------------------------
class TestIsolation:

    def test_repeated_runs_use_distinct_workspaces(self, temp_root, make_spawner, vault_source):
        baseline = os.listdir(temp_root)
        first, second = make_spawner(), make_spawner()
        request = _request(vault_source)

        _run(_executor(temp_root, first), request)
        assert os.listdir(temp_root) == baseline
        _run(_executor(temp_root, second), request)
        assert os.listdir(temp_root) == baseline

        assert first.cwds[0] != second.cwds[0]

    def test_concurrent_runs_do_not_share_state(self, temp_root, make_spawner, vault_source):
        spawners = [make_spawner(), make_spawner({"test": {"returncode": 1}})]

        async def run_both():
            return await asyncio.gather(*(
                _drain(_executor(temp_root, s).run(_request(vault_source))) for s in spawners
            ))

        results = asyncio.run(run_both())

        assert [r[-1].exit_code for r in results] == [0, 1]
        assert spawners[0].cwds[0] != spawners[1].cwds[0]
        assert os.listdir(temp_root) == []

    def test_consumer_close_kills_child_and_removes_workspace(
        self, temp_root, make_spawner, vault_source
    ):
        spawner = make_spawner({"test": {"stdout": b"Ran 1 test suite\n", "hang": True}})

        async def run():
            executor = _executor(temp_root, spawner)
            async with aclosing(executor.run(_request(vault_source))) as chunks:
                async for chunk in chunks:
                    if chunk.text == "Ran 1 test suite\n":
                        break

        asyncio.run(run())

        assert spawner.processes["test"].killed
        assert os.listdir(temp_root) == []


# ---------------------------------------------------------------------------
# 4. Deadline
# ---------------------------------------------------------------------------
class TestDeadline:

    def test_timeout_yields_final_chunk_and_cleans_up(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner({"test": {"hang": True}})

        async def run():
            executor = _executor(temp_root, spawner)
            return await _drain(with_deadline(executor.run(_request(vault_source)), 0.2))

        chunks = asyncio.run(run())

        assert chunks[-1].is_final
        assert chunks[-1].exit_code == -1
        assert chunks[-1].error == "timed out after 0.2s"
        assert len([c for c in chunks if c.is_final]) == 1
        assert spawner.processes["test"].killed
        assert os.listdir(temp_root) == []

    def test_zero_disables_deadline(self, temp_root, make_spawner, vault_source):
        spawner = make_spawner()

        async def run():
            executor = _executor(temp_root, spawner)
            return await _drain(with_deadline(executor.run(_request(vault_source)), 0))

        chunks = asyncio.run(run())

        assert chunks[-1].exit_code == 0

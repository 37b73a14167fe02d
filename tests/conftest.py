"""
Shared Test Fakes
=================
Scripted stand-ins for the two external collaborators:

    ScriptedGateway  — InferenceGateway replaying canned completions
    ScriptedSpawner  — asyncio.create_subprocess_exec replacement returning
                       FakeProcess objects keyed by the command's sub-step
                       ("init", "install", "build", "test")

No network and no Foundry installation are needed by any test.
"""
import asyncio
import copy
import itertools

import pytest

from prophet.llm.gateway import InferenceError

_pids = itertools.count(1000)


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------
class ScriptedGateway:
    """Returns scripted responses in order; the last one repeats. Exceptions are raised."""

    def __init__(self, responses=(), available=True):
        self.responses = list(responses)
        self.available = available
        self.calls = []

    def is_available(self):
        return self.available

    async def complete(self, prompt, system_instruction):
        self.calls.append((prompt, system_instruction))
        if not self.responses:
            raise InferenceError("no scripted response")
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


# ---------------------------------------------------------------------------
# Processes
# ---------------------------------------------------------------------------
class FakeProcess:
    """
    Minimal asyncio.subprocess.Process look-alike.

    Output is fed into real StreamReaders. A hanging process keeps its pipes
    open and never exits until kill() is called.
    """

    def __init__(self, stdout=b"", stderr=b"", returncode=0, hang=False):
        self.pid = next(_pids)
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode = None
        self.killed = False
        self._exit_code = returncode
        self._hang = hang
        self._exited = asyncio.Event()

        if stdout:
            self.stdout.feed_data(stdout)
        if stderr:
            self.stderr.feed_data(stderr)
        if not hang:
            self.stdout.feed_eof()
            self.stderr.feed_eof()

    async def wait(self):
        if self._hang:
            await self._exited.wait()
        elif self.returncode is None:
            self.returncode = self._exit_code
        return self.returncode

    def kill(self):
        self.killed = True
        self.returncode = -9
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()


class ScriptedSpawner:
    """
    Records every spawn and hands out FakeProcesses.

    script: {step: FakeProcess kwargs}, fail: {step: OSError to raise}
    """

    def __init__(self, script=None, fail=None):
        self.script = script or {}
        self.fail = fail or {}
        self.calls = []
        self.cwds = []
        self.kwargs = []
        self.processes = {}

    async def __call__(self, *argv, **kwargs):
        step = argv[1] if len(argv) > 1 else argv[0]
        self.calls.append(tuple(argv))
        self.cwds.append(kwargs.get("cwd"))
        self.kwargs.append(kwargs)
        if step in self.fail:
            raise self.fail[step]
        proc = FakeProcess(**self.script.get(step, {}))
        self.processes[step] = proc
        return proc

    @property
    def steps(self):
        return [argv[1] for argv in self.calls]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def make_gateway():
    return ScriptedGateway


@pytest.fixture
def make_spawner():
    return ScriptedSpawner


@pytest.fixture
def temp_root(tmp_path):
    root = tmp_path / "sandbox"
    root.mkdir()
    return root


VAULT_SOURCE = """// SPDX-License-Identifier: MIT
pragma solidity ^0.8.20;

contract Vault {
    mapping(address => uint256) public balances;

    function deposit() external payable {
        balances[msg.sender] += msg.value;
    }

    function withdraw() external {
        uint256 amount = balances[msg.sender];
        (bool ok, ) = msg.sender.call{value: amount}("");
        require(ok, "send failed");
        balances[msg.sender] = 0;
    }
}
"""


@pytest.fixture
def vault_source():
    return VAULT_SOURCE


REENTRANCY_JSON = {
    "risk_score": 0.95,
    "risk_level": "critical",
    "summary": "Vault.withdraw sends ether before clearing the balance.",
    "vulnerabilities": [
        {
            "id": "VULN-001",
            "title": "Reentrancy in withdraw",
            "severity": "critical",
            "confidence": 0.92,
            "locations": [
                {"file": "Vault.sol", "function": "withdraw", "line_start": 11, "line_end": 16}
            ],
            "explanation": "External call precedes the balance update; a reentrant "
                           "receiver can withdraw repeatedly.",
            "evidence": {"patterns": ["call-before-write"], "call_graph": ["withdraw -> call"]},
            "references": ["SWC-107"],
        }
    ],
    "exploit_paths": [
        {
            "name": "Reentrant drain",
            "success_criteria": "Attacker balance exceeds its deposit",
            "steps": [
                {"action": "deposit 1 ether", "pre_state": {"vault": 10}, "post_state": {"vault": 11}},
                {"action": "withdraw and re-enter from receive()"},
            ],
        }
    ],
    "fix_suggestions": [
        {
            "id": "FIX-001",
            "title": "Checks-effects-interactions",
            "strategy": "Zero the balance before the external call",
            "explanation": "Move balances[msg.sender] = 0 above the call.",
        }
    ],
}


@pytest.fixture
def reentrancy_json():
    return copy.deepcopy(REENTRANCY_JSON)

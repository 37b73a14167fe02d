"""
Unit Tests — AttackSynthesizer
==============================
Every synthesized file must carry the header and the section banners in
order, whatever the backend returns (or fails to return).
"""
import asyncio
import json

import pytest

from prophet.agents.attack_synthesizer import AttackSynthesizer, describe_targets
from prophet.agents.report_generator import ReportGenerator
from prophet.core.constants import LICENSE_HEADER, SECTION_BANNERS
from prophet.llm.gateway import InferenceError
from prophet.llm.prompts import ATTACK_SYSTEM_PROMPT, TARGETED_ATTACK_SYSTEM_PROMPT
from prophet.parser.solidity import has_test_layout

FENCED_RESPONSE = """Sure! Here is a Foundry test that drains the vault:

```solidity
pragma solidity ^0.8.20;

import "forge-std/Test.sol";
import "../src/Vault.sol";

contract ReentrancyAttacker {
    Vault public vault;
    constructor(Vault _vault) { vault = _vault; }
    receive() external payable {
        if (address(vault).balance >= 1 ether) vault.withdraw();
    }
}

contract VaultTest is Test {
    function testReentrancyDrain() public {}
}
```

This exploits the reentrancy bug."""


def _assert_layout(code):
    assert code.startswith(LICENSE_HEADER)
    positions = [code.find(title) for title in SECTION_BANNERS]
    assert -1 not in positions
    assert positions == sorted(positions)
    assert has_test_layout(code, "Vault")


def _report(make_gateway, source, canned):
    gateway = make_gateway([json.dumps(canned)])
    return asyncio.run(ReportGenerator(gateway).generate(source))


# ---------------------------------------------------------------------------
# 1. Layout guarantee
# ---------------------------------------------------------------------------
class TestLayoutGuarantee:

    @pytest.mark.parametrize("responses, available", [
        ([FENCED_RESPONSE], True),
        (["I refuse to write exploits."], True),
        ([InferenceError("HTTP 500")], True),
        ([], False),
    ])
    def test_generic_output_always_has_layout(
        self, make_gateway, vault_source, responses, available
    ):
        gateway = make_gateway(responses, available=available)

        code = asyncio.run(AttackSynthesizer(gateway).synthesize_generic(vault_source))

        _assert_layout(code)
        assert "contract VaultTest is Test" in code

    def test_fenced_response_is_cleaned_and_reassembled(self, make_gateway, vault_source):
        gateway = make_gateway([FENCED_RESPONSE])

        code = asyncio.run(AttackSynthesizer(gateway).synthesize_generic(vault_source))

        assert "```" not in code
        assert "Sure!" not in code
        helpers = code.find(SECTION_BANNERS[1])
        tests = code.find(SECTION_BANNERS[2])
        assert helpers < code.find("contract ReentrancyAttacker") < tests
        assert "testReentrancyDrain" in code

    def test_single_call_no_retry(self, make_gateway, vault_source):
        gateway = make_gateway([InferenceError("timeout")])

        asyncio.run(AttackSynthesizer(gateway).synthesize_generic(vault_source))

        assert len(gateway.calls) == 1

    def test_unavailable_backend_makes_no_calls(self, make_gateway, vault_source):
        gateway = make_gateway([FENCED_RESPONSE], available=False)

        code = asyncio.run(AttackSynthesizer(gateway).synthesize_generic(vault_source))

        assert gateway.calls == []
        assert "testPlaceholder" in code

    def test_generic_uses_placeholder_name_without_contract(self, make_gateway):
        gateway = make_gateway(available=False)

        code = asyncio.run(AttackSynthesizer(gateway).synthesize_generic("library L {}"))

        assert "contract ContractTest is Test" in code
        assert 'import "../src/Contract.sol";' in code

    def test_misnamed_test_contract_takes_target_name(self, make_gateway, vault_source):
        gateway = make_gateway(["contract ExploitTest is Test {\n    function testDrain() public {}\n}"])

        code = asyncio.run(AttackSynthesizer(gateway).synthesize_generic(vault_source))

        _assert_layout(code)
        assert "contract VaultTest is Test" in code
        assert "ExploitTest" not in code
        assert "testDrain" in code


# ---------------------------------------------------------------------------
# 2. Targeted mode
# ---------------------------------------------------------------------------
class TestTargeted:

    def test_prompt_carries_findings(self, make_gateway, vault_source, reentrancy_json):
        report = _report(make_gateway, vault_source, reentrancy_json)
        gateway = make_gateway([FENCED_RESPONSE])

        asyncio.run(AttackSynthesizer(gateway).synthesize_targeted(vault_source, report))

        prompt, system = gateway.calls[0]
        assert system == TARGETED_ATTACK_SYSTEM_PROMPT
        assert "Reentrancy in withdraw" in prompt
        assert "Reentrant drain" in prompt

    def test_generic_uses_generic_system_prompt(self, make_gateway, vault_source):
        gateway = make_gateway([FENCED_RESPONSE])

        asyncio.run(AttackSynthesizer(gateway).synthesize_generic(vault_source))

        assert gateway.calls[0][1] == ATTACK_SYSTEM_PROMPT

    @pytest.mark.parametrize("responses, available", [
        ([FENCED_RESPONSE], True),
        (["no code here"], True),
        ([], False),
    ])
    def test_reentrancy_finding_is_embedded(
        self, make_gateway, vault_source, reentrancy_json, responses, available
    ):
        report = _report(make_gateway, vault_source, reentrancy_json)
        assert report.risk_level == "critical"
        gateway = make_gateway(responses, available=available)

        code = asyncio.run(AttackSynthesizer(gateway).synthesize_targeted(vault_source, report))

        _assert_layout(code)
        assert "reentrancy" in code.lower()
        assert "contract VaultTest is Test" in code

    def test_describe_targets(self, make_gateway, vault_source, reentrancy_json):
        report = _report(make_gateway, vault_source, reentrancy_json)
        assert describe_targets(report) == [
            "[critical] Reentrancy in withdraw",
            "exploit path: Reentrant drain",
        ]

    def test_findings_listed_even_when_response_omits_them(
        self, make_gateway, vault_source, reentrancy_json
    ):
        report = _report(make_gateway, vault_source, reentrancy_json)
        gateway = make_gateway(["contract VaultTest is Test { function testDrain() public {} }"])

        code = asyncio.run(AttackSynthesizer(gateway).synthesize_targeted(vault_source, report))

        _assert_layout(code)
        assert "testDrain" in code
        helpers = code.find(SECTION_BANNERS[1])
        tests = code.find(SECTION_BANNERS[2])
        assert helpers < code.find("//   - [critical] Reentrancy in withdraw") < tests
        assert "//   - exploit path: Reentrant drain" in code

    def test_generic_output_has_no_findings_block(self, make_gateway, vault_source):
        gateway = make_gateway(["contract VaultTest is Test { function testDrain() public {} }"])

        code = asyncio.run(AttackSynthesizer(gateway).synthesize_generic(vault_source))

        assert "Targeted findings" not in code

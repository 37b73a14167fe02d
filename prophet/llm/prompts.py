"""
LLM Prompts
===========
Centralised store for the audit and attack-synthesis prompts.

Prompt Design Rules:
    - Audit prompts request ONE JSON object; the schema is identical for the
      standard and premium tiers, premium only asks for more thoroughness.
    - Attack prompts request ONE Solidity file with a fixed banner layout so
      the sandbox can compile it as test/<Name>.t.sol.
    - "No markdown, no code fences" is requested, but never trusted: the
      parser strips fences and re-assembles the layout downstream.
"""
from prophet.core.constants import (
    LICENSE_HEADER, PRAGMA_LINE, FORGE_STD_IMPORT,
    BANNER_TARGET, BANNER_HELPERS, BANNER_TESTS,
)
from prophet.models.report import Report


def banner(title: str) -> str:
    """Render a section banner comment block."""
    rule = "=" * 60
    return f"/* {rule}\n{title.center(62).rstrip()}\n   {rule} */"


# ---------------------------------------------------------------------------
# Audit (ReportGenerator)
# ---------------------------------------------------------------------------
ANALYSIS_SYSTEM_PROMPT = (
    "You are a smart contract security auditor. Analyze Solidity code and return "
    "a structured JSON report with:\n"
    "- risk_score (0-1)\n"
    "- risk_level (critical/high/medium/low)\n"
    "- summary (brief description)\n"
    "- vulnerabilities (array of {id, title, severity, confidence, "
    "locations: [{file, function, line_start, line_end}], explanation})\n"
    "- exploit_paths (array of {name, success_criteria, "
    "steps: [{action, pre_state, post_state, notes}]})\n"
    "- fix_suggestions (array of {id, title, strategy, explanation, diff_preview, tradeoffs})\n"
    "\n"
    "Return ONLY valid JSON matching this schema. No prose before or after the object."
)

PREMIUM_ANALYSIS_ADDON = (
    "\n\nPREMIUM / FINE-TUNED MODE: Perform a deeper analysis. Consider:\n"
    "- Additional vulnerability classes (e.g. front-running, oracle manipulation, "
    "access control, integer overflow in older Solidity).\n"
    "- More detailed exploit_paths with concrete step-by-step pre_state/post_state where possible.\n"
    "- Richer fix_suggestions with tradeoffs and diff_preview hints.\n"
    "Return the same JSON schema but with more thorough findings and explanations."
)


def build_analysis_prompt(source: str, premium: bool = False) -> str:
    prompt = (
        "Analyze this Solidity contract for security vulnerabilities:\n"
        "\n"
        f"```solidity\n{source}\n```\n"
        "\n"
        "Return a JSON report with risk_score, risk_level, summary, vulnerabilities, "
        "exploit_paths, and fix_suggestions."
    )
    if premium:
        prompt += PREMIUM_ANALYSIS_ADDON
    return prompt


# ---------------------------------------------------------------------------
# Attack synthesis (AttackSynthesizer)
# ---------------------------------------------------------------------------
SINGLE_FILE_STRUCTURE = (
    "Structure (all in ONE file, in this order):\n"
    "\n"
    f"{LICENSE_HEADER}\n"
    f"{PRAGMA_LINE}\n"
    "\n"
    f"{FORGE_STD_IMPORT}\n"
    "\n"
    f"{banner(BANNER_TARGET)}\n"
    "\n"
    'import "../src/<ContractName>.sol";\n'
    "\n"
    f"{banner(BANNER_HELPERS)}\n"
    "\n"
    "// Interfaces, ReentrantAttacker-style contracts, etc.\n"
    "\n"
    f"{banner(BANNER_TESTS)}\n"
    "\n"
    "contract <ContractName>Test is Test {\n"
    "    // setUp(), test*() functions using vm.prank, vm.deal, assertEq, etc.\n"
    "}"
)

ATTACK_SYSTEM_PROMPT = (
    "You are an elite white-hat smart contract security researcher. Your task is to "
    "analyze Solidity contracts and write Foundry tests designed to break their core logic.\n"
    "\n"
    "You must return ONLY valid Solidity code in a SINGLE file. Use this exact structure:\n"
    f"{SINGLE_FILE_STRUCTURE}\n"
    "\n"
    "Rules:\n"
    f'1. Put the target contract import under "{BANNER_TARGET}", attacker/helper contracts '
    f'(interfaces, reentrancy attackers, etc.) under "{BANNER_HELPERS}", and the test '
    f'contract under "{BANNER_TESTS}".\n'
    "2. Use Foundry's Test.sol: vm.prank, vm.deal, assertEq, assertTrue, assertLt, etc.\n"
    f'3. No markdown, no code fences, no explanations. Start with "{LICENSE_HEADER}".'
)

TARGETED_ATTACK_SYSTEM_PROMPT = (
    "You are an elite white-hat smart contract security researcher. You are given a "
    "security audit report with specific vulnerabilities and exploit paths. Your task is "
    "to write a Foundry test file that attempts to exploit those findings.\n"
    "\n"
    "You must return ONLY valid Solidity code in a SINGLE file. Use this exact structure:\n"
    f"{SINGLE_FILE_STRUCTURE}\n"
    "\n"
    "Rules:\n"
    "1. Replace <ContractName> with the actual contract name from the report.\n"
    f'2. Put the target import under "{BANNER_TARGET}", any attacker/helper contracts '
    f'(e.g. ReentrantAttacker, interfaces) under "{BANNER_HELPERS}", and the main test '
    f'contract (extending Test) under "{BANNER_TESTS}".\n'
    "3. Target the reported vulnerabilities; name each test after the finding it "
    "reproduces and use vm.prank, vm.deal, assertEq, assertTrue, assertLt as needed.\n"
    f'4. No markdown, no code fences. Start with "{LICENSE_HEADER}".'
)


def build_generic_attack_prompt(source: str) -> str:
    return (
        "Analyze this Solidity contract and write a complete Foundry test file designed "
        "to break its core logic:\n"
        "\n"
        f"```solidity\n{source}\n```\n"
        "\n"
        "Output a SINGLE Solidity file with:\n"
        f'1. SPDX + pragma ^0.8.20 and {FORGE_STD_IMPORT}\n'
        f'2. A "{BANNER_TARGET}" section with import "../src/<ContractName>.sol"\n'
        f'3. An "{BANNER_HELPERS}" section (interfaces, attacker contracts like reentrancy helpers)\n'
        f'4. A "{BANNER_TESTS}" section: one contract <ContractName>Test is Test '
        "{ setUp(); test*(); }\n"
        "\n"
        "Use the exact comment headers shown in the system prompt. "
        "Return ONLY the Solidity code, no markdown."
    )


def summarize_vulnerabilities(report: Report) -> str:
    """One bullet per finding: severity, title, locations and explanation."""
    if not report.vulnerabilities:
        return "None listed."
    lines = []
    for vuln in report.vulnerabilities:
        locs = ", ".join(
            f"{loc.function} L{loc.line_start}" for loc in vuln.locations
        )
        where = f" ({locs})" if locs else ""
        lines.append(f"- [{vuln.severity}] {vuln.title}{where}: {vuln.explanation}")
    return "\n".join(lines)


def summarize_exploit_paths(report: Report) -> str:
    """One bullet per exploit path with its step actions chained by arrows."""
    if not report.exploit_paths:
        return "None listed."
    lines = []
    for path in report.exploit_paths:
        steps = " -> ".join(step.action for step in path.steps)
        lines.append(f"- {path.name}: {path.success_criteria}\n  Steps: {steps}")
    return "\n".join(lines)


def build_targeted_attack_prompt(source: str, report: Report) -> str:
    name = report.contract_name
    return (
        "Target contract (analyzed):\n"
        "\n"
        f"```solidity\n{source}\n```\n"
        "\n"
        "Audit findings to target:\n"
        "Vulnerabilities:\n"
        f"{summarize_vulnerabilities(report)}\n"
        "\n"
        "Exploit paths:\n"
        f"{summarize_exploit_paths(report)}\n"
        "\n"
        f'Write ONE Solidity file that exploits these findings. Use contract name "{name}" '
        f'and import from "../src/{name}.sol".\n'
        "\n"
        "Structure (required):\n"
        f"1. SPDX + pragma ^0.8.20 + {FORGE_STD_IMPORT}\n"
        f'2. Section "{BANNER_TARGET}" with: import "../src/{name}.sol";\n'
        f'3. Section "{BANNER_HELPERS}" with interfaces and attacker contracts (e.g. ReentrantAttacker)\n'
        f'4. Section "{BANNER_TESTS}" with: contract {name}Test is Test '
        "{ setUp(); test*(); }\n"
        "\n"
        "Use the exact comment block headers. Return ONLY the Solidity code, no markdown."
    )

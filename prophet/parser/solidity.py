"""
Solidity Text Helpers
=====================
Best-effort textual handling of Solidity sources and synthesized test files.

Nothing here compiles or parses Solidity. Every function is total: given any
string it returns a usable value and never raises. The compiler inside the
sandbox is the only authority on whether the text is valid.

Test-file layout (enforced by `enforce_test_layout`):
    // SPDX-License-Identifier: MIT
    pragma solidity ^0.8.20;
    import "forge-std/Test.sol";
    /* TARGET CONTRACT banner */            import "../src/<Name>.sol";
    /* ATTACKER / HELPER CONTRACTS banner */ interfaces, attacker contracts
    /* TEST SUITE banner */                  contract <Name>Test is Test { ... }
"""
import hashlib
import re
from typing import Optional, Sequence

from prophet.core.constants import (
    LICENSE_HEADER, PRAGMA_LINE, FORGE_STD_IMPORT,
    BANNER_TARGET, BANNER_HELPERS, BANNER_TESTS, SECTION_BANNERS,
    STUB_CONTRACT_NAME,
)
from prophet.llm.prompts import banner

_IDENT = r"[A-Za-z_$][A-Za-z0-9_$]*"
# Solidity identifiers are ASCII; a name running into other characters is no match
_IDENT_END = r"(?=[\s{]|$)"

_DECLARED_CONTRACT_RE = re.compile(
    r"^\s*(?:abstract\s+)?contract\s+(" + _IDENT + r")" + _IDENT_END, re.MULTILINE
)
_ANY_CONTRACT_RE = re.compile(r"\bcontract\s+(" + _IDENT + r")" + _IDENT_END)
_FENCE_RE = re.compile(r"```[A-Za-z]*[ \t]*\n?")
_PRAGMA_RE = re.compile(r"pragma\s+solidity")

_BANNER_BLOCK_RE = re.compile(
    r"/\*(?:(?!\*/).)*?(?:" + "|".join(re.escape(t) for t in SECTION_BANNERS) + r")(?:(?!\*/).)*?\*/",
    re.DOTALL,
)
_BANNER_LINE_RE = re.compile(
    r"^[ \t]*//[^\n]*(?:" + "|".join(re.escape(t) for t in SECTION_BANNERS) + r")[^\n]*$",
    re.MULTILINE,
)
_HEADER_LINE_RE = re.compile(
    r"^[ \t]*(?:"
    r"//\s*SPDX-License-Identifier:[^\n]*"
    r"|pragma\s+solidity[^;]*;"
    r"|import\s+[\"']forge-std/Test\.sol[\"']\s*;"
    r"|import\s+[\"']\.\./src/[^\"']*[\"']\s*;"
    r")[ \t]*$",
    re.MULTILINE,
)
_TEST_CONTRACT_RE = re.compile(
    r"^[ \t]*contract\s+(" + _IDENT + r")\s+is\s+[^{]*\bTest\b", re.MULTILINE
)
_TEST_NAMED_RE = re.compile(
    r"^[ \t]*contract\s+(" + _IDENT + r"Test)(?![A-Za-z0-9_$])", re.MULTILINE
)
_BLANK_RUNS_RE = re.compile(r"\n{3,}")


# ---------------------------------------------------------------------------
# Source identity
# ---------------------------------------------------------------------------
def fingerprint_source(source: str) -> str:
    """Stable identity of a source file: "sha256:<hex digest>"."""
    digest = hashlib.sha256(source.encode("utf-8", errors="replace")).hexdigest()
    return f"sha256:{digest}"


def extract_contract_name(source: str, default: str = STUB_CONTRACT_NAME) -> str:
    """
    Name of the first `contract <Name>` declaration, or *default*.

    Line-anchored declarations win over mentions inside comments; the loose
    match is only a fallback for single-line sources.
    """
    match = _DECLARED_CONTRACT_RE.search(source or "") or _ANY_CONTRACT_RE.search(source or "")
    return match.group(1) if match else default


# ---------------------------------------------------------------------------
# Model output sanitisation
# ---------------------------------------------------------------------------
def strip_code_fences(text: str) -> str:
    """Remove every ``` / ```solidity fence marker, keeping the enclosed code."""
    return _FENCE_RE.sub("", text or "").replace("```", "")


def sanitize_test_source(response: str) -> str:
    """
    Turn a raw model response into candidate Solidity test source.

    1. Strip code fences and surrounding whitespace.
    2. Text already starting with `pragma` or `// SPDX` is kept from the start;
       otherwise it is sliced from the first `pragma solidity` when present.
    3. Prose after the last closing brace is dropped.
    """
    code = strip_code_fences(response).strip()
    if not (code.startswith("pragma") or code.startswith("// SPDX")):
        match = _PRAGMA_RE.search(code)
        if match:
            code = code[match.start():]

    end = code.rfind("}")
    if end != -1:
        code = code[:end + 1]
    return code.strip()


# ---------------------------------------------------------------------------
# Layout enforcement
# ---------------------------------------------------------------------------
def target_import(contract_name: str) -> str:
    return f'import "../src/{contract_name}.sol";'


def has_test_layout(code: str, contract_name: str) -> bool:
    """
    True when *code* already matches the canonical layout for *contract_name*.

    Requires the license header, the forge-std import, the banners in order,
    the target import inside the TARGET CONTRACT section and a
    `contract <Name>Test` declaration inside the TEST SUITE section.
    """
    if not code.startswith(LICENSE_HEADER) or FORGE_STD_IMPORT not in code:
        return False

    positions = []
    position = 0
    for title in SECTION_BANNERS:
        found = code.find(title, position)
        if found == -1:
            return False
        positions.append(found)
        position = found + len(title)

    target_at = code.find(target_import(contract_name), positions[0])
    if target_at == -1 or target_at > positions[1]:
        return False

    suite = re.compile(
        r"^[ \t]*contract\s+" + re.escape(f"{contract_name}Test") + r"(?![A-Za-z0-9_$])",
        re.MULTILINE,
    )
    return suite.search(code, positions[2]) is not None


def render_test_file(contract_name: str, helpers: str, suite: str) -> str:
    """Assemble a test file in the canonical section layout."""
    return (
        f"{LICENSE_HEADER}\n"
        f"{PRAGMA_LINE}\n"
        "\n"
        f"{FORGE_STD_IMPORT}\n"
        "\n"
        f"{banner(BANNER_TARGET)}\n"
        "\n"
        f"{target_import(contract_name)}\n"
        "\n"
        f"{banner(BANNER_HELPERS)}\n"
        "\n"
        f"{helpers.strip()}\n"
        "\n"
        f"{banner(BANNER_TESTS)}\n"
        "\n"
        f"{suite.strip()}\n"
    )


def render_targets(targets: Sequence[str], heading: str = "Targeted findings:") -> str:
    """Finding descriptions as a comment block for the helpers section."""
    return "\n".join([f"// {heading}"] + [f"//   - {line}" for line in targets])


def enforce_test_layout(
    code: str, contract_name: str, targets: Optional[Sequence[str]] = None
) -> Optional[str]:
    """
    Return *code* in the canonical layout, re-assembling it when needed.

    Compliant code without *targets* is returned unchanged. Otherwise header
    lines, target imports and stray banners are dropped, everything before
    the first test contract becomes the helpers section and the rest the test
    suite. The test contract is renamed to `<Name>Test` when the response
    chose another name, and *targets* open the helpers section as comments.

    Returns None when no test contract can be located; callers fall back to
    the deterministic template.
    """
    if not targets and has_test_layout(code, contract_name):
        return code

    body = _BANNER_BLOCK_RE.sub("", code)
    body = _BANNER_LINE_RE.sub("", body)
    body = _HEADER_LINE_RE.sub("", body)

    match = _TEST_CONTRACT_RE.search(body) or _TEST_NAMED_RE.search(body)
    if match is None:
        return None

    helpers = _BLANK_RUNS_RE.sub("\n\n", body[:match.start()]).strip()
    suite = _BLANK_RUNS_RE.sub("\n\n", body[match.start():]).strip()

    expected = f"{contract_name}Test"
    if match.group(1) != expected:
        suite = re.sub(
            r"\bcontract\s+" + re.escape(match.group(1)) + r"(?![A-Za-z0-9_$])",
            f"contract {expected}",
            suite,
            count=1,
        )

    if targets:
        helpers = f"{render_targets(targets)}\n\n{helpers}".strip()
    if not helpers:
        helpers = "// No attacker or helper contracts required."
    return render_test_file(contract_name, helpers, suite)


def render_fallback_test(contract_name: str, targets: Optional[Sequence[str]] = None) -> str:
    """
    Deterministic minimal test: deploy the target and assert it has an address.

    *targets* are finding descriptions written as comments into the helpers
    section so a targeted run still records what it was aimed at.
    """
    if targets:
        helpers = render_targets(targets, "Targeted findings (no synthesized exploit available):")
    else:
        helpers = "// Add interfaces and attacker contracts here when targeting specific vulns"

    suite = (
        f"contract {contract_name}Test is Test {{\n"
        f"    {contract_name} public target;\n"
        "\n"
        "    function setUp() public {\n"
        f"        target = new {contract_name}();\n"
        "    }\n"
        "\n"
        "    function testPlaceholder() public view {\n"
        "        assertEq(address(target) != address(0), true);\n"
        "    }\n"
        "}"
    )
    return render_test_file(contract_name, helpers, suite)

"""
Constants
Centralised storage for report identity, retry budget, test-file layout and sandbox naming.
"""
RISK_LEVELS = ("critical", "high", "medium", "low")
SEVERITIES = ("critical", "high", "medium", "low", "info")
MAX_REPORT_ATTEMPTS = 3

GENERATOR_ID = "prophet@alpha"
SCHEMA_VERSION = "0.1.0"

STUB_CONTRACT_NAME = "Contract"

LICENSE_HEADER = "// SPDX-License-Identifier: MIT"
PRAGMA_LINE = "pragma solidity ^0.8.20;"
FORGE_STD_IMPORT = 'import "forge-std/Test.sol";'
BANNER_TARGET = "TARGET CONTRACT"
BANNER_HELPERS = "ATTACKER / HELPER CONTRACTS"
BANNER_TESTS = "TEST SUITE"
SECTION_BANNERS = (BANNER_TARGET, BANNER_HELPERS, BANNER_TESTS)

LOG_PREFIX = "[prophet]"
WORKSPACE_PREFIX = "prophet-foundry"
FORGE_STD_PACKAGE = "foundry-rs/forge-std"

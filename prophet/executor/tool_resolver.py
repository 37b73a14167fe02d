"""
Tool Resolver
=============
Locates the forge binary and maps each sandbox pipeline stage to its argv.

Resolution order for forge:
    1. FORGE_PATH override (environment)
    2. ~/.foundry/bin/forge when it exists (foundryup's default install)
    3. bare "forge", resolved by the OS against PATH

Resolver never executes commands; it only returns argv lists.
Deterministic: same env + home + filesystem → same commands, always.
"""
import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from prophet.core.constants import FORGE_STD_PACKAGE

FORGE_ENV_VAR = "FORGE_PATH"
DEFAULT_FORGE = "forge"


def resolve_tool_binary(
    env: Mapping[str, str],
    home_dir: Optional[str],
    exists: Callable[[str], bool] = os.path.exists,
) -> str:
    """
    Resolve the forge executable from explicit inputs only.

    Parameters
    ----------
    env : Mapping[str, str]
        Environment to read the FORGE_PATH override from.
    home_dir : str | None
        Home directory of the calling user; None or "" skips the convention.
    exists : Callable[[str], bool]
        Filesystem probe used for the home-directory convention.

    Returns
    -------
    str
        Absolute path, or "forge" to be found on PATH.
    """
    override = (env.get(FORGE_ENV_VAR) or "").strip()
    if override:
        return override

    if home_dir:
        candidate = os.path.join(home_dir, ".foundry", "bin", "forge")
        if exists(candidate):
            return candidate

    return DEFAULT_FORGE


@dataclass(frozen=True)
class SandboxCommands:
    """
    Immutable argv set for one sandbox run.

    Fields
    ------
    vcs_init : tuple[str, ...]
        Creates the git root forge install needs (best effort).
    install : tuple[str, ...]
        Fetches forge-std into lib/.
    build : tuple[str, ...]
        Compiles src/ and test/.
    test : tuple[str, ...]
        Runs the test suite.
    """
    vcs_init: tuple[str, ...]
    install: tuple[str, ...]
    build: tuple[str, ...]
    test: tuple[str, ...]


def resolve_commands(forge: str) -> SandboxCommands:
    """Build the sandbox pipeline argv lists for the given forge binary."""
    return SandboxCommands(
        vcs_init=("git", "init", "--quiet"),
        install=(forge, "install", FORGE_STD_PACKAGE),
        build=(forge, "build"),
        test=(forge, "test"),
    )

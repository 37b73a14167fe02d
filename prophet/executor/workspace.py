"""
Sandbox Workspace
=================
Ephemeral Foundry project directory for one simulation run.

Layout:
    <temp_root>/prophet-foundry-<epoch ms>-<random hex>/
        foundry.toml            fixed toolchain configuration
        src/<Name>.sol          contract under test
        test/<Name>.t.sol       synthesized test file

Lifecycle:
    - provision() creates the directory and registers its removal in the same
      step (weakref.finalize), before any file is written.
    - cleanup() runs the registered removal. It runs at most once no matter
      how often it is called, and also fires if the workspace object is
      garbage-collected or the interpreter exits first.
    - Removal is best effort: errors are logged, never raised.
    - Use as a context manager so every exit path releases the directory.
"""
import logging
import os
import secrets
import shutil
import time
import weakref
from typing import Optional

from prophet.core.constants import WORKSPACE_PREFIX
from prophet.models.simulation import SimulationRequest

logger = logging.getLogger(__name__)

FOUNDRY_TOML = """[profile.default]
src = "src"
out = "out"
libs = ["lib"]
solc = "0.8.28"
evm_version = "cancun"

[fmt]
line_length = 100
"""


def _remove_tree(path: str) -> None:
    try:
        shutil.rmtree(path)
        logger.info("Workspace %s removed", path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove workspace %s: %s", path, e)


def workspace_name() -> str:
    """Unique directory name: timestamp plus random suffix."""
    return f"{WORKSPACE_PREFIX}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class SandboxWorkspace:
    """
    Exclusively owned temp project for a single run.

    Usage:
        with SandboxWorkspace.provision(temp_root, request) as ws:
            ...  # ws.root_dir, ws.src_dir, ws.test_dir
        # directory is gone here
    """

    def __init__(self, root_dir: str) -> None:
        self.root_dir = root_dir
        self.src_dir = os.path.join(root_dir, "src")
        self.test_dir = os.path.join(root_dir, "test")
        self._finalizer = weakref.finalize(self, _remove_tree, root_dir)

    @classmethod
    def provision(
        cls,
        temp_root: str,
        request: SimulationRequest,
        name: Optional[str] = None,
    ) -> "SandboxWorkspace":
        """
        Create the workspace and write the project files.

        Raises
        ------
        OSError
            Directory or file creation failed.
        UnicodeError
            Source or test code cannot be encoded as UTF-8 (lone surrogates).

        Anything already created has been removed before the error propagates.
        """
        os.makedirs(temp_root, exist_ok=True)
        root_dir = os.path.join(temp_root, name or workspace_name())
        os.mkdir(root_dir)
        workspace = cls(root_dir)
        try:
            workspace._write_project(request)
        except BaseException:
            workspace.cleanup()
            raise
        return workspace

    def _write_project(self, request: SimulationRequest) -> None:
        os.mkdir(self.src_dir)
        os.mkdir(self.test_dir)
        _write_text(os.path.join(self.root_dir, "foundry.toml"), FOUNDRY_TOML)
        _write_text(self.source_path(request.contract_name), request.source)
        _write_text(self.test_path(request.contract_name), request.test_code)

    def source_path(self, contract_name: str) -> str:
        return os.path.join(self.src_dir, f"{contract_name}.sol")

    def test_path(self, contract_name: str) -> str:
        return os.path.join(self.test_dir, f"{contract_name}.t.sol")

    @property
    def cleaned_up(self) -> bool:
        return not self._finalizer.alive

    def cleanup(self) -> None:
        """Remove the directory tree (first call only)."""
        self._finalizer()

    def __enter__(self) -> "SandboxWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()


def _write_text(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)

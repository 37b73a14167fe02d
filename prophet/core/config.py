"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    INFERENCE_API_KEY           — API key for the remote inference backend (0G / OpenAI-compatible)
    INFERENCE_BASE_URL          — Base URL of the OpenAI-compatible endpoint (e.g. https://host/v1)
    INFERENCE_MODEL             — Model identifier sent with every completion request
    INFERENCE_TIMEOUT_SECONDS   — Per-request HTTP timeout (default: 60)
    INFERENCE_MAX_TOKENS        — Completion token cap (default: 8192)
    FORGE_PATH                  — Explicit path to the forge binary (optional; read by the tool resolver)
    SANDBOX_TEMP_ROOT           — Directory under which sandbox workspaces are created
                                  (default: the OS temp directory)
    SIMULATION_TIMEOUT_SECONDS  — Wall-clock cap for one streamed sandbox run (default: 0 = no cap)
    LOG_LEVEL                   — Root log level (default: INFO)
    LOG_DIR                     — Directory for the daily log file (default: logs)
    CORS_ORIGINS                — Comma separated list of allowed browser origins

Inference Availability:
    The inference backend counts as available only when both INFERENCE_API_KEY
    and INFERENCE_BASE_URL are set. Without them every stage runs on its
    deterministic local fallback.

Simulation Timeout:
    The sandbox executor itself never bounds a run. The HTTP layer wraps the
    chunk stream with SIMULATION_TIMEOUT_SECONDS; on expiry the child process
    is killed and the workspace removed.
"""
import os
import tempfile
from dotenv import load_dotenv

load_dotenv()

INFERENCE_API_KEY = os.getenv("INFERENCE_API_KEY")
INFERENCE_BASE_URL = os.getenv("INFERENCE_BASE_URL")
INFERENCE_MODEL = os.getenv("INFERENCE_MODEL", "meta-llama/llama-3.3-70b-instruct")
INFERENCE_TIMEOUT_SECONDS = float(os.getenv("INFERENCE_TIMEOUT_SECONDS", 60))
INFERENCE_MAX_TOKENS = int(os.getenv("INFERENCE_MAX_TOKENS", 8192))

# Sandbox workspaces
SANDBOX_TEMP_ROOT = os.getenv("SANDBOX_TEMP_ROOT", tempfile.gettempdir())
SIMULATION_TIMEOUT_SECONDS = float(os.getenv("SIMULATION_TIMEOUT_SECONDS", 0))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")

# Browser frontend origins
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if origin.strip()
]

"""
Diagnostics: tool version detection and configuration checks.
"""

import logging
import subprocess

from bilisummary.core.config import AppConfig
from bilisummary.core.constants import APP_VERSION
from bilisummary.core.security_utils import run_subprocess_capture

logger = logging.getLogger(__name__)


def _tool_version(args: list[str]) -> str:
    """First line of a tool's version output, or an error message."""
    try:
        result = run_subprocess_capture(args, timeout=10)
        if result.returncode == 0:
            lines = result.stdout.strip().splitlines()
            return lines[0] if lines else "Unknown"
        return f"Error (rc={result.returncode})"
    except FileNotFoundError:
        return "Not installed"
    except (OSError, subprocess.SubprocessError) as e:
        return f"Error: {e}"


def get_ffmpeg_version() -> str:
    return _tool_version(["ffmpeg", "-version"])


def get_ffprobe_version() -> str:
    return _tool_version(["ffprobe", "-version"])


def get_diagnostics(config: AppConfig) -> dict:
    """Gather all diagnostic information. Secrets are reported as present/absent only."""
    credential = config.credential_from_env()
    return {
        "app_version": APP_VERSION,
        "ffmpeg_version": get_ffmpeg_version(),
        "ffprobe_version": get_ffprobe_version(),
        "ai_configured": config.is_ai_configured,
        "api_base_url": config.api_base_url,
        "ai_model": config.ai_model,
        "credential_present": credential is not None,
        "csrf_token_present": bool(credential and credential.bili_jct),
        "output_root": str(config.output_root),
        "config_path": str(config.path),
    }

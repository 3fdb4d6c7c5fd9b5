"""
Security utilities for BiliSummary.
- Path traversal protection
- Filename sanitization
- Safe subprocess execution (argument arrays only)
"""

import re
import subprocess
import pathlib
import logging

from bilisummary.core.constants import UNSAFE_FILENAME_CHARS, MAX_FILENAME_LEN

logger = logging.getLogger(__name__)


# ── Filename / path safety ────────────────────────────────────────────

def sanitize_title(title: str) -> str:
    """Sanitize a video title for use as a file name."""
    if not title:
        return ""
    # Replace unsafe characters with underscore
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', title)
    # Remove path traversal sequences
    safe = safe.replace('..', '')
    # Collapse runs of whitespace
    safe = re.sub(r'\s+', ' ', safe).strip()
    # Truncate
    if len(safe) > MAX_FILENAME_LEN:
        safe = safe[:MAX_FILENAME_LEN].rstrip()
    # Remove leading/trailing dots (hidden files)
    safe = safe.strip('.')
    return safe


def safe_output_path(output_root: pathlib.Path, relative_dir: str, filename: str) -> pathlib.Path:
    """
    Join <output_root>/<relative_dir>/<filename>, refusing anything that
    resolves outside output_root.
    """
    candidate = output_root.joinpath(*[p for p in relative_dir.split('/') if p], filename)
    real_root = output_root.resolve(strict=False)
    real_candidate = candidate.resolve(strict=False)
    if real_root != real_candidate and real_root not in real_candidate.parents:
        raise ValueError(f"Path escapes output root: {relative_dir}/{filename}")
    return candidate


# ── Subprocess safety ─────────────────────────────────────────────────

def run_subprocess(args: list[str], **kwargs) -> subprocess.CompletedProcess:
    """Run ffmpeg/ffprobe style tools from an argument list; never through a shell."""
    if isinstance(args, (str, bytes)) or not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list or tuple")
    if kwargs.pop('shell', False):
        logger.warning("Ignoring shell=True for %s", args[0] if args else "<empty>")

    logger.debug("Exec: %s", ' '.join(str(a) for a in args))
    return subprocess.run(list(args), shell=False, **kwargs)


def run_subprocess_capture(args: list[str], timeout: int = 300, **kwargs) -> subprocess.CompletedProcess:
    """run_subprocess with text stdout/stderr captured."""
    return run_subprocess(args, capture_output=True, text=True, timeout=timeout, **kwargs)

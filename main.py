#!/usr/bin/env python3
"""
BiliSummary — source-tree launcher.
Equivalent to the installed `bilisummary` console script.
"""

import os
import sys
from pathlib import Path

# ── Ensure Homebrew paths are in PATH ────────────────────────────────
# ffmpeg/ffprobe are usually installed there and non-login shells or
# launchd jobs may not have them on PATH.
HOMEBREW_PATHS = [
    "/opt/homebrew/bin",          # Apple Silicon default
    "/usr/local/bin",             # Intel Mac default
]

current_path = os.environ.get("PATH", "")
for p in HOMEBREW_PATHS:
    if os.path.isdir(p) and p not in current_path.split(os.pathsep):
        current_path = p + os.pathsep + current_path
os.environ["PATH"] = current_path

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


if __name__ == "__main__":
    from bilisummary.cli import main
    sys.exit(main())

"""
Time-based audio segmentation using ffmpeg.
Fixed-length segments, no overlap, stream copy into .m4a files.
"""

import json
import subprocess
import logging
from pathlib import Path

from bilisummary.core.security_utils import run_subprocess_capture
from bilisummary.core.error_codes import TranscriptionFailed
from bilisummary.core.constants import ASR_SEGMENT_SEC

logger = logging.getLogger(__name__)


def get_audio_duration(audio_path: Path) -> float:
    """Duration in seconds according to ffprobe."""
    args = [
        "ffprobe",
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "json",
        str(audio_path),
    ]
    try:
        result = run_subprocess_capture(args, timeout=60)
    except (OSError, subprocess.SubprocessError) as e:
        raise TranscriptionFailed(f"ffprobe failed: {e}")

    if result.returncode != 0:
        raise TranscriptionFailed(
            f"ffprobe failed: {result.stderr[:200] if result.stderr else 'unknown error'}")

    try:
        return float(json.loads(result.stdout)['format']['duration'])
    except (ValueError, KeyError, TypeError):
        raise TranscriptionFailed("Could not read audio duration")


def create_segment_manifest(duration_sec: float,
                            segment_sec: int = ASR_SEGMENT_SEC) -> list[dict]:
    """
    Split [0, duration) into consecutive segments.
    Returns list of dicts with idx, start_sec, end_sec.
    """
    segments = []
    idx = 0
    start = 0.0

    while start < duration_sec:
        end = min(start + segment_sec, duration_sec)
        segments.append({'idx': idx, 'start_sec': start, 'end_sec': end})
        idx += 1
        start = end

    return segments


def split_audio_into_segments(source_path: Path, segments_dir: Path,
                              manifest_entries: list[dict]) -> list[Path]:
    """
    Cut the source audio into segment files using ffmpeg.
    Returns list of segment file paths in manifest order.
    """
    segments_dir.mkdir(parents=True, exist_ok=True)
    segment_paths = []

    for entry in manifest_entries:
        idx = entry['idx']
        start = entry['start_sec']
        duration = entry['end_sec'] - start

        segment_file = segments_dir / f"seg_{idx:03d}.m4a"

        args = [
            "ffmpeg",
            "-y",
            "-i", str(source_path),
            "-ss", str(start),
            "-t", str(duration),
            "-vn",
            "-codec:a", "copy",
            str(segment_file),
        ]

        try:
            result = run_subprocess_capture(args, timeout=120)
        except (OSError, subprocess.SubprocessError) as e:
            raise TranscriptionFailed(f"Segment {idx} creation failed: {e}")

        if result.returncode != 0:
            raise TranscriptionFailed(
                f"ffmpeg segment {idx} failed: {result.stderr[:200] if result.stderr else 'unknown error'}")

        if not segment_file.exists():
            raise TranscriptionFailed(f"Segment file {idx} not created")

        segment_paths.append(segment_file)

    logger.info("Created %d segments in %s", len(segment_paths), segments_dir)
    return segment_paths

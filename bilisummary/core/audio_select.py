"""
Audio stream selection policy (speech-first).
Picks one audio-only stream out of a dash play-url descriptor.
"""

import logging

from bilisummary.core.constants import PREFERRED_AUDIO_KBPS, MIN_AUDIO_KBPS, MAX_AUDIO_KBPS
from bilisummary.core.models import normalize_url

logger = logging.getLogger(__name__)


def _stream_url(stream: dict) -> str:
    url = stream.get('baseUrl') or stream.get('base_url') or ''
    if not url:
        backups = stream.get('backupUrl') or stream.get('backup_url') or []
        url = backups[0] if backups else ''
    return normalize_url(url)


def _kbps(stream: dict) -> float | None:
    try:
        bandwidth = float(stream.get('bandwidth'))
    except (TypeError, ValueError):
        return None
    return bandwidth / 1000.0 if bandwidth > 0 else None


def select_audio_stream(play_info: dict) -> dict | None:
    """
    Select the audio stream to transcribe.

    Policy:
    1. Only streams with a usable URL are considered
    2. Prefer bandwidth within [MIN, MAX] kbps, closest to the preferred rate
    3. Ties favour the higher bandwidth
    4. Without bandwidth data (or nothing in range), use the first stream

    Returns dict with url, id, kbps and selection_reason, or None when the
    descriptor has no audio streams.
    """
    dash = play_info.get('dash') or {}
    streams = [s for s in dash.get('audio') or [] if isinstance(s, dict) and _stream_url(s)]
    if not streams:
        return None

    in_range = [s for s in streams
                if _kbps(s) is not None and MIN_AUDIO_KBPS <= _kbps(s) <= MAX_AUDIO_KBPS]

    if in_range:
        in_range.sort(key=lambda s: (abs(_kbps(s) - PREFERRED_AUDIO_KBPS), -_kbps(s)))
        selected = in_range[0]
        reason = f"Closest to {PREFERRED_AUDIO_KBPS}kbps in [{MIN_AUDIO_KBPS}-{MAX_AUDIO_KBPS}] range"
    else:
        selected = streams[0]
        reason = "No stream in range; chose first audio stream"

    result = {
        'url': _stream_url(selected),
        'id': selected.get('id'),
        'kbps': _kbps(selected),
        'selection_reason': reason,
    }
    logger.info("Selected audio stream: id=%s kbps=%s reason=%s",
                result['id'], result['kbps'], reason)
    return result

"""
Cleanup of the per-video audio workspace used by the speech recognition fallback.
"""

import shutil
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

_AUDIO_DIRS = ('source', 'segments')
_DEBUG_DIRS = ('transcripts',)


def cleanup_job_artifacts(job_workspace: Path, keep_debug: bool = False):
    """
    Remove downloaded audio and its segments, whether or not ASR succeeded.
    With keep_debug the per-segment transcripts (and so the workspace) stay.
    """
    if not job_workspace.exists():
        return

    doomed = _AUDIO_DIRS if keep_debug else _AUDIO_DIRS + _DEBUG_DIRS
    for name in doomed:
        target = job_workspace / name
        if not target.exists():
            continue
        try:
            shutil.rmtree(target)
        except OSError as e:
            logger.warning("Could not delete %s: %s", target, e)

    if keep_debug:
        logger.debug("Keeping debug artifacts in %s", job_workspace)
        return
    try:
        job_workspace.rmdir()
    except OSError as e:
        logger.debug("Workspace %s not removed: %s", job_workspace, e)

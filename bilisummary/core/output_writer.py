"""
Output writer: files finished summaries, metadata sidecars and ASS captions.

Layout under the output root:
    summary/<destination>[/no_subtitle]/<SanitizedTitle>.md
    summary/<destination>[/no_subtitle]/<SanitizedTitle>.meta.json
    ass/<destination>/<SanitizedTitle>.ass
"""

import json
import logging
from pathlib import Path

from bilisummary.core.captions_parse import generate_ass
from bilisummary.core.constants import (
    SUMMARY_DIRNAME, CAPTIONS_DIRNAME, NO_SUBTITLE_DIRNAME, BILIBILI_SPACE_URL,
)
from bilisummary.core.models import SummaryRecord, video_url
from bilisummary.core.security_utils import sanitize_title, safe_output_path

logger = logging.getLogger(__name__)


class SummarySink:
    """Persistence contract used by the pipeline."""

    def exists(self, title: str, destination: str) -> bool:
        raise NotImplementedError

    def save_summary(self, record: SummaryRecord, summary: str) -> bool:
        raise NotImplementedError

    def save_captions(self, title: str, cues, destination: str) -> bool:
        raise NotImplementedError


def _file_stem(title: str) -> str:
    return sanitize_title(title) or "untitled"


def render_markdown(record: SummaryRecord, summary: str) -> str:
    author_line = ""
    if record.author_name and record.author_uid > 0:
        space = BILIBILI_SPACE_URL.format(uid=record.author_uid)
        author_line = f"**作者**: [{record.author_name}]({space})\n"
    elif record.author_name:
        author_line = f"**作者**: {record.author_name}\n"

    duration = f"{record.duration // 60:02d}:{record.duration % 60:02d}"

    return (
        f"# {record.title}\n"
        f"\n"
        f"**BV号**: {record.bvid}\n"
        f"**视频链接**: {video_url(record.bvid)}\n"
        f"{author_line}"
        f"**时长**: {duration}\n"
        f"**生成时间**: {record.generated_at}\n"
        f"\n"
        f"---\n"
        f"\n"
        f"## 📝 摘要\n"
        f"\n"
        f"{summary}\n"
    )


class FileSummaryStore(SummarySink):
    def __init__(self, output_root: Path):
        self.output_root = output_root

    def _summary_dir(self, destination: str, has_subtitle: bool) -> str:
        rel = f"{SUMMARY_DIRNAME}/{destination}"
        return rel if has_subtitle else f"{rel}/{NO_SUBTITLE_DIRNAME}"

    def summary_path(self, title: str, destination: str, has_subtitle: bool = True) -> Path:
        return safe_output_path(self.output_root,
                                self._summary_dir(destination, has_subtitle),
                                f"{_file_stem(title)}.md")

    def exists(self, title: str, destination: str) -> bool:
        """True when a summary was filed under either the normal or the no_subtitle location."""
        try:
            return any(self.summary_path(title, destination, has_subtitle).exists()
                       for has_subtitle in (True, False))
        except ValueError:
            return False

    def save_summary(self, record: SummaryRecord, summary: str) -> bool:
        stem = _file_stem(record.title)
        rel_dir = self._summary_dir(record.category, record.has_subtitle)
        try:
            md_path = safe_output_path(self.output_root, rel_dir, f"{stem}.md")
            meta_path = safe_output_path(self.output_root, rel_dir, f"{stem}.meta.json")
            md_path.parent.mkdir(parents=True, exist_ok=True)
            md_path.write_text(render_markdown(record, summary), encoding='utf-8')
            with open(meta_path, 'w', encoding='utf-8') as f:
                json.dump(record.meta_dict(), f, indent=2, ensure_ascii=False)
        except (OSError, ValueError) as e:
            logger.error("Failed to save summary for %s: %s", record.bvid, e)
            return False

        logger.info("Wrote summary: %s", md_path)
        return True

    def save_captions(self, title: str, cues, destination: str) -> bool:
        if not cues:
            return True
        try:
            path = safe_output_path(self.output_root,
                                    f"{CAPTIONS_DIRNAME}/{destination}",
                                    f"{_file_stem(title)}.ass")
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(generate_ass(title, cues), encoding='utf-8')
        except (OSError, ValueError) as e:
            logger.error("Failed to save captions for %r: %s", title, e)
            return False

        logger.info("Wrote captions: %s", path)
        return True

    def save_user_meta(self, uid: int, name: str):
        """Display name for a users/<uid> folder."""
        path = safe_output_path(self.output_root, f"{SUMMARY_DIRNAME}/users/{uid}", ".meta.json")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump({'name': name, 'uid': uid}, f, ensure_ascii=False)

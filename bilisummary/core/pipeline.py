"""
Per-video pipeline.

FETCHING_INFO -> CHECK_EXISTING -> FETCHING_SUBTITLE
    -> [TRANSCRIBING_AUDIO] -> SUMMARIZING -> SAVING -> DONE
with early exits to SKIPPED, NO_SUBTITLE_SAVED or FAILED.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Protocol

from bilisummary.core.bilibili_api import BilibiliAPI
from bilisummary.core.constants import (
    ItemStatus, PipelineStage, TranscriptSource, NO_CONTENT_SUMMARY,
)
from bilisummary.core.error_codes import (
    PipelineError, SubtitleUnavailable, TranscriptionFailed, PersistenceFailed,
    describe_error,
)
from bilisummary.core.models import (
    WorkItem, VideoMeta, SubtitleResult, SummaryRecord, video_url,
)
from bilisummary.core.output_writer import SummarySink
from bilisummary.core.subtitles import SubtitleResolver
from bilisummary.core.summarizer import Summarizer

logger = logging.getLogger(__name__)

GENERATED_AT_FORMAT = "%Y-%m-%d %H:%M:%S"


class Reporter(Protocol):
    def __call__(self, status: str, message: str, stage: str,
                 title: Optional[str] = None) -> None: ...


class Transcriber(Protocol):
    def transcribe(self, bvid: str, credential=None) -> str: ...


class VideoPipeline:
    """
    Runs one video to a terminal state. Never raises for per-item failures:
    the outcome is reported through the reporter and returned as a status.
    """

    def __init__(self, api: BilibiliAPI,
                 resolver: SubtitleResolver,
                 transcriber: Transcriber,
                 summarizer: Summarizer,
                 sink: SummarySink,
                 now: Callable[[], datetime] = datetime.now):
        self.api = api
        self.resolver = resolver
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.sink = sink
        self.now = now

    def process(self, item: WorkItem, report: Reporter) -> str:
        bvid = item.video_id
        try:
            return self._run(item, report)
        except Exception as e:
            if isinstance(e, PipelineError):
                logger.error("[%s] Pipeline failed: %s", bvid, e)
            else:
                logger.error("[%s] Unexpected pipeline error: %s", bvid, e, exc_info=True)
            report(ItemStatus.FAILED, describe_error(e)[:2000], PipelineStage.FAILED)
            return ItemStatus.FAILED

    def _run(self, item: WorkItem, report: Reporter) -> str:
        bvid = item.video_id

        # ── Stage 1: Video info ──
        report(ItemStatus.PROCESSING, "Fetching video info", PipelineStage.FETCHING_INFO)
        meta = self.api.get_video_info(bvid, item.credential)
        title = meta.title or bvid
        logger.info("[%s] Title: %s", bvid, title)

        # ── Stage 2: Existing summary ──
        report(ItemStatus.PROCESSING, "Checking existing summary",
               PipelineStage.CHECK_EXISTING, title=title)
        if self.sink.exists(title, item.destination):
            logger.info("[%s] Already summarized, skipping", bvid)
            report(ItemStatus.SKIPPED, "Already exists", PipelineStage.SKIPPED)
            return ItemStatus.SKIPPED

        # ── Stage 3: Subtitle ──
        report(ItemStatus.PROCESSING, "Fetching subtitle", PipelineStage.FETCHING_SUBTITLE)
        subtitle = self._fetch_subtitle(item)

        if subtitle is not None and subtitle.text:
            transcript = subtitle.text
            source = TranscriptSource.SUBTITLE
            cues = subtitle.cues
        else:
            # ── Stage 3b: Speech recognition fallback ──
            report(ItemStatus.PROCESSING, "No subtitle, trying speech recognition",
                   PipelineStage.TRANSCRIBING_AUDIO)
            try:
                transcript = self.transcriber.transcribe(bvid, item.credential)
                if not transcript or not transcript.strip():
                    raise TranscriptionFailed("Speech recognition produced no text")
            except Exception as e:
                logger.warning("[%s] Transcription fallback failed: %s", bvid, e)
                self._save_summary(meta, item, NO_CONTENT_SUMMARY, TranscriptSource.NONE)
                report(ItemStatus.NO_SUBTITLE, "No subtitle", PipelineStage.NO_SUBTITLE_SAVED)
                return ItemStatus.NO_SUBTITLE
            source = TranscriptSource.ASR
            cues = ()

        # ── Stage 4: Summarize ──
        logger.info("[%s] Summarizing (%d chars, source=%s)", bvid, len(transcript), source)
        report(ItemStatus.PROCESSING, "Summarizing", PipelineStage.SUMMARIZING)
        summary = self.summarizer.summarize(transcript, title)

        # ── Stage 5: Save ──
        report(ItemStatus.PROCESSING, "Saving", PipelineStage.SAVING)
        self._save_summary(meta, item, summary.text, source)
        if cues and not self.sink.save_captions(title, cues, item.destination):
            raise PersistenceFailed(f"Could not save captions for {bvid}")

        report(ItemStatus.SUCCESS, f"Done ({summary.duration_sec:.1f}s)", PipelineStage.DONE)
        return ItemStatus.SUCCESS

    def _fetch_subtitle(self, item: WorkItem) -> Optional[SubtitleResult]:
        try:
            return self.resolver.resolve(item.video_id, item.credential)
        except SubtitleUnavailable as e:
            logger.info("[%s] %s", item.video_id, e.message)
            return None

    def _save_summary(self, meta: VideoMeta, item: WorkItem, summary: str, source: str):
        bvid = meta.bvid or item.video_id
        record = SummaryRecord(
            title=meta.title or bvid,
            bvid=bvid,
            url=video_url(bvid),
            duration=meta.duration,
            author_name=meta.owner_name,
            author_uid=meta.owner_mid,
            cover_url=meta.cover_url,
            generated_at=self.now().strftime(GENERATED_AT_FORMAT),
            category=item.destination,
            has_subtitle=source == TranscriptSource.SUBTITLE,
            transcript_source=source,
        )
        if not self.sink.save_summary(record, summary):
            raise PersistenceFailed(f"Could not save summary for {item.video_id}")

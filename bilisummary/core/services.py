"""
Service wiring: builds the long-lived objects once per process from AppConfig.
"""

import logging
from dataclasses import dataclass

from bilisummary.core.api_client import BiliClient
from bilisummary.core.bilibili_api import BilibiliAPI
from bilisummary.core.config import AppConfig
from bilisummary.core.job_queue import BatchOrchestrator
from bilisummary.core.output_writer import FileSummaryStore
from bilisummary.core.pipeline import VideoPipeline
from bilisummary.core.subtitles import SubtitleResolver
from bilisummary.core.summarizer import Summarizer
from bilisummary.core.transcribe_asr import ASRClient, AudioTranscriber
from bilisummary.core.wbi import WbiSigner

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: AppConfig
    client: BiliClient
    signer: WbiSigner
    api: BilibiliAPI
    summarizer: Summarizer
    store: FileSummaryStore
    pipeline: VideoPipeline
    orchestrator: BatchOrchestrator


def build_services(config: AppConfig) -> Services:
    client = BiliClient(timeout=config.request_timeout_sec,
                        resource_timeout=config.resource_timeout_sec)
    signer = WbiSigner(client)
    api = BilibiliAPI(client, signer)

    resolver = SubtitleResolver(
        api, client,
        max_attempts=config.subtitle_max_attempts,
        retry_delay_sec=config.subtitle_retry_delay_sec,
        preferred_lang=config.preferred_subtitle_lang,
    )
    asr = ASRClient(config.api_base_url, config.api_auth_token,
                    model=config.asr_model, timeout=config.asr_timeout_sec)
    transcriber = AudioTranscriber(api, client, asr,
                                   segment_sec=config.asr_segment_sec,
                                   keep_debug=config.keep_debug_artifacts)
    summarizer = Summarizer(
        config.api_base_url, config.api_auth_token,
        model=config.ai_model,
        max_tokens=config.ai_max_tokens,
        max_attempts=config.ai_max_attempts,
        retry_base_wait_sec=config.ai_retry_base_wait_sec,
        timeout=config.ai_request_timeout_sec,
        max_transcript_chars=config.max_transcript_chars,
    )
    store = FileSummaryStore(config.output_root)

    pipeline = VideoPipeline(api, resolver, transcriber, summarizer, store)
    orchestrator = BatchOrchestrator(pipeline,
                                     concurrency=config.concurrency,
                                     courtesy_delay_sec=config.courtesy_delay_sec)

    logger.debug("Services built (concurrency=%d, ai_configured=%s)",
                 orchestrator.concurrency, summarizer.is_configured)
    return Services(config, client, signer, api, summarizer, store, pipeline, orchestrator)

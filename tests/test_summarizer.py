#!/usr/bin/env python3
"""
Tests for the LLM summarizer: request shape, 429 backoff and model discovery.
Also covers the ASR upload client, which shares the same HTTP conventions.
"""

import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))

import unittest
from unittest import mock

from fakes import FakeResponse, FakeSession, connection_error
from bilisummary.core.api_client import BiliClient
from bilisummary.core.constants import EMPTY_TRANSCRIPT_SUMMARY
from bilisummary.core.error_codes import (
    ConfigurationMissing, HTTPError, InvalidResponse, NetworkError,
    RateLimitExhausted, TranscriptionFailed, RemoteAPIError,
)
from bilisummary.core.summarizer import (
    Summarizer, build_prompt, messages_endpoint, model_list_candidates,
)
from bilisummary.core.transcribe_asr import ASRClient, AudioTranscriber, asr_endpoint
from bilisummary.core.download_audio import resolve_audio_url, download_audio
from bilisummary.core.models import VideoPage

BASE = "https://open.bigmodel.cn/api/anthropic"


def ok(text="## 内容整理\n..."):
    return FakeResponse(200, {"content": [{"type": "text", "text": text}]})


def too_many():
    return FakeResponse(429, text="rate limited")


class TestEndpoints(unittest.TestCase):
    def test_messages_endpoint(self):
        self.assertEqual(messages_endpoint(BASE), f"{BASE}/v1/messages")
        self.assertEqual(messages_endpoint(BASE + "/"), f"{BASE}/v1/messages")

    def test_model_candidates(self):
        self.assertEqual(model_list_candidates("https://x.example/api/"),
                         ["https://x.example/api/v1/models", "https://x.example/api/models"])
        self.assertEqual(model_list_candidates("https://x.example/v1"),
                         ["https://x.example/v1/models", "https://x.example/v1/v1/models"])

    def test_asr_endpoint(self):
        self.assertEqual(asr_endpoint("https://asr.example"),
                         "https://asr.example/v1/audio/transcriptions")

    def test_build_prompt(self):
        prompt = build_prompt("My {title}", "abcdef", max_chars=3)
        self.assertIn("视频标题: My {title}", prompt)
        self.assertIn("abc", prompt)
        self.assertNotIn("abcd", prompt)


class TestSummarizer(unittest.TestCase):
    def _summarizer(self, *responses, **kwargs):
        self.session = FakeSession(list(responses))
        self.sleeps = []
        kwargs.setdefault("base_url", BASE)
        kwargs.setdefault("auth_token", "tok")
        return Summarizer(session=self.session, sleep=self.sleeps.append, **kwargs)

    def test_success_request_shape(self):
        s = self._summarizer(ok("summary text"), model="GLM-4-FlashX-250414")
        result = s.summarize("hello\nworld", "Demo")

        self.assertEqual(result.text, "summary text")
        self.assertGreaterEqual(result.duration_sec, 0.0)
        method, url, kwargs = self.session.calls[0]
        self.assertEqual(method, "POST")
        self.assertEqual(url, f"{BASE}/v1/messages")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok")
        self.assertEqual(kwargs["headers"]["x-api-key"], "tok")
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/json")
        body = kwargs["json"]
        self.assertEqual(body["model"], "GLM-4-FlashX-250414")
        self.assertEqual(body["max_tokens"], 8192)
        self.assertEqual(body["messages"][0]["role"], "user")
        self.assertIn("hello\nworld", body["messages"][0]["content"])
        self.assertIn("视频标题: Demo", body["messages"][0]["content"])

    def test_backoff_then_success(self):
        s = self._summarizer(too_many(), too_many(), too_many(), ok("fine"))
        self.assertEqual(s.summarize("text", "t").text, "fine")
        self.assertEqual(len(self.session.calls), 4)
        self.assertEqual(self.sleeps, [2.0, 4.0, 8.0])

    def test_rate_limit_exhausted(self):
        s = self._summarizer(*[too_many() for _ in range(5)])
        with self.assertRaises(RateLimitExhausted) as ctx:
            s.summarize("text", "t")
        self.assertEqual(ctx.exception.attempts, 5)
        self.assertEqual(len(self.session.calls), 5)
        self.assertEqual(self.sleeps, [2.0, 4.0, 8.0, 16.0])

    def test_server_error_not_retried(self):
        s = self._summarizer(FakeResponse(500, text="boom"))
        with self.assertRaises(HTTPError) as ctx:
            s.summarize("text", "t")
        self.assertEqual(ctx.exception.status, 500)
        self.assertEqual(len(self.session.calls), 1)
        self.assertEqual(self.sleeps, [])

    def test_network_error(self):
        s = self._summarizer(connection_error())
        with self.assertRaises(NetworkError):
            s.summarize("text", "t")

    def test_no_text_block(self):
        s = self._summarizer(FakeResponse(200, {"content": [{"type": "tool_use"}]}))
        with self.assertRaises(InvalidResponse):
            s.summarize("text", "t")

    def test_first_text_block_wins(self):
        s = self._summarizer(FakeResponse(200, {"content": [
            {"type": "thinking", "thinking": "..."},
            {"type": "text", "text": "first"},
            {"type": "text", "text": "second"},
        ]}))
        self.assertEqual(s.summarize("text", "t").text, "first")

    def test_not_configured(self):
        s = self._summarizer(auth_token="")
        self.assertFalse(s.is_configured)
        with self.assertRaises(ConfigurationMissing):
            s.summarize("text", "t")
        self.assertEqual(self.session.calls, [])

    def test_empty_transcript(self):
        s = self._summarizer(auth_token="")
        result = s.summarize("", "t")
        self.assertEqual(result.text, EMPTY_TRANSCRIPT_SUMMARY)
        self.assertEqual(result.duration_sec, 0.0)
        self.assertEqual(self.session.calls, [])


class TestListModels(unittest.TestCase):
    def _summarizer(self, handler):
        self.session = FakeSession(handler=handler)
        return Summarizer(BASE, "tok", session=self.session, sleep=lambda s: None)

    def test_skips_missing_layouts(self):
        def handler(method, url, kwargs):
            if url == f"{BASE}/v1/models":
                return FakeResponse(404, text="not found")
            return FakeResponse(200, {"data": [
                {"id": "glm-4.5", "owned_by": "zhipu"},
                {"id": "GLM-4-FlashX-250414"},
                {"object": "model"},
            ]})

        models = self._summarizer(handler).list_models()
        self.assertEqual([m.id for m in models], ["GLM-4-FlashX-250414", "glm-4.5"])
        self.assertEqual(models[1].owned_by, "zhipu")
        urls = [c[1] for c in self.session.calls]
        self.assertEqual(urls, [f"{BASE}/v1/models", f"{BASE}/models"])
        self.assertNotIn("Content-Type", self.session.calls[0][2]["headers"])

    def test_unreachable_then_empty(self):
        def handler(method, url, kwargs):
            if url.endswith("/v1/models"):
                return connection_error()
            return FakeResponse(200, {"data": []})

        self.assertEqual(self._summarizer(handler).list_models(), [])

    def test_auth_failure_raises(self):
        s = self._summarizer(lambda m, u, k: FakeResponse(401, text="unauthorized"))
        with self.assertRaises(HTTPError):
            s.list_models()


class TestASRClient(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.audio = Path(self.tmpdir.name) / "seg_000.m4a"
        self.audio.write_bytes(b"\x00" * 64)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_upload(self):
        session = FakeSession([FakeResponse(200, {"text": "你好"})])
        asr = ASRClient("https://asr.example/", "tok", model="whisper-1", session=session)
        self.assertEqual(asr.transcribe_file(self.audio), "你好")

        method, url, kwargs = session.calls[0]
        self.assertEqual(method, "POST")
        self.assertEqual(url, "https://asr.example/v1/audio/transcriptions")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok")
        self.assertEqual(kwargs["data"], {"model": "whisper-1"})
        self.assertEqual(kwargs["files"]["file"][0], "audio.m4a")

    def test_http_failure(self):
        session = FakeSession([FakeResponse(500, text="err")])
        asr = ASRClient("https://asr.example", "tok", session=session)
        with self.assertRaises(TranscriptionFailed):
            asr.transcribe_file(self.audio)

    def test_not_configured(self):
        asr = ASRClient("", "", session=FakeSession([]))
        with self.assertRaises(ConfigurationMissing):
            asr.transcribe_file(self.audio)


class FakeAudioAPI:
    def __init__(self, audio=None, pages=None):
        self.audio = audio if audio is not None else [
            {"id": 30232, "bandwidth": 67263, "baseUrl": "//upos.example/mid.m4s"},
        ]
        self.pages = pages if pages is not None else [VideoPage(cid=9, page=1, part="P1", duration=150)]
        self.play_calls = []

    def get_video_pages(self, bvid, credential=None):
        return self.pages

    def get_play_url(self, bvid, cid, credential=None):
        self.play_calls.append((bvid, cid))
        return {"dash": {"audio": self.audio}}


class TestAudioDownload(unittest.TestCase):
    def test_resolve_audio_url(self):
        api = FakeAudioAPI()
        self.assertEqual(resolve_audio_url(api, "BV1xy4y1X7"), "https://upos.example/mid.m4s")
        self.assertEqual(api.play_calls, [("BV1xy4y1X7", 9)])

    def test_resolve_without_stream(self):
        with self.assertRaises(TranscriptionFailed):
            resolve_audio_url(FakeAudioAPI(audio=[]), "BV1xy4y1X7")

    def test_resolve_without_pages(self):
        api = FakeAudioAPI(pages=[])
        with self.assertRaises(TranscriptionFailed):
            resolve_audio_url(api, "BV1xy4y1X7")
        self.assertEqual(api.play_calls, [])

    def test_download_audio(self):
        client = BiliClient(session=FakeSession([FakeResponse(200, content=b"\x00" * 32)]))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = download_audio(client, "https://upos.example/mid.m4s", Path(tmpdir))
            self.assertEqual(path, Path(tmpdir) / "source" / "source.m4a")
            self.assertEqual(path.stat().st_size, 32)

    def test_download_empty_audio(self):
        client = BiliClient(session=FakeSession([FakeResponse(200, content=b"")]))
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(TranscriptionFailed):
                download_audio(client, "https://upos.example/mid.m4s", Path(tmpdir))


class ScriptedASR:
    def __init__(self, texts):
        self.texts = list(texts)
        self.files = []

    def transcribe_file(self, path):
        self.files.append(path.name)
        return self.texts.pop(0)


def _fake_download(client, url, workspace, credential=None):
    dest = workspace / "source" / "source.m4a"
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(b"\x00" * 16)
    return dest


def _fake_split(source, segments_dir, manifest):
    segments_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for entry in manifest:
        path = segments_dir / f"seg_{entry['idx']:03d}.m4a"
        path.write_bytes(b"\x00")
        paths.append(path)
    return paths


class TestAudioTranscriber(unittest.TestCase):
    """Download, segmentation and ffmpeg are patched out; the orchestration is real."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name) / "jobs"
        patches = [
            mock.patch("bilisummary.core.transcribe_asr.resolve_audio_url",
                       return_value="https://upos.example/mid.m4s"),
            mock.patch("bilisummary.core.transcribe_asr.download_audio", side_effect=_fake_download),
            mock.patch("bilisummary.core.transcribe_asr.get_audio_duration", return_value=150.0),
            mock.patch("bilisummary.core.transcribe_asr.split_audio_into_segments",
                       side_effect=_fake_split),
        ]
        self.resolve, self.download, self.duration, self.split = [p.start() for p in patches]
        for p in patches:
            self.addCleanup(p.stop)

    def tearDown(self):
        self.tmpdir.cleanup()

    def _transcriber(self, texts):
        self.asr = ScriptedASR(texts)
        return AudioTranscriber(api=None, client=None, asr=self.asr,
                                workspace_root=self.root, segment_sec=60)

    def _leftover(self):
        return list(self.root.iterdir()) if self.root.exists() else []

    def test_joins_non_empty_segments(self):
        text = self._transcriber(["a", "", "b"]).transcribe("BV1xy4y1X7")
        self.assertEqual(text, "a\nb")
        self.assertEqual(self.asr.files, ["seg_000.m4a", "seg_001.m4a", "seg_002.m4a"])
        self.assertEqual(len(self.split.call_args[0][2]), 3)
        self.assertEqual(self._leftover(), [])

    def test_all_segments_empty(self):
        with self.assertRaises(TranscriptionFailed):
            self._transcriber(["", "", ""]).transcribe("BV1xy4y1X7")
        self.assertEqual(self._leftover(), [])

    def test_pipeline_error_is_mapped(self):
        self.resolve.side_effect = RemoteAPIError(-404, "啥都木有")
        with self.assertRaises(TranscriptionFailed) as ctx:
            self._transcriber([]).transcribe("BV1xy4y1X7")
        self.assertEqual(ctx.exception.message, "API error (-404): 啥都木有")
        self.download.assert_not_called()
        self.assertEqual(self._leftover(), [])

    def test_unexpected_error_is_mapped(self):
        self.duration.side_effect = KeyError("streams")
        with self.assertRaises(TranscriptionFailed) as ctx:
            self._transcriber([]).transcribe("BV1xy4y1X7")
        self.assertIn("KeyError", ctx.exception.message)
        self.assertEqual(self._leftover(), [])

    def test_asr_failure_cleans_workspace(self):
        transcriber = self._transcriber([])
        self.asr.transcribe_file = mock.Mock(side_effect=TranscriptionFailed("ASR returned 500: err"))
        with self.assertRaises(TranscriptionFailed):
            transcriber.transcribe("BV1xy4y1X7")
        self.assertEqual(self._leftover(), [])

    def test_zero_duration(self):
        self.duration.return_value = 0.0
        with self.assertRaises(TranscriptionFailed):
            self._transcriber([]).transcribe("BV1xy4y1X7")
        self.split.assert_not_called()
        self.assertEqual(self._leftover(), [])


if __name__ == "__main__":
    unittest.main()

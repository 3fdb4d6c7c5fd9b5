#!/usr/bin/env python3
"""
Unit tests for BiliSummary core modules.
Tests cover: input parsing, security utils, error codes, captions parsing,
audio selection, segmentation, retry policy, config and the file sink.
"""

import sys
import json
import tempfile
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

from bilisummary.core.constants import (
    ErrorCode, RETRYABLE_ERRORS, MAX_CONCURRENCY, DEFAULT_CONCURRENCY,
    TranscriptSource,
)
from bilisummary.core.url_parse import (
    extract_bvid, validate_bvid, parse_input_lines, parse_csv_file, parse_txt_file,
)
from bilisummary.core.security_utils import sanitize_title, safe_output_path, run_subprocess
from bilisummary.core.cleanup import cleanup_job_artifacts
from bilisummary.core.error_codes import (
    PipelineError, RateLimited, SubtitleUnavailable, HTTPError,
    is_retryable, describe_error,
)
from bilisummary.core.captions_parse import (
    parse_subtitle_body, cues_to_text, ass_time, generate_ass,
)
from bilisummary.core.audio_select import select_audio_stream
from bilisummary.core.chunking_timebased import create_segment_manifest
from bilisummary.core.retry import RetryPolicy, RetryExhausted, fixed_delay, exponential_backoff
from bilisummary.core.config import AppConfig
from bilisummary.core.models import Credential, SubtitleCue, SummaryRecord
from bilisummary.core.output_writer import FileSummaryStore, render_markdown


class TestInputParsing(unittest.TestCase):
    """Test Bilibili URL / BV id parsing."""

    def test_standard_url(self):
        self.assertEqual(
            extract_bvid("https://www.bilibili.com/video/BV1GJ411x7h7/?p=1"),
            "BV1GJ411x7h7",
        )

    def test_bare_id(self):
        self.assertEqual(extract_bvid("  BV1xy4y1X7  "), "BV1xy4y1X7")

    def test_invalid_input(self):
        self.assertIsNone(extract_bvid("https://www.google.com"))
        self.assertIsNone(extract_bvid("not a url"))
        self.assertIsNone(extract_bvid(""))

    def test_validate_raises_on_invalid(self):
        with self.assertRaises(PipelineError) as ctx:
            validate_bvid("https://www.google.com")
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_INPUT)

    def test_parse_input_lines(self):
        text = """
        https://www.bilibili.com/video/BV1GJ411x7h7
        BV1xy4y1X7

        not a url
        https://b23.tv/x BV1GJ411x7h7
        """
        self.assertEqual(parse_input_lines(text), ["BV1GJ411x7h7", "BV1xy4y1X7"])

    def test_parse_input_lines_empty(self):
        self.assertEqual(parse_input_lines(""), [])
        self.assertEqual(parse_input_lines("   \n\n  "), [])

    def test_parse_csv_with_header(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "videos.csv"
            path.write_text("title,url\nfirst,https://www.bilibili.com/video/BV1aa\n"
                            "second BV1zz,BV1bb\n", encoding="utf-8")
            self.assertEqual(parse_csv_file(str(path)), ["BV1aa", "BV1bb"])

    def test_parse_csv_without_header(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "videos.csv"
            path.write_text("BV1aa,note\nx,BV1bb\n", encoding="utf-8")
            self.assertEqual(parse_csv_file(str(path)), ["BV1aa", "BV1bb"])

    def test_parse_txt(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "videos.txt"
            path.write_text("BV1aa\n\nBV1aa\nBV1cc\n", encoding="utf-8")
            self.assertEqual(parse_txt_file(str(path)), ["BV1aa", "BV1cc"])


class TestSecurityUtils(unittest.TestCase):
    """Test security utilities."""

    def test_sanitize_title_basic(self):
        self.assertEqual(sanitize_title("Hello World"), "Hello World")

    def test_sanitize_title_special_chars(self):
        result = sanitize_title('Video: "Test" <script>a|b?</script>')
        for ch in '"<>:|?/':
            self.assertNotIn(ch, result)

    def test_sanitize_title_path_traversal(self):
        result = sanitize_title("../../../etc/passwd")
        self.assertNotIn("..", result)
        self.assertNotIn("/", result)

    def test_sanitize_title_empty(self):
        self.assertEqual(sanitize_title(""), "")

    def test_sanitize_title_long(self):
        self.assertLessEqual(len(sanitize_title("x" * 500)), 200)

    def test_safe_output_path_normal(self):
        root = Path("/tmp/test_output")
        path = safe_output_path(root, "summary/standalone", "Demo.md")
        self.assertEqual(path, root / "summary" / "standalone" / "Demo.md")

    def test_safe_output_path_traversal(self):
        with self.assertRaises(ValueError):
            safe_output_path(Path("/tmp/test_output"), "../../etc", "passwd")

    def test_subprocess_rejects_command_string(self):
        with self.assertRaises(TypeError):
            run_subprocess("ffprobe -version")


class TestCleanup(unittest.TestCase):
    """Audio workspace removal after transcription."""

    def _workspace(self, root):
        ws = Path(root) / "BV1xy4y1X7-abcd1234"
        for sub in ("source", "segments", "transcripts"):
            (ws / sub).mkdir(parents=True)
            (ws / sub / "f").write_text("x")
        return ws

    def test_removes_workspace(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            ws = self._workspace(tmpdir)
            cleanup_job_artifacts(ws)
            self.assertFalse(ws.exists())

    def test_keep_debug_preserves_transcripts(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            ws = self._workspace(tmpdir)
            cleanup_job_artifacts(ws, keep_debug=True)
            self.assertFalse((ws / "source").exists())
            self.assertFalse((ws / "segments").exists())
            self.assertTrue((ws / "transcripts" / "f").exists())

    def test_missing_workspace(self):
        cleanup_job_artifacts(Path(tempfile.gettempdir()) / "no-such-workspace-bilisummary")


class TestErrorCodes(unittest.TestCase):
    """Test error code classification."""

    def test_retryable_errors(self):
        self.assertTrue(is_retryable(ErrorCode.RATE_LIMITED))
        self.assertTrue(is_retryable(ErrorCode.NETWORK_TRANSIENT))

    def test_non_retryable_errors(self):
        self.assertFalse(is_retryable(ErrorCode.REMOTE_API))
        self.assertFalse(is_retryable(ErrorCode.CONFIGURATION_MISSING))
        self.assertNotIn(ErrorCode.SUBTITLE_UNAVAILABLE, RETRYABLE_ERRORS)

    def test_pipeline_error_auto_retryable(self):
        self.assertTrue(RateLimited().retryable)
        self.assertFalse(SubtitleUnavailable("none").retryable)

    def test_str_and_describe(self):
        err = HTTPError(502, "bad gateway")
        self.assertEqual(str(err), "[ERR_HTTP] HTTP 502: bad gateway")
        self.assertEqual(describe_error(err), "HTTP 502: bad gateway")
        self.assertEqual(describe_error(KeyError("x")), "KeyError: 'x'")


class TestCaptionsParsing(unittest.TestCase):
    """Test subtitle body parsing and ASS rendering."""

    def test_parse_body(self):
        payload = {"body": [
            {"from": 0, "to": 5, "content": "hello"},
            {"from": 5, "to": 10, "content": "world"},
        ]}
        cues = parse_subtitle_body(payload)
        self.assertEqual(cues, [SubtitleCue(0.0, 5.0, "hello"), SubtitleCue(5.0, 10.0, "world")])
        self.assertEqual(cues_to_text(cues), "hello\nworld")

    def test_parse_body_skips_malformed(self):
        payload = {"body": [
            {"from": 0, "to": 1, "content": "  "},
            {"to": 2, "content": "no start"},
            {"from": "x", "to": 3, "content": "bad start"},
            {"from": 3, "to": 4, "content": "kept"},
        ]}
        self.assertEqual([c.text for c in parse_subtitle_body(payload)], ["kept"])

    def test_parse_body_empty(self):
        self.assertEqual(parse_subtitle_body({}), [])
        self.assertEqual(parse_subtitle_body({"body": None}), [])
        self.assertEqual(parse_subtitle_body([]), [])

    def test_ass_time(self):
        self.assertEqual(ass_time(0), "0:00:00.00")
        self.assertEqual(ass_time(5), "0:00:05.00")
        self.assertEqual(ass_time(3725.5), "1:02:05.50")

    def test_generate_ass(self):
        cues = [SubtitleCue(0, 5, "hello"), SubtitleCue(5, 10, "two\nlines")]
        ass = generate_ass("Demo", cues)
        self.assertTrue(ass.startswith("[Script Info]\nTitle: Demo\n"))
        self.assertIn("Dialogue: 0,0:00:00.00,0:00:05.00,Default,,0,0,0,,hello", ass)
        self.assertIn("Dialogue: 0,0:00:05.00,0:00:10.00,Default,,0,0,0,,two\\Nlines", ass)


class TestAudioSelection(unittest.TestCase):
    """Test dash audio stream selection."""

    def _play_info(self, streams):
        return {"dash": {"audio": streams}}

    def test_prefer_closest_to_target(self):
        info = self._play_info([
            {"id": 30280, "bandwidth": 132084, "baseUrl": "https://cdn/high.m4s"},
            {"id": 30232, "bandwidth": 67263, "baseUrl": "https://cdn/mid.m4s"},
            {"id": 30216, "bandwidth": 30216, "baseUrl": "https://cdn/low.m4s"},
        ])
        result = select_audio_stream(info)
        self.assertEqual(result['id'], 30232)
        self.assertEqual(result['url'], "https://cdn/mid.m4s")

    def test_snake_case_url_and_protocol_relative(self):
        info = self._play_info([{"id": 1, "bandwidth": 64000, "base_url": "//cdn/a.m4s"}])
        self.assertEqual(select_audio_stream(info)['url'], "https://cdn/a.m4s")

    def test_out_of_range_falls_back_to_first(self):
        info = self._play_info([
            {"id": 1, "bandwidth": 320000, "baseUrl": "https://cdn/1.m4s"},
            {"id": 2, "bandwidth": 400000, "baseUrl": "https://cdn/2.m4s"},
        ])
        self.assertEqual(select_audio_stream(info)['id'], 1)

    def test_no_audio_streams(self):
        self.assertIsNone(select_audio_stream({}))
        self.assertIsNone(select_audio_stream(self._play_info([{"id": 1, "bandwidth": 64000}])))


class TestSegmentation(unittest.TestCase):
    """Test fixed-length segment manifests."""

    def test_create_manifest(self):
        manifest = create_segment_manifest(125, 60)
        self.assertEqual(len(manifest), 3)
        self.assertEqual(manifest[0], {'idx': 0, 'start_sec': 0.0, 'end_sec': 60})
        self.assertEqual(manifest[2]['start_sec'], 120)
        self.assertEqual(manifest[2]['end_sec'], 125)

    def test_exact_multiple(self):
        manifest = create_segment_manifest(120, 60)
        self.assertEqual([m['end_sec'] for m in manifest], [60, 120])

    def test_zero_duration(self):
        self.assertEqual(create_segment_manifest(0, 60), [])


class TestRetryPolicy(unittest.TestCase):
    """Test the shared retry loop."""

    def setUp(self):
        self.sleeps = []

    def _policy(self, **kwargs):
        kwargs.setdefault('sleep', self.sleeps.append)
        return RetryPolicy(**kwargs)

    def test_returns_first_good_result(self):
        policy = self._policy(max_attempts=3, backoff=fixed_delay(2))
        self.assertEqual(policy.call(lambda: 7), 7)
        self.assertEqual(self.sleeps, [])

    def test_retries_on_result(self):
        results = iter([None, None, "ready"])
        policy = self._policy(max_attempts=3, backoff=fixed_delay(2),
                              retry_on_result=lambda r: r is None)
        self.assertEqual(policy.call(lambda: next(results)), "ready")
        self.assertEqual(self.sleeps, [2, 2])

    def test_exponential_waits_and_exhaustion(self):
        calls = []

        def always_limited():
            calls.append(1)
            raise RateLimited()

        policy = self._policy(max_attempts=5, backoff=exponential_backoff(2),
                              retry_on_exception=lambda e: isinstance(e, RateLimited))
        with self.assertRaises(RetryExhausted) as ctx:
            policy.call(always_limited)
        self.assertEqual(len(calls), 5)
        self.assertEqual(self.sleeps, [2, 4, 8, 16])
        self.assertIsInstance(ctx.exception.last_error, RateLimited)

    def test_non_matching_exception_propagates(self):
        policy = self._policy(max_attempts=5, backoff=fixed_delay(1),
                              retry_on_exception=lambda e: isinstance(e, RateLimited))
        with self.assertRaises(KeyError):
            policy.call(lambda: {}['missing'])
        self.assertEqual(self.sleeps, [])

    def test_invalid_attempts(self):
        with self.assertRaises(ValueError):
            RetryPolicy(max_attempts=0, backoff=fixed_delay(1))


class TestConfig(unittest.TestCase):
    """Test config loading, validation and environment overrides."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "config.json"

    def tearDown(self):
        self._tmp.cleanup()

    def test_defaults(self):
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.concurrency, DEFAULT_CONCURRENCY)
        self.assertEqual(config.courtesy_delay_sec, 0.5)
        self.assertEqual(config.subtitle_max_attempts, 3)
        self.assertEqual(config.ai_max_attempts, 5)
        self.assertFalse(config.is_ai_configured)

    def test_clamp_and_persist(self):
        config = AppConfig(self.path, environ={})
        config.set('concurrency', 100)
        self.assertEqual(config.concurrency, MAX_CONCURRENCY)
        config.set('concurrency', "abc")
        self.assertEqual(config.concurrency, DEFAULT_CONCURRENCY)
        config.set('ai_model', "my-model")

        reloaded = AppConfig(self.path, environ={})
        self.assertEqual(reloaded.ai_model, "my-model")
        self.assertEqual(reloaded.concurrency, DEFAULT_CONCURRENCY)

    def test_corrupt_file_uses_defaults(self):
        self.path.write_text("{not json", encoding="utf-8")
        self.assertEqual(AppConfig(self.path, environ={}).concurrency, DEFAULT_CONCURRENCY)

    def test_env_overrides_and_redaction(self):
        config = AppConfig(self.path, environ={
            "BILISUMMARY_API_TOKEN": "secret",
            "BILISUMMARY_API_BASE_URL": "https://llm.example.com",
        })
        self.assertTrue(config.is_ai_configured)
        self.assertEqual(config.api_base_url, "https://llm.example.com")
        config.set('api_auth_token', "stored")
        self.assertEqual(config.as_dict()['api_auth_token'], "***")
        self.assertEqual(config.as_dict(redact=False)['api_auth_token'], "stored")

    def test_credential_from_env(self):
        self.assertIsNone(AppConfig(self.path, environ={}).credential_from_env())
        config = AppConfig(self.path, environ={"BILI_SESSDATA": "sess", "BILI_JCT": "jct"})
        cred = config.credential_from_env()
        self.assertEqual(cred, Credential(sessdata="sess", bili_jct="jct"))
        self.assertEqual(cred.cookie_string, "SESSDATA=sess; bili_jct=jct")
        self.assertNotIn("sess", repr(cred))


class TestOutputWriter(unittest.TestCase):
    """Test the file summary store."""

    def _record(self, title="Demo: part/1", has_subtitle=True,
                source=TranscriptSource.SUBTITLE, category="standalone"):
        return SummaryRecord(
            title=title, bvid="BV1xy4y1X7", url="https://www.bilibili.com/video/BV1xy4y1X7",
            duration=125, author_name="uploader", author_uid=2,
            cover_url="https://i0.hdslb.com/demo.jpg", generated_at="2024-01-01 12:00:00",
            category=category, has_subtitle=has_subtitle, transcript_source=source,
        )

    def test_save_summary_and_exists(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileSummaryStore(Path(tmpdir))
            self.assertFalse(store.exists("Demo: part/1", "standalone"))
            self.assertTrue(store.save_summary(self._record(), "the summary"))

            md = Path(tmpdir) / "summary" / "standalone" / "Demo_ part_1.md"
            self.assertTrue(md.exists())
            self.assertIn("the summary", md.read_text(encoding="utf-8"))
            meta = json.loads(md.with_name("Demo_ part_1.meta.json").read_text(encoding="utf-8"))
            self.assertEqual(meta['bvid'], "BV1xy4y1X7")
            self.assertTrue(meta['has_subtitle'])
            self.assertEqual(meta['transcript_source'], "subtitle")

            self.assertTrue(store.exists("Demo: part/1", "standalone"))
            self.assertFalse(store.exists("Demo: part/1", "favorites"))

    def test_no_subtitle_location(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileSummaryStore(Path(tmpdir))
            record = self._record(title="Quiet", has_subtitle=False, source=TranscriptSource.ASR,
                                  category="users/42")
            self.assertTrue(store.save_summary(record, "text"))
            self.assertTrue((Path(tmpdir) / "summary" / "users" / "42" / "no_subtitle" / "Quiet.md").exists())
            self.assertTrue(store.exists("Quiet", "users/42"))

    def test_save_captions(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileSummaryStore(Path(tmpdir))
            self.assertTrue(store.save_captions("Demo", [SubtitleCue(0, 5, "hello")], "favorites"))
            ass = Path(tmpdir) / "ass" / "favorites" / "Demo.ass"
            self.assertIn(",hello", ass.read_text(encoding="utf-8"))

    def test_traversal_destination_fails(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileSummaryStore(Path(tmpdir))
            self.assertFalse(store.save_summary(self._record(category="../../escape"), "x"))

    def test_render_markdown(self):
        md = render_markdown(self._record(title="Demo"), "body")
        self.assertTrue(md.startswith("# Demo\n"))
        self.assertIn("**作者**: [uploader](https://space.bilibili.com/2)", md)
        self.assertIn("**时长**: 02:05", md)
        self.assertIn("**生成时间**: 2024-01-01 12:00:00", md)


if __name__ == "__main__":
    unittest.main()

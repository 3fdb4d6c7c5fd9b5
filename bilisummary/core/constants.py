"""
Shared constants for BiliSummary.
Single source of truth — imported by every other module.
"""

import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "BiliSummary"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_SUPPORT_DIR = HOME / ".bilisummary"
DEFAULT_OUTPUT_ROOT = APP_SUPPORT_DIR / "output"
JOBS_CACHE_DIR = APP_SUPPORT_DIR / "cache" / "jobs"
LOG_DIR = APP_SUPPORT_DIR / "logs"
CONFIG_PATH = APP_SUPPORT_DIR / "config.json"

# Output layout (relative to the output root)
SUMMARY_DIRNAME = "summary"
CAPTIONS_DIRNAME = "ass"
NO_SUBTITLE_DIRNAME = "no_subtitle"

# ── Destinations ──────────────────────────────────────────────────────
STANDALONE_SUBDIR = "standalone"
FAVORITES_SUBDIR = "favorites"


def users_subdir(uid: int) -> str:
    return f"users/{uid}"


# ── Bilibili API ──────────────────────────────────────────────────────
BILIBILI_API_BASE = "https://api.bilibili.com"
BILIBILI_VIDEO_URL = "https://www.bilibili.com/video/{bvid}"
BILIBILI_SPACE_URL = "https://space.bilibili.com/{uid}"
BILIBILI_REFERER = "https://www.bilibili.com"
USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) Mobile/15E148"
)

NAV_PATH = "/x/web-interface/nav"
VIDEO_INFO_PATH = "/x/web-interface/view"
PAGE_LIST_PATH = "/x/player/pagelist"
PLAYER_INFO_PATH = "/x/player/v2"
PLAY_URL_PATH = "/x/player/playurl"
USER_CARD_PATH = "/x/web-interface/card"
SELF_INFO_PATH = "/x/space/myinfo"
USER_VIDEOS_PATH = "/x/space/wbi/arc/search"
FAV_FOLDERS_PATH = "/x/v3/fav/folder/created/list-all"
FAV_CONTENTS_PATH = "/x/v3/fav/resource/list"
FAV_BATCH_DELETE_PATH = "/x/v3/fav/resource/batch-del"

DASH_FNVAL = "16"
USER_VIDEOS_PAGE_MAX = 50
USER_VIDEOS_MAX_PAGES = 20
FAV_PAGE_SIZE = 20
FAV_MAX_PAGES = 10

# Envelope code returned by the nav endpoint for anonymous callers; the
# signing key fragments are still present in the payload.
NOT_LOGGED_IN_CODE = -101

# ── Request signing ───────────────────────────────────────────────────
MIXIN_KEY_TTL_SEC = 3600
MIXIN_KEY_LENGTH = 32
SIGN_TIMESTAMP_FIELD = "wts"
SIGN_SIGNATURE_FIELD = "w_rid"
SIGN_STRIP_CHARS = "!'()*"

MIXIN_KEY_ENC_TAB = (
    46, 47, 18, 2, 53, 8, 23, 32, 15, 50, 10, 31, 58, 3, 45, 35,
    27, 43, 5, 49, 33, 9, 42, 19, 29, 28, 14, 39, 12, 38, 41, 13,
    37, 48, 7, 16, 24, 55, 40, 61, 26, 17, 0, 1, 60, 51, 30, 4,
    22, 25, 54, 21, 56, 59, 6, 63, 57, 62, 11, 36, 20, 34, 44, 52,
)

# ── Timeouts (seconds) ────────────────────────────────────────────────
REQUEST_TIMEOUT_SEC = 30
RESOURCE_TIMEOUT_SEC = 120
AI_REQUEST_TIMEOUT_SEC = 120
ASR_TIMEOUT_SEC = 120
MODELS_TIMEOUT_SEC = 10

# ── Subtitle resolution ───────────────────────────────────────────────
SUBTITLE_MAX_ATTEMPTS = 3
SUBTITLE_RETRY_DELAY_SEC = 2.0
PREFERRED_SUBTITLE_LANG = "zh"

# ── Summarization ─────────────────────────────────────────────────────
DEFAULT_API_BASE_URL = "https://open.bigmodel.cn/api/anthropic"
DEFAULT_AI_MODEL = "GLM-4-FlashX-250414"
AI_MAX_TOKENS = 8192
AI_MAX_ATTEMPTS = 5
AI_RETRY_BASE_WAIT_SEC = 2.0
MAX_TRANSCRIPT_CHARS = 30_000

# ── Speech recognition fallback ───────────────────────────────────────
DEFAULT_ASR_MODEL = "asr"
ASR_SEGMENT_SEC = 60

# Dash audio selection (bandwidth in kbps)
PREFERRED_AUDIO_KBPS = 64
MIN_AUDIO_KBPS = 32
MAX_AUDIO_KBPS = 192

# ── Batch orchestration ───────────────────────────────────────────────
DEFAULT_CONCURRENCY = 12
MAX_CONCURRENCY = 32
COURTESY_DELAY_MS = 500


# ── Progress item status values ───────────────────────────────────────
class ItemStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    NO_SUBTITLE = "noSubtitle"


TERMINAL_STATUSES = {
    ItemStatus.SUCCESS,
    ItemStatus.SKIPPED,
    ItemStatus.FAILED,
    ItemStatus.NO_SUBTITLE,
}


# ── Pipeline stage values (ordered) ───────────────────────────────────
class PipelineStage:
    FETCHING_INFO = "FETCHING_INFO"
    CHECK_EXISTING = "CHECK_EXISTING"
    FETCHING_SUBTITLE = "FETCHING_SUBTITLE"
    TRANSCRIBING_AUDIO = "TRANSCRIBING_AUDIO"
    SUMMARIZING = "SUMMARIZING"
    SAVING = "SAVING"
    # Terminal
    DONE = "DONE"
    SKIPPED = "SKIPPED"
    NO_SUBTITLE_SAVED = "NO_SUBTITLE_SAVED"
    FAILED = "FAILED"


# ── Transcript provenance ─────────────────────────────────────────────
class TranscriptSource:
    SUBTITLE = "subtitle"
    ASR = "asr"
    NONE = "none"


# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Non-retryable
    CONFIGURATION_MISSING = "ERR_CONFIGURATION_MISSING"
    CREDENTIAL_REQUIRED = "ERR_CREDENTIAL_REQUIRED"
    SIGNING_UNAVAILABLE = "ERR_SIGNING_UNAVAILABLE"
    REMOTE_API = "ERR_REMOTE_API"
    HTTP = "ERR_HTTP"
    EMPTY_PAYLOAD = "ERR_EMPTY_PAYLOAD"
    INVALID_RESPONSE = "ERR_INVALID_RESPONSE"
    RATE_LIMIT_EXHAUSTED = "ERR_RATE_LIMIT_EXHAUSTED"
    PERSISTENCE_FAILED = "ERR_PERSISTENCE_FAILED"
    INVALID_INPUT = "ERR_INVALID_INPUT"

    # Retryable
    RATE_LIMITED = "ERR_RATE_LIMITED"
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"

    # Special (routed, not failures)
    SUBTITLE_UNAVAILABLE = "SUBTITLE_UNAVAILABLE"
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"


RETRYABLE_ERRORS = {
    ErrorCode.RATE_LIMITED,
    ErrorCode.NETWORK_TRANSIENT,
}

# ── Placeholders ──────────────────────────────────────────────────────
NO_CONTENT_SUMMARY = "⚠️ 无法获取字幕，也无法进行语音识别"
EMPTY_TRANSCRIPT_SUMMARY = "⚠️ 无法获取字幕，无法生成总结"

# ── Input parsing ─────────────────────────────────────────────────────
BVID_PATTERN = r'BV[a-zA-Z0-9]+'

# Characters forbidden in file names
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FILENAME_LEN = 200

# ── LLM prompt ────────────────────────────────────────────────────────
SUMMARIZE_PROMPT = """你是一个专业的视频内容分析师。请根据以下视频字幕，生成一份**全面、精细且有条理**的视频笔记。

视频标题: {title}

字幕内容:
{subtitle}

请用中文输出，严格按照以下格式：

## 内容整理

将作者的原始表述进行整理和精简，去除口语化的重复、语气词和冗余表达，但**不能遗漏任何实质内容**。用更清晰流畅的书面语重新组织，保留作者的原意、论证逻辑和关键用词。按话题分段呈现。

## 核心观点

全面覆盖作者在视频中表达的所有重要观点，不要人为限制数量。每个观点下面：
- 先用一句话精准概括该观点
- 然后列出作者用来支撑该观点的**具体例子、故事、数据或类比**（如果有的话）

注意：观点数量应由内容决定，确保不遗漏任何重要论点。短视频可能只有 2-3 个观点，长视频可能有 10 个以上。

## 行动建议

如果视频包含可操作的建议或方法论，请列出具体的行动步骤。如果视频偏向于分享观点/故事而非方法论，可以省略此部分。
"""

"""
Data models (plain dataclasses) for BiliSummary.
"""

from dataclasses import dataclass, field
from typing import Optional

from bilisummary.core.constants import (
    ItemStatus, TranscriptSource, BILIBILI_VIDEO_URL,
)


def normalize_url(url: str | None) -> str:
    """Protocol-relative URLs ("//i0.hdslb.com/...") become https."""
    if not url:
        return ""
    return f"https:{url}" if url.startswith("//") else url


def video_url(bvid: str) -> str:
    return BILIBILI_VIDEO_URL.format(bvid=bvid)


def _as_int(value, default: int = 0) -> int:
    # mid comes back as int or str depending on the endpoint
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Credential:
    sessdata: str
    bili_jct: str = ""
    ac_time_value: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.sessdata)

    @property
    def cookie_string(self) -> str:
        cookies = f"SESSDATA={self.sessdata}; bili_jct={self.bili_jct}"
        if self.ac_time_value:
            cookies += f"; ac_time_value={self.ac_time_value}"
        return cookies

    def __repr__(self):
        # never leak tokens into logs
        return f"Credential(valid={self.is_valid})"


@dataclass(frozen=True)
class VideoMeta:
    bvid: str
    aid: int
    title: str
    duration: int
    cover_url: str
    owner_mid: int
    owner_name: str
    description: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "VideoMeta":
        owner = data.get('owner') or {}
        return cls(
            bvid=data.get('bvid', ''),
            aid=_as_int(data.get('aid')),
            title=data.get('title', ''),
            duration=_as_int(data.get('duration')),
            cover_url=normalize_url(data.get('pic')),
            owner_mid=_as_int(owner.get('mid')),
            owner_name=owner.get('name', ''),
            description=data.get('desc', ''),
        )

    @property
    def url(self) -> str:
        return video_url(self.bvid)


@dataclass(frozen=True)
class VideoPage:
    cid: int
    page: int
    part: str
    duration: int

    @classmethod
    def from_api(cls, data: dict) -> "VideoPage":
        return cls(
            cid=_as_int(data.get('cid')),
            page=_as_int(data.get('page'), 1),
            part=data.get('part', ''),
            duration=_as_int(data.get('duration')),
        )


@dataclass(frozen=True)
class SubtitleTrack:
    lan: str                         # e.g. "zh-CN", "ai-zh"
    lan_doc: str = ""
    subtitle_url: str = ""           # empty while AI subtitles warm up

    @classmethod
    def from_api(cls, data: dict) -> "SubtitleTrack":
        return cls(
            lan=data.get('lan', ''),
            lan_doc=data.get('lan_doc') or '',
            subtitle_url=data.get('subtitle_url') or '',
        )

    @property
    def full_url(self) -> str | None:
        if not self.subtitle_url:
            return None
        return normalize_url(self.subtitle_url)


@dataclass(frozen=True)
class SubtitleCue:
    start: float
    end: float
    text: str


@dataclass(frozen=True)
class SubtitleResult:
    language: str
    cues: tuple[SubtitleCue, ...]
    text: str


@dataclass(frozen=True)
class SummaryResult:
    text: str
    duration_sec: float


@dataclass(frozen=True)
class SummaryRecord:
    """Everything the persistence sink needs to file a finished video."""
    title: str
    bvid: str
    url: str
    duration: int
    author_name: str
    author_uid: int
    cover_url: str
    generated_at: str
    category: str                    # "standalone", "favorites", "users/{uid}"
    has_subtitle: bool
    transcript_source: str = TranscriptSource.SUBTITLE

    def meta_dict(self) -> dict:
        return {
            'title': self.title,
            'bvid': self.bvid,
            'url': self.url,
            'duration': self.duration,
            'author_name': self.author_name,
            'author_uid': self.author_uid,
            'cover_url': self.cover_url,
            'generated_at': self.generated_at,
            'has_subtitle': self.has_subtitle,
            'transcript_source': self.transcript_source,
        }


@dataclass
class ProgressItem:
    video_id: str
    title: str
    status: str = ItemStatus.PENDING
    message: str = ""
    stage: Optional[str] = None


@dataclass(frozen=True)
class WorkItem:
    video_id: str
    credential: Optional[Credential]
    destination: str


@dataclass(frozen=True)
class ProgressSnapshot:
    total: int
    completed: int
    running: bool
    items: list[ProgressItem] = field(default_factory=list)


@dataclass(frozen=True)
class UserInfo:
    mid: int
    name: str
    face: str = ""
    sign: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "UserInfo":
        return cls(
            mid=_as_int(data.get('mid')),
            name=data.get('name', ''),
            face=normalize_url(data.get('face')),
            sign=data.get('sign') or '',
        )


@dataclass(frozen=True)
class UserVideo:
    bvid: str
    title: str
    cover_url: str
    length: str                      # "MM:SS"
    author: str
    mid: int

    @classmethod
    def from_api(cls, data: dict) -> "UserVideo":
        return cls(
            bvid=data.get('bvid', ''),
            title=data.get('title', ''),
            cover_url=normalize_url(data.get('pic')),
            length=data.get('length', ''),
            author=data.get('author', ''),
            mid=_as_int(data.get('mid')),
        )


@dataclass(frozen=True)
class FavoriteFolder:
    id: int
    title: str
    media_count: int = 0
    is_default: bool = False

    @classmethod
    def from_api(cls, data: dict) -> "FavoriteFolder":
        # attr == 0 marks the default folder
        return cls(
            id=_as_int(data.get('id')),
            title=data.get('title', ''),
            media_count=_as_int(data.get('media_count')),
            is_default=data.get('attr') == 0,
        )


@dataclass(frozen=True)
class FavoriteVideo:
    bvid: str
    title: str
    cover_url: str
    duration: int
    upper_name: str
    upper_mid: int
    play_count: int

    @classmethod
    def from_api(cls, data: dict) -> "FavoriteVideo":
        upper = data.get('upper') or {}
        cnt_info = data.get('cnt_info') or {}
        return cls(
            bvid=data.get('bvid') or '',
            title=data.get('title') or '',
            cover_url=normalize_url(data.get('cover')),
            duration=_as_int(data.get('duration')),
            upper_name=upper.get('name') or '',
            upper_mid=_as_int(upper.get('mid')),
            play_count=_as_int(cnt_info.get('play')),
        )


@dataclass(frozen=True)
class AIModel:
    id: str
    owned_by: str = ""

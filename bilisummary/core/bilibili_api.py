"""
Bilibili endpoints used by the pipeline and the batch sources.
"""

import logging

from bilisummary.core.api_client import BiliClient
from bilisummary.core.constants import (
    VIDEO_INFO_PATH, PAGE_LIST_PATH, PLAYER_INFO_PATH, PLAY_URL_PATH,
    USER_CARD_PATH, SELF_INFO_PATH, USER_VIDEOS_PATH,
    FAV_FOLDERS_PATH, FAV_CONTENTS_PATH, FAV_BATCH_DELETE_PATH,
    DASH_FNVAL, USER_VIDEOS_PAGE_MAX, USER_VIDEOS_MAX_PAGES,
    FAV_PAGE_SIZE, FAV_MAX_PAGES,
)
from bilisummary.core.error_codes import CredentialRequired, InvalidResponse, RemoteAPIError
from bilisummary.core.models import (
    Credential, VideoMeta, VideoPage, SubtitleTrack, UserInfo, UserVideo,
    FavoriteFolder, FavoriteVideo,
)
from bilisummary.core.wbi import WbiSigner

logger = logging.getLogger(__name__)


def _require_login(credential: Credential | None, csrf: bool = False):
    if credential is None or not credential.is_valid:
        raise CredentialRequired("This call requires a logged-in credential")
    if csrf and not credential.bili_jct:
        raise CredentialRequired("This call requires the bili_jct CSRF token")


class BilibiliAPI:
    def __init__(self, client: BiliClient, signer: WbiSigner):
        self.client = client
        self.signer = signer

    # ── Video ─────────────────────────────────────────────────────────

    def get_video_info(self, bvid: str, credential: Credential | None = None) -> VideoMeta:
        data = self.client.request(VIDEO_INFO_PATH, params={"bvid": bvid},
                                   credential=credential)
        return VideoMeta.from_api(data)

    def get_video_pages(self, bvid: str, credential: Credential | None = None) -> list[VideoPage]:
        data = self.client.request(PAGE_LIST_PATH, params={"bvid": bvid},
                                   credential=credential)
        if not isinstance(data, list):
            raise InvalidResponse(f"Page list for {bvid} is not a list")
        return [VideoPage.from_api(p) for p in data]

    def get_subtitle_tracks(self, bvid: str, cid: int,
                            credential: Credential | None = None) -> list[SubtitleTrack]:
        data = self.client.request(PLAYER_INFO_PATH,
                                   params={"bvid": bvid, "cid": str(cid)},
                                   credential=credential)
        subtitle = data.get('subtitle') or {}
        tracks = [SubtitleTrack.from_api(t) for t in subtitle.get('subtitles') or []]
        if tracks:
            logger.debug("[%s] First subtitle track: lan=%s url=%s",
                         bvid, tracks[0].lan, tracks[0].subtitle_url or "<empty>")
        return tracks

    def get_play_url(self, bvid: str, cid: int,
                     credential: Credential | None = None) -> dict:
        """Dash-format stream descriptor (data.dash with audio/video lists)."""
        return self.client.request(
            PLAY_URL_PATH,
            params={"bvid": bvid, "cid": str(cid), "fnval": DASH_FNVAL},
            credential=credential,
        )

    # ── Users ─────────────────────────────────────────────────────────

    def get_user_info(self, uid: int, credential: Credential | None = None) -> UserInfo:
        """Profile via the card API (no signature needed)."""
        data = self.client.request(USER_CARD_PATH, params={"mid": str(uid)},
                                   credential=credential)
        return UserInfo.from_api(data.get('card') or {})

    def get_self_info(self, credential: Credential) -> UserInfo:
        _require_login(credential)
        data = self.client.request(SELF_INFO_PATH, credential=credential)
        return UserInfo.from_api(data)

    def get_user_videos(self, uid: int, page: int = 1, page_size: int = USER_VIDEOS_PAGE_MAX,
                        credential: Credential | None = None) -> list[UserVideo]:
        params = {
            "mid": str(uid),
            "ps": str(min(page_size, USER_VIDEOS_PAGE_MAX)),
            "pn": str(page),
        }
        signed = self.signer.sign(params, credential)
        data = self.client.request(USER_VIDEOS_PATH, params=signed, credential=credential)
        vlist = ((data.get('list') or {}).get('vlist')) or []
        return [UserVideo.from_api(v) for v in vlist]

    def get_all_user_bvids(self, uid: int, count: int,
                           credential: Credential | None = None) -> list[str]:
        """Latest `count` uploads of a user, newest first."""
        bvids: list[str] = []
        page = 1
        while len(bvids) < count and page <= USER_VIDEOS_MAX_PAGES:
            videos = self.get_user_videos(uid, page=page,
                                          page_size=min(count - len(bvids), USER_VIDEOS_PAGE_MAX),
                                          credential=credential)
            if not videos:
                break
            for v in videos:
                bvids.append(v.bvid)
                if len(bvids) >= count:
                    break
            page += 1
        return bvids

    # ── Favorites ─────────────────────────────────────────────────────

    def get_favorite_folders(self, uid: int, credential: Credential) -> list[FavoriteFolder]:
        _require_login(credential)
        data = self.client.request(FAV_FOLDERS_PATH, params={"up_mid": str(uid)},
                                   credential=credential)
        return [FavoriteFolder.from_api(f) for f in data.get('list') or []]

    def get_favorite_videos(self, media_id: int, page: int = 1,
                            page_size: int = FAV_PAGE_SIZE,
                            credential: Credential | None = None) -> tuple[list[FavoriteVideo], bool]:
        _require_login(credential)
        data = self.client.request(
            FAV_CONTENTS_PATH,
            params={"media_id": str(media_id), "pn": str(page), "ps": str(page_size)},
            credential=credential,
        )
        videos = [FavoriteVideo.from_api(m) for m in data.get('medias') or []]
        return videos, bool(data.get('has_more'))

    def get_default_favorite_bvids(self, count: int, credential: Credential) -> list[str]:
        me = self.get_self_info(credential)
        folders = self.get_favorite_folders(me.mid, credential)
        folder = next((f for f in folders if f.is_default), folders[0] if folders else None)
        if folder is None:
            return []

        bvids: list[str] = []
        page = 1
        while len(bvids) < count and page <= FAV_MAX_PAGES:
            videos, has_more = self.get_favorite_videos(folder.id, page=page, credential=credential)
            for v in videos:
                if v.bvid:
                    bvids.append(v.bvid)
                if len(bvids) >= count:
                    break
            if not has_more:
                break
            page += 1
        return bvids

    def unfavorite_video(self, bvid: str, folder_id: int, credential: Credential):
        """Remove a video from one of the caller's collections."""
        _require_login(credential, csrf=True)
        info = self.get_video_info(bvid, credential)
        envelope = self.client.request_raw(
            FAV_BATCH_DELETE_PATH,
            data={
                "resources": f"{info.aid}:2",
                "media_id": str(folder_id),
                "csrf": credential.bili_jct,
            },
            credential=credential,
        )
        code = envelope.get('code', -1)
        if code != 0:
            raise RemoteAPIError(code, envelope.get('message') or '')
        logger.info("Removed %s from folder %s", bvid, folder_id)

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from bili_client.config import AppSettings
from bili_client.errors import DecodeError
from bili_client.http import HttpClient
from bili_client.models import expect_dict, expect_list, get_int, get_int_list, get_str, get_str_list
from bili_client.wbi import WbiSigner

VIEW_PATH = "/x/web-interface/view"
PAGELIST_PATH = "/x/player/pagelist"
PLAYURL_PATH = "/x/player/wbi/playurl"

# fnval flags: 16 dash, 64 hdr, 128 4k, 256 dolby audio, 512 dolby vision, 1024 8k, 2048 av1
DEFAULT_FNVAL = 4048
DEFAULT_QUALITY = 80


def video_id_params(bvid: str | None, aid: int | None) -> dict[str, Any]:
    bvid = (bvid or "").strip()
    if bool(bvid) == (aid is not None):
        raise ValueError("Provide exactly one of bvid or aid")
    if bvid:
        return {"bvid": bvid}
    if aid is None or aid <= 0:
        raise ValueError("aid must be a positive integer")
    return {"aid": aid}


@dataclass(frozen=True)
class VideoOwner:
    mid: int
    name: str
    face: str


@dataclass(frozen=True)
class VideoStat:
    view: int
    danmaku: int
    reply: int
    favorite: int
    coin: int
    share: int
    like: int


@dataclass(frozen=True)
class VideoPage:
    cid: int
    page: int
    part: str
    duration: int

    @staticmethod
    def from_data(data: Any, ctx: str) -> "VideoPage":
        item = expect_dict(data, f"{ctx}.pages")
        return VideoPage(
            cid=get_int(item, "cid", ctx),
            page=get_int(item, "page", ctx, default=1),
            part=get_str(item, "part", ctx, default=""),
            duration=get_int(item, "duration", ctx, default=0),
        )


@dataclass(frozen=True)
class VideoInfo:
    bvid: str
    aid: int
    cid: int
    title: str
    desc: str
    pic: str
    tname: str
    duration: int
    pubdate: int
    owner: VideoOwner
    stat: VideoStat
    pages: tuple[VideoPage, ...]

    @staticmethod
    def from_data(data: Mapping[str, Any]) -> "VideoInfo":
        ctx = VIEW_PATH
        owner = expect_dict(data.get("owner"), f"{ctx}.owner")
        stat = expect_dict(data.get("stat", {}), f"{ctx}.stat")
        return VideoInfo(
            bvid=get_str(data, "bvid", ctx),
            aid=get_int(data, "aid", ctx),
            cid=get_int(data, "cid", ctx),
            title=get_str(data, "title", ctx),
            desc=get_str(data, "desc", ctx, default=""),
            pic=get_str(data, "pic", ctx, default=""),
            tname=get_str(data, "tname", ctx, default=""),
            duration=get_int(data, "duration", ctx, default=0),
            pubdate=get_int(data, "pubdate", ctx, default=0),
            owner=VideoOwner(
                mid=get_int(owner, "mid", ctx),
                name=get_str(owner, "name", ctx, default=""),
                face=get_str(owner, "face", ctx, default=""),
            ),
            stat=VideoStat(
                view=get_int(stat, "view", ctx, default=0),
                danmaku=get_int(stat, "danmaku", ctx, default=0),
                reply=get_int(stat, "reply", ctx, default=0),
                favorite=get_int(stat, "favorite", ctx, default=0),
                coin=get_int(stat, "coin", ctx, default=0),
                share=get_int(stat, "share", ctx, default=0),
                like=get_int(stat, "like", ctx, default=0),
            ),
            pages=tuple(
                VideoPage.from_data(page, ctx)
                for page in expect_list(data.get("pages"), f"{ctx}.pages")
            ),
        )


@dataclass(frozen=True)
class DashStream:
    id: int
    base_url: str
    backup_urls: tuple[str, ...]
    bandwidth: int
    codecs: str
    mime_type: str
    width: int
    height: int

    @staticmethod
    def from_data(data: Any, ctx: str) -> "DashStream":
        item = expect_dict(data, f"{ctx}.dash")
        base_url = item.get("baseUrl") or item.get("base_url")
        if not isinstance(base_url, str) or not base_url:
            raise DecodeError(f"{ctx}: dash stream has no base url")
        backup_key = "backupUrl" if "backupUrl" in item else "backup_url"
        return DashStream(
            id=get_int(item, "id", ctx),
            base_url=base_url,
            backup_urls=get_str_list(item, backup_key, ctx),
            bandwidth=get_int(item, "bandwidth", ctx, default=0),
            codecs=get_str(item, "codecs", ctx, default=""),
            mime_type=get_str(item, "mimeType", ctx, default=get_str(item, "mime_type", ctx, default="")),
            width=get_int(item, "width", ctx, default=0),
            height=get_int(item, "height", ctx, default=0),
        )


@dataclass(frozen=True)
class DurlSegment:
    order: int
    length: int
    size: int
    url: str
    backup_urls: tuple[str, ...]

    @staticmethod
    def from_data(data: Any, ctx: str) -> "DurlSegment":
        item = expect_dict(data, f"{ctx}.durl")
        return DurlSegment(
            order=get_int(item, "order", ctx, default=1),
            length=get_int(item, "length", ctx, default=0),
            size=get_int(item, "size", ctx, default=0),
            url=get_str(item, "url", ctx),
            backup_urls=get_str_list(item, "backup_url", ctx),
        )


@dataclass(frozen=True)
class PlayUrl:
    quality: int
    format: str
    timelength: int
    accept_quality: tuple[int, ...]
    accept_description: tuple[str, ...]
    video_streams: tuple[DashStream, ...]
    audio_streams: tuple[DashStream, ...]
    segments: tuple[DurlSegment, ...]

    @property
    def is_dash(self) -> bool:
        return bool(self.video_streams)

    def best_video(self) -> DashStream | None:
        if not self.video_streams:
            return None
        return max(self.video_streams, key=lambda stream: (stream.id, stream.bandwidth))

    def best_audio(self) -> DashStream | None:
        if not self.audio_streams:
            return None
        return max(self.audio_streams, key=lambda stream: stream.bandwidth)

    @staticmethod
    def from_data(data: Mapping[str, Any]) -> "PlayUrl":
        ctx = PLAYURL_PATH
        dash = data.get("dash")
        video_streams: tuple[DashStream, ...] = ()
        audio_streams: tuple[DashStream, ...] = ()
        if dash is not None:
            dash = expect_dict(dash, f"{ctx}.dash")
            video_streams = tuple(
                DashStream.from_data(item, ctx) for item in expect_list(dash.get("video"), f"{ctx}.dash.video")
            )
            audio_streams = tuple(
                DashStream.from_data(item, ctx) for item in expect_list(dash.get("audio"), f"{ctx}.dash.audio")
            )
        segments = tuple(
            DurlSegment.from_data(item, ctx) for item in expect_list(data.get("durl"), f"{ctx}.durl")
        )
        if not video_streams and not segments:
            raise DecodeError(f"{ctx}: response carries neither dash streams nor durl segments")
        return PlayUrl(
            quality=get_int(data, "quality", ctx),
            format=get_str(data, "format", ctx, default=""),
            timelength=get_int(data, "timelength", ctx, default=0),
            accept_quality=get_int_list(data, "accept_quality", ctx),
            accept_description=get_str_list(data, "accept_description", ctx),
            video_streams=video_streams,
            audio_streams=audio_streams,
            segments=segments,
        )


class VideoApi:
    def __init__(self, settings: AppSettings, http_client: HttpClient, signer: WbiSigner):
        self._settings = settings
        self._http_client = http_client
        self._signer = signer

    def _url(self, path: str) -> str:
        return f"{self._settings.api_base_url}{path}"

    def get_info(
        self,
        cookies: Mapping[str, str] | None,
        bvid: str | None = None,
        aid: int | None = None,
    ) -> VideoInfo:
        params = video_id_params(bvid, aid)
        result = self._http_client.get(self._url(VIEW_PATH), params=params, cookies=cookies)
        return VideoInfo.from_data(result.require_data())

    def get_pages(
        self,
        cookies: Mapping[str, str] | None,
        bvid: str | None = None,
        aid: int | None = None,
    ) -> list[VideoPage]:
        params = video_id_params(bvid, aid)
        result = self._http_client.get(self._url(PAGELIST_PATH), params=params, cookies=cookies)
        if result.data is None:
            return []
        return [
            VideoPage.from_data(item, PAGELIST_PATH)
            for item in expect_list(result.data, f"{PAGELIST_PATH}.data")
        ]

    def get_play_url(
        self,
        cookies: Mapping[str, str] | None,
        cid: int,
        bvid: str | None = None,
        aid: int | None = None,
        quality: int = DEFAULT_QUALITY,
        fnval: int = DEFAULT_FNVAL,
    ) -> PlayUrl:
        if cid <= 0:
            raise ValueError("cid must be a positive integer")
        params = video_id_params(bvid, aid)
        if "aid" in params:
            params = {"avid": params["aid"]}
        params.update(
            {
                "cid": cid,
                "qn": quality,
                "fnval": fnval,
                "fnver": 0,
                "fourk": 1,
            }
        )
        signed = self._signer.sign(params)
        result = self._http_client.get(self._url(PLAYURL_PATH), params=signed, cookies=cookies)
        return PlayUrl.from_data(result.require_data())

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from bili_client.config import AppSettings
from bili_client.http import HttpClient
from bili_client.models import expect_dict, expect_list, get_bool, get_int, get_str

FOLDER_LIST_PATH = "/x/v3/fav/folder/created/list-all"
RESOURCE_LIST_PATH = "/x/v3/fav/resource/list"

MAX_PAGE_SIZE = 20


@dataclass(frozen=True)
class FavoriteFolder:
    id: int
    fid: int
    mid: int
    title: str
    media_count: int
    attr: int

    @property
    def is_private(self) -> bool:
        return bool(self.attr & 1)

    @staticmethod
    def from_data(data: Any) -> "FavoriteFolder":
        ctx = FOLDER_LIST_PATH
        item = expect_dict(data, f"{ctx}.list")
        return FavoriteFolder(
            id=get_int(item, "id", ctx),
            fid=get_int(item, "fid", ctx, default=0),
            mid=get_int(item, "mid", ctx, default=0),
            title=get_str(item, "title", ctx),
            media_count=get_int(item, "media_count", ctx, default=0),
            attr=get_int(item, "attr", ctx, default=0),
        )


@dataclass(frozen=True)
class FavoriteResource:
    id: int
    type: int
    bvid: str
    title: str
    cover: str
    intro: str
    duration: int
    upper_mid: int
    upper_name: str
    fav_time: int

    @staticmethod
    def from_data(data: Any) -> "FavoriteResource":
        ctx = RESOURCE_LIST_PATH
        item = expect_dict(data, f"{ctx}.medias")
        upper = expect_dict(item.get("upper", {}), f"{ctx}.upper")
        return FavoriteResource(
            id=get_int(item, "id", ctx),
            type=get_int(item, "type", ctx, default=2),
            bvid=get_str(item, "bvid", ctx, default=get_str(item, "bv_id", ctx, default="")),
            title=get_str(item, "title", ctx),
            cover=get_str(item, "cover", ctx, default=""),
            intro=get_str(item, "intro", ctx, default=""),
            duration=get_int(item, "duration", ctx, default=0),
            upper_mid=get_int(upper, "mid", ctx, default=0),
            upper_name=get_str(upper, "name", ctx, default=""),
            fav_time=get_int(item, "fav_time", ctx, default=0),
        )


@dataclass(frozen=True)
class FavoriteResourcePage:
    folder_id: int
    folder_title: str
    media_count: int
    page: int
    has_more: bool
    resources: tuple[FavoriteResource, ...]

    @staticmethod
    def from_data(data: Mapping[str, Any], page: int) -> "FavoriteResourcePage":
        ctx = RESOURCE_LIST_PATH
        info = expect_dict(data.get("info"), f"{ctx}.info")
        return FavoriteResourcePage(
            folder_id=get_int(info, "id", ctx),
            folder_title=get_str(info, "title", ctx, default=""),
            media_count=get_int(info, "media_count", ctx, default=0),
            page=page,
            has_more=get_bool(data, "has_more", ctx, default=False),
            resources=tuple(
                FavoriteResource.from_data(item)
                for item in expect_list(data.get("medias"), f"{ctx}.medias")
            ),
        )


class FavoriteApi:
    def __init__(self, settings: AppSettings, http_client: HttpClient):
        self._settings = settings
        self._http_client = http_client

    def _url(self, path: str) -> str:
        return f"{self._settings.api_base_url}{path}"

    def list_folders(self, cookies: Mapping[str, str] | None, up_mid: int) -> list[FavoriteFolder]:
        if up_mid <= 0:
            raise ValueError("up_mid must be a positive integer")
        result = self._http_client.get(
            self._url(FOLDER_LIST_PATH),
            params={"up_mid": up_mid},
            cookies=cookies,
        )
        # Users without folders get `data: null`.
        if result.data is None:
            return []
        data = expect_dict(result.data, f"{FOLDER_LIST_PATH}.data")
        return [
            FavoriteFolder.from_data(item)
            for item in expect_list(data.get("list"), f"{FOLDER_LIST_PATH}.list")
        ]

    def list_resources(
        self,
        cookies: Mapping[str, str] | None,
        media_id: int,
        page: int = 1,
        page_size: int = MAX_PAGE_SIZE,
        keyword: str = "",
    ) -> FavoriteResourcePage:
        if page < 1:
            raise ValueError("page must be 1 or greater")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        params: dict[str, Any] = {
            "media_id": media_id,
            "pn": page,
            "ps": page_size,
            "order": "mtime",
            "platform": "web",
        }
        if keyword.strip():
            params["keyword"] = keyword.strip()

        result = self._http_client.get(self._url(RESOURCE_LIST_PATH), params=params, cookies=cookies)
        return FavoriteResourcePage.from_data(result.require_data(), page)

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from bs4 import BeautifulSoup

from bili_client.config import AppSettings
from bili_client.http import HttpClient
from bili_client.models import expect_dict, expect_list, get_int, get_str
from bili_client.wbi import WbiSigner

SEARCH_TYPE_PATH = "/x/web-interface/wbi/search/type"

VIDEO_ORDERS = ("totalrank", "click", "pubdate", "dm", "stow", "scores")


def strip_highlight(text: str) -> str:
    """Drop `<em class="keyword">` markup and decode entities."""
    if "<" not in text and "&" not in text:
        return text
    return BeautifulSoup(text, "html.parser").get_text()


@dataclass(frozen=True)
class SearchVideo:
    aid: int
    bvid: str
    title: str
    author: str
    mid: int
    play: int
    duration: str
    pubdate: int
    description: str
    pic: str

    @staticmethod
    def from_data(data: Any) -> "SearchVideo":
        ctx = SEARCH_TYPE_PATH
        item = expect_dict(data, f"{ctx}.result")
        pic = get_str(item, "pic", ctx, default="")
        if pic.startswith("//"):
            pic = f"https:{pic}"
        return SearchVideo(
            aid=get_int(item, "aid", ctx),
            bvid=get_str(item, "bvid", ctx),
            title=strip_highlight(get_str(item, "title", ctx)),
            author=get_str(item, "author", ctx, default=""),
            mid=get_int(item, "mid", ctx, default=0),
            play=get_int(item, "play", ctx, default=0),
            duration=get_str(item, "duration", ctx, default=""),
            pubdate=get_int(item, "pubdate", ctx, default=0),
            description=get_str(item, "description", ctx, default=""),
            pic=pic,
        )


@dataclass(frozen=True)
class SearchPage:
    page: int
    page_size: int
    num_results: int
    num_pages: int
    items: tuple[SearchVideo, ...]

    @property
    def has_more(self) -> bool:
        return self.page < self.num_pages

    @staticmethod
    def from_data(data: Mapping[str, Any]) -> "SearchPage":
        ctx = SEARCH_TYPE_PATH
        return SearchPage(
            page=get_int(data, "page", ctx),
            page_size=get_int(data, "pagesize", ctx, default=20),
            num_results=get_int(data, "numResults", ctx, default=0),
            num_pages=get_int(data, "numPages", ctx, default=0),
            items=tuple(
                SearchVideo.from_data(item)
                for item in expect_list(data.get("result"), f"{ctx}.result")
                if not isinstance(item, dict) or item.get("type", "video") == "video"
            ),
        )


class SearchApi:
    def __init__(self, settings: AppSettings, http_client: HttpClient, signer: WbiSigner):
        self._settings = settings
        self._http_client = http_client
        self._signer = signer

    @staticmethod
    def validate_query(keyword: str, page: int = 1, order: str = "totalrank") -> str:
        """Check search arguments and return the trimmed keyword."""
        query = keyword.strip()
        if not query:
            raise ValueError("Search keyword is required")
        if page < 1:
            raise ValueError("page must be 1 or greater")
        if order not in VIDEO_ORDERS:
            raise ValueError("order must be one of: " + ", ".join(VIDEO_ORDERS))
        return query

    def search_videos(
        self,
        cookies: Mapping[str, str] | None,
        keyword: str,
        page: int = 1,
        order: str = "totalrank",
    ) -> SearchPage:
        query = self.validate_query(keyword, page, order)

        params = self._signer.sign(
            {
                "search_type": "video",
                "keyword": query,
                "page": page,
                "order": order,
            }
        )
        result = self._http_client.get(
            f"{self._settings.api_base_url}{SEARCH_TYPE_PATH}",
            params=params,
            cookies=cookies,
        )
        return SearchPage.from_data(result.require_data())

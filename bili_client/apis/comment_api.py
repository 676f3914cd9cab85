from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import Any, Mapping

from bili_client.config import AppSettings
from bili_client.http import HttpClient
from bili_client.models import expect_dict, expect_list, get_int, get_str

REPLY_PATH = "/x/v2/reply"
REPLY_REPLY_PATH = "/x/v2/reply/reply"

# Comment area type of regular videos; oid is then the video's aid.
VIDEO_COMMENT_TYPE = 1
MAX_PAGE_SIZE = 20


class CommentSort(enum.IntEnum):
    TIME = 0
    LIKES = 1
    REPLIES = 2


@dataclass(frozen=True)
class Comment:
    rpid: int
    oid: int
    mid: int
    uname: str
    message: str
    like: int
    ctime: int
    reply_count: int
    root: int
    parent: int
    replies: tuple["Comment", ...] = ()

    @staticmethod
    def from_data(data: Any, ctx: str) -> "Comment":
        item = expect_dict(data, f"{ctx}.replies")
        member = expect_dict(item.get("member", {}), f"{ctx}.member")
        content = expect_dict(item.get("content"), f"{ctx}.content")
        return Comment(
            rpid=get_int(item, "rpid", ctx),
            oid=get_int(item, "oid", ctx),
            mid=get_int(item, "mid", ctx, default=get_int(member, "mid", ctx, default=0)),
            uname=get_str(member, "uname", ctx, default=""),
            message=get_str(content, "message", ctx),
            like=get_int(item, "like", ctx, default=0),
            ctime=get_int(item, "ctime", ctx, default=0),
            reply_count=get_int(item, "rcount", ctx, default=0),
            root=get_int(item, "root", ctx, default=0),
            parent=get_int(item, "parent", ctx, default=0),
            replies=tuple(
                Comment.from_data(reply, ctx)
                for reply in expect_list(item.get("replies"), f"{ctx}.replies")
            ),
        )


@dataclass(frozen=True)
class CommentPage:
    page: int
    page_size: int
    total: int
    comments: tuple[Comment, ...]

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total

    @staticmethod
    def from_data(data: Mapping[str, Any], ctx: str) -> "CommentPage":
        page = expect_dict(data.get("page"), f"{ctx}.page")
        return CommentPage(
            page=get_int(page, "num", ctx),
            page_size=get_int(page, "size", ctx),
            total=get_int(page, "count", ctx, default=0),
            comments=tuple(
                Comment.from_data(item, ctx)
                for item in expect_list(data.get("replies"), f"{ctx}.replies")
            ),
        )


def _validate_page(page: int, page_size: int) -> None:
    if page < 1:
        raise ValueError("page must be 1 or greater")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")


class CommentApi:
    def __init__(self, settings: AppSettings, http_client: HttpClient):
        self._settings = settings
        self._http_client = http_client

    def _url(self, path: str) -> str:
        return f"{self._settings.api_base_url}{path}"

    def list_comments(
        self,
        cookies: Mapping[str, str] | None,
        oid: int,
        comment_type: int = VIDEO_COMMENT_TYPE,
        page: int = 1,
        page_size: int = MAX_PAGE_SIZE,
        sort: CommentSort = CommentSort.TIME,
    ) -> CommentPage:
        _validate_page(page, page_size)
        params = {
            "type": comment_type,
            "oid": oid,
            "pn": page,
            "ps": page_size,
            "sort": int(sort),
        }
        result = self._http_client.get(self._url(REPLY_PATH), params=params, cookies=cookies)
        return CommentPage.from_data(result.require_data(), REPLY_PATH)

    def list_replies(
        self,
        cookies: Mapping[str, str] | None,
        oid: int,
        root: int,
        comment_type: int = VIDEO_COMMENT_TYPE,
        page: int = 1,
        page_size: int = MAX_PAGE_SIZE,
    ) -> CommentPage:
        _validate_page(page, page_size)
        params = {
            "type": comment_type,
            "oid": oid,
            "root": root,
            "pn": page,
            "ps": page_size,
        }
        result = self._http_client.get(self._url(REPLY_REPLY_PATH), params=params, cookies=cookies)
        return CommentPage.from_data(result.require_data(), REPLY_REPLY_PATH)

from __future__ import annotations

import logging
from typing import Callable, Mapping, TypeVar

import requests

from bili_client.apis import CommentApi, FavoriteApi, SearchApi, UserApi, VideoApi
from bili_client.apis.comment_api import CommentPage, CommentSort
from bili_client.apis.favorite_api import FavoriteFolder, FavoriteResourcePage
from bili_client.apis.search_api import SearchPage
from bili_client.apis.user_api import MyInfo, NavInfo, VipInfo
from bili_client.apis.video_api import PlayUrl, VideoInfo, VideoPage
from bili_client.auth import AuthManager
from bili_client.config import AppSettings
from bili_client.errors import AuthenticationError
from bili_client.http import HttpClient
from bili_client.models import AuthState, Credential, QrLoginSession, QrLoginState
from bili_client.session import CredentialFile, CredentialStore
from bili_client.wbi import WbiSigner

logger = logging.getLogger(__name__)

T = TypeVar("T")

Cookies = Mapping[str, str]


def _mid_from_cookies(cookies: Cookies) -> int:
    mid = Credential(cookies=cookies).mid
    if not mid:
        raise AuthenticationError("Credential has no DedeUserID cookie, please log in again")
    return mid


class BiliService:
    def __init__(
        self,
        auth_manager: AuthManager,
        store: CredentialStore,
        user_api: UserApi,
        video_api: VideoApi,
        comment_api: CommentApi,
        favorite_api: FavoriteApi,
        search_api: SearchApi,
        request_timeout_seconds: int,
    ):
        self._auth_manager = auth_manager
        self._store = store
        self._user_api = user_api
        self._video_api = video_api
        self._comment_api = comment_api
        self._favorite_api = favorite_api
        self._search_api = search_api
        self._request_timeout_seconds = request_timeout_seconds

    @property
    def request_timeout_seconds(self) -> int:
        return self._request_timeout_seconds

    @property
    def credential(self) -> Credential | None:
        return self._store.peek()

    def _authenticated(self, operation: Callable[[Cookies], T]) -> T:
        credential, generation = self._store.snapshot()
        if credential is None or not credential.is_logged_in:
            raise AuthenticationError("No credential available, please log in")
        try:
            return operation(credential.cookie_dict())
        except AuthenticationError:
            latest, latest_generation = self._store.snapshot()
            if latest_generation == generation or latest is None or not latest.is_logged_in:
                raise
            # A refresh replaced the cookies while this call was in flight.
            logger.info("Credential changed during request, retrying once with the new one")
            return operation(latest.cookie_dict())

    def _anonymous(self, operation: Callable[[Cookies | None], T]) -> T:
        credential = self._store.peek()
        return operation(credential.cookie_dict() if credential is not None else None)

    # Authentication

    def auth_state(self) -> AuthState:
        return self._auth_manager.get_auth_state()

    def start_qr_login(self) -> QrLoginSession:
        return self._auth_manager.start_qr_login()

    def poll_qr_login(self, session: QrLoginSession) -> tuple[QrLoginState, Credential | None]:
        return self._auth_manager.poll_qr_login(session)

    def login_with_qrcode(
        self,
        on_session: Callable[[QrLoginSession], None] | None = None,
        on_state: Callable[[QrLoginState], None] | None = None,
    ) -> Credential:
        return self._auth_manager.login(on_session=on_session, on_state=on_state)

    def refresh_credential(self) -> Credential:
        return self._auth_manager.refresh()

    def sign_out(self) -> None:
        self._auth_manager.sign_out()

    # Account

    def my_info(self) -> MyInfo:
        return self._authenticated(self._user_api.my_info)

    def nav_info(self) -> NavInfo:
        return self._authenticated(self._user_api.nav_info)

    def vip_info(self) -> VipInfo:
        return self._authenticated(self._user_api.vip_info)

    # Videos

    def video_info(self, bvid: str | None = None, aid: int | None = None) -> VideoInfo:
        return self._anonymous(lambda cookies: self._video_api.get_info(cookies, bvid=bvid, aid=aid))

    def video_pages(self, bvid: str | None = None, aid: int | None = None) -> list[VideoPage]:
        return self._anonymous(lambda cookies: self._video_api.get_pages(cookies, bvid=bvid, aid=aid))

    def play_url(
        self,
        cid: int,
        bvid: str | None = None,
        aid: int | None = None,
        quality: int = 80,
    ) -> PlayUrl:
        return self._anonymous(
            lambda cookies: self._video_api.get_play_url(cookies, cid, bvid=bvid, aid=aid, quality=quality)
        )

    # Comments

    def comments(
        self,
        aid: int,
        page: int = 1,
        page_size: int = 20,
        sort: CommentSort = CommentSort.TIME,
    ) -> CommentPage:
        return self._anonymous(
            lambda cookies: self._comment_api.list_comments(
                cookies,
                aid,
                page=page,
                page_size=page_size,
                sort=sort,
            )
        )

    def comment_replies(self, aid: int, root: int, page: int = 1, page_size: int = 20) -> CommentPage:
        return self._anonymous(
            lambda cookies: self._comment_api.list_replies(cookies, aid, root, page=page, page_size=page_size)
        )

    # Favorites

    def favorite_folders(self, up_mid: int | None = None) -> list[FavoriteFolder]:
        if up_mid is None:
            return self._authenticated(
                lambda cookies: self._favorite_api.list_folders(cookies, _mid_from_cookies(cookies))
            )
        return self._anonymous(lambda cookies: self._favorite_api.list_folders(cookies, up_mid))

    def favorite_resources(
        self,
        media_id: int,
        page: int = 1,
        page_size: int = 20,
        keyword: str = "",
    ) -> FavoriteResourcePage:
        return self._anonymous(
            lambda cookies: self._favorite_api.list_resources(
                cookies,
                media_id,
                page=page,
                page_size=page_size,
                keyword=keyword,
            )
        )

    # Search

    def search_videos(self, keyword: str, page: int = 1, order: str = "totalrank") -> SearchPage:
        SearchApi.validate_query(keyword, page, order)
        self._auth_manager.ensure_buvid()
        return self._anonymous(
            lambda cookies: self._search_api.search_videos(cookies, keyword, page=page, order=order)
        )


def build_service(
    settings: AppSettings | None = None,
    session: requests.Session | None = None,
) -> BiliService:
    settings = settings or AppSettings.from_env()
    http_client = HttpClient(settings, session=session)
    store = CredentialStore(CredentialFile(settings.credential_path))
    store.load()
    signer = WbiSigner(http_client)
    return BiliService(
        auth_manager=AuthManager(settings, http_client, store),
        store=store,
        user_api=UserApi(settings, http_client),
        video_api=VideoApi(settings, http_client, signer),
        comment_api=CommentApi(settings, http_client),
        favorite_api=FavoriteApi(settings, http_client),
        search_api=SearchApi(settings, http_client, signer),
        request_timeout_seconds=settings.timeout_seconds,
    )

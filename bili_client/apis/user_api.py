from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from bili_client.config import AppSettings
from bili_client.http import HttpClient
from bili_client.models import expect_dict, get_bool, get_float, get_int, get_str

MY_INFO_PATH = "/x/member/web/account"
NAV_PATH = "/x/web-interface/nav"
VIP_INFO_PATH = "/x/vip/web/user/info"


@dataclass(frozen=True)
class MyInfo:
    mid: int
    uname: str
    userid: str
    sign: str
    birthday: str
    sex: str
    nick_free: bool
    rank: str

    @staticmethod
    def from_data(data: Mapping[str, Any]) -> "MyInfo":
        ctx = MY_INFO_PATH
        return MyInfo(
            mid=get_int(data, "mid", ctx),
            uname=get_str(data, "uname", ctx),
            userid=get_str(data, "userid", ctx, default=""),
            sign=get_str(data, "sign", ctx, default=""),
            birthday=get_str(data, "birthday", ctx, default=""),
            sex=get_str(data, "sex", ctx, default=""),
            nick_free=get_bool(data, "nick_free", ctx, default=False),
            rank=get_str(data, "rank", ctx, default=""),
        )


@dataclass(frozen=True)
class LevelInfo:
    current_level: int
    current_min: int
    current_exp: int
    # "--" once the top level is reached
    next_exp: str


@dataclass(frozen=True)
class Official:
    role: int
    title: str
    desc: str
    type: int


@dataclass(frozen=True)
class Vip:
    type: int
    status: int
    due_date: int
    label: str


@dataclass(frozen=True)
class Wallet:
    mid: int
    bcoin_balance: float
    coupon_balance: float


@dataclass(frozen=True)
class NavInfo:
    is_login: bool
    mid: int
    uname: str
    face: str
    level_info: LevelInfo
    money: float
    moral: int
    official: Official
    vip: Vip
    wallet: Wallet
    email_verified: bool
    mobile_verified: bool

    @staticmethod
    def from_data(data: Mapping[str, Any]) -> "NavInfo":
        ctx = NAV_PATH
        level = expect_dict(data.get("level_info", {}), f"{ctx}.level_info")
        official = expect_dict(data.get("official", {}), f"{ctx}.official")
        vip = expect_dict(data.get("vip", {}), f"{ctx}.vip")
        vip_label = expect_dict(vip.get("label", {}), f"{ctx}.vip.label")
        wallet = expect_dict(data.get("wallet", {}), f"{ctx}.wallet")
        return NavInfo(
            is_login=get_bool(data, "isLogin", ctx),
            mid=get_int(data, "mid", ctx),
            uname=get_str(data, "uname", ctx),
            face=get_str(data, "face", ctx, default=""),
            level_info=LevelInfo(
                current_level=get_int(level, "current_level", ctx, default=0),
                current_min=get_int(level, "current_min", ctx, default=0),
                current_exp=get_int(level, "current_exp", ctx, default=0),
                next_exp=get_str(level, "next_exp", ctx, default=""),
            ),
            money=get_float(data, "money", ctx, default=0.0),
            moral=get_int(data, "moral", ctx, default=0),
            official=Official(
                role=get_int(official, "role", ctx, default=0),
                title=get_str(official, "title", ctx, default=""),
                desc=get_str(official, "desc", ctx, default=""),
                type=get_int(official, "type", ctx, default=-1),
            ),
            vip=Vip(
                type=get_int(vip, "type", ctx, default=get_int(data, "vipType", ctx, default=0)),
                status=get_int(vip, "status", ctx, default=get_int(data, "vipStatus", ctx, default=0)),
                due_date=get_int(vip, "due_date", ctx, default=get_int(data, "vipDueDate", ctx, default=0)),
                label=get_str(vip_label, "text", ctx, default=""),
            ),
            wallet=Wallet(
                mid=get_int(wallet, "mid", ctx, default=0),
                bcoin_balance=get_float(wallet, "bcoin_balance", ctx, default=0.0),
                coupon_balance=get_float(wallet, "coupon_balance", ctx, default=0.0),
            ),
            email_verified=get_bool(data, "email_verified", ctx, default=False),
            mobile_verified=get_bool(data, "mobile_verified", ctx, default=False),
        )


@dataclass(frozen=True)
class VipInfo:
    mid: int
    vip_type: int
    vip_status: int
    vip_due_date: int
    vip_pay_type: int
    theme_type: int

    @property
    def is_active(self) -> bool:
        return self.vip_status == 1

    @staticmethod
    def from_data(data: Mapping[str, Any]) -> "VipInfo":
        ctx = VIP_INFO_PATH
        return VipInfo(
            mid=get_int(data, "mid", ctx),
            vip_type=get_int(data, "vip_type", ctx),
            vip_status=get_int(data, "vip_status", ctx),
            vip_due_date=get_int(data, "vip_due_date", ctx, default=0),
            vip_pay_type=get_int(data, "vip_pay_type", ctx, default=0),
            theme_type=get_int(data, "theme_type", ctx, default=0),
        )


class UserApi:
    def __init__(self, settings: AppSettings, http_client: HttpClient):
        self._settings = settings
        self._http_client = http_client

    def _url(self, path: str) -> str:
        return f"{self._settings.api_base_url}{path}"

    def my_info(self, cookies: Mapping[str, str]) -> MyInfo:
        result = self._http_client.get(self._url(MY_INFO_PATH), cookies=cookies)
        return MyInfo.from_data(result.require_data())

    def nav_info(self, cookies: Mapping[str, str]) -> NavInfo:
        result = self._http_client.get(self._url(NAV_PATH), cookies=cookies)
        return NavInfo.from_data(result.require_data())

    def vip_info(self, cookies: Mapping[str, str]) -> VipInfo:
        result = self._http_client.get(self._url(VIP_INFO_PATH), cookies=cookies)
        return VipInfo.from_data(result.require_data())

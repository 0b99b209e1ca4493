"""HTTP client for the fumosclub API.

Every request carries the stored session cookie and a fixed user agent.
Responses are JSON objects with a ``success`` flag; failures are mapped
onto the :mod:`fumosync.errors` hierarchy so callers never have to look
at status codes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import requests

from fumosync import __version__
from fumosync.config import DEFAULT_BASE_URL
from fumosync.errors import (
    DecodeError,
    FumosclubAPIError,
    InsufficientAuthorizationError,
    InvalidKeyGenerationTargetError,
    NotLoggedInError,
    RequestError,
    ResponseStatusError,
    UserBannedError,
)
from fumosync.session import SESSION_COOKIE, Secrets
from fumosync.updates import EditorUpdate, build_editor_payload

logger = logging.getLogger(__name__)

USER_AGENT = f"fumosync/{__version__} (python)"

ACCOUNT_DETAILS_PATH = "/api/account/getdetails"
LIST_SCRIPTS_PATH = "/api/script/home/getscripts"
EDITOR_PATH = "/api/script/editor"
GENERATE_KEY_PATH = "/api/script/editor/generatekey"


@dataclass
class AccountDetails:
    id: str
    name: str
    icon: str = ""
    roblox_user: str = ""
    discord_user_id: str = ""
    num_sessions: int = 0

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> AccountDetails:
        return cls(
            id=str(data["id"]),
            name=data["name"],
            icon=data.get("icon", ""),
            roblox_user=data.get("robloxUser", ""),
            discord_user_id=data.get("discordUserId", ""),
            num_sessions=int(data.get("numSessions", 0)),
        )


@dataclass
class Script:
    id: str
    name: str
    description: str = ""
    script_type: int = 0
    creator: str = ""
    creator_icon: str = ""
    editable: bool = False
    is_favorite: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Script:
        return cls(
            id=str(data["id"]),
            name=data["name"],
            description=data.get("description", ""),
            script_type=int(data.get("type", 0)),
            creator=data.get("creator", ""),
            creator_icon=data.get("creatorIcon", ""),
            editable=bool(data.get("editable", False)),
            is_favorite=bool(data.get("isFavorite", False)),
        )


@dataclass
class ScriptInfo:
    """A script as the editor endpoint returns it."""

    name: str
    description: str
    main: str
    modules: dict[str, str] = field(default_factory=dict)
    script_type: int = 0
    is_public: bool = False
    whitelist: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ScriptInfo:
        source = data.get("source") or {}
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            main=source.get("main", ""),
            modules=dict(source.get("modules") or {}),
            script_type=int(data.get("type", 0)),
            is_public=bool(data.get("isPublic", False)),
            whitelist=list(data.get("whitelist") or []),
        )


class Client:
    """Thin wrapper over a ``requests.Session`` authenticated as one user."""

    def __init__(
        self,
        secrets: Secrets,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30,
        session: requests.Session | None = None,
    ):
        self.secrets = secrets
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Cookie": f"{SESSION_COOKIE}={secrets.session}",
                "User-Agent": USER_AGENT,
            }
        )

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ---- transport ----

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise RequestError(f"{method} {path} failed: {exc}") from exc

        body = self._decode(response)
        self._raise_for_status(response.status_code, body)

        if body.get("success") is False:
            raise FumosclubAPIError(str(body.get("error") or body.get("message") or "unknown error"))
        return body

    @staticmethod
    def _decode(response: requests.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            if response.ok:
                raise DecodeError(f"response from {response.url} is not JSON") from exc
            return {}
        if not isinstance(body, dict):
            raise DecodeError(f"response from {response.url} is not a JSON object")
        return body

    @staticmethod
    def _raise_for_status(status: int, body: dict[str, Any]) -> None:
        if 200 <= status < 300:
            return
        message = str(body.get("error") or body.get("message") or "")
        if status == 401:
            raise NotLoggedInError()
        if status == 403:
            if body.get("banned"):
                raise UserBannedError(body.get("reason"))
            raise InsufficientAuthorizationError()
        raise ResponseStatusError(status, message)

    # ---- operations ----

    def get_details(self) -> AccountDetails:
        """Return the logged-in account."""
        body = self._request("GET", ACCOUNT_DETAILS_PATH)
        try:
            return AccountDetails.from_json(body)
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"account details response is missing {exc}") from exc

    def list_scripts(self) -> list[Script]:
        """Return every script visible to the logged-in account."""
        body = self._request("GET", LIST_SCRIPTS_PATH)
        try:
            return [Script.from_json(item) for item in body.get("scripts", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"script list response is malformed: {exc}") from exc

    def get_editor(self, script_id: str) -> ScriptInfo:
        """Return the editable state of *script_id*."""
        body = self._request("GET", EDITOR_PATH, params={"id": script_id})
        try:
            return ScriptInfo.from_json(body["scriptInfo"])
        except (KeyError, TypeError) as exc:
            raise DecodeError(f"editor response for {script_id} is missing {exc}") from exc

    def set_editor(self, script_id: str, updates: Iterable[EditorUpdate]) -> None:
        """Apply *updates* to *script_id* as one partial update."""
        payload = build_editor_payload(script_id, updates)
        logger.debug(
            "Updating %s fields: %s", script_id, ", ".join(sorted(payload["scriptInfo"])) or "none"
        )
        self._request("PATCH", EDITOR_PATH, json=payload)

    def generate_key(self, script_id: str) -> str:
        """Generate a loader key for *script_id*."""
        try:
            body = self._request("PUT", GENERATE_KEY_PATH, json={"scriptId": script_id})
        except ResponseStatusError as exc:
            if exc.status_code in (400, 404):
                raise InvalidKeyGenerationTargetError(script_id) from exc
            raise
        key = body.get("key")
        if not isinstance(key, str):
            raise DecodeError("key generation response carries no key")
        return key

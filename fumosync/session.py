"""Session secret storage for fumosync.

The fumosclub API authenticates every call with the ``session`` cookie
of a logged-in browser.  ``fumo login`` stores that value in
``secrets.json`` inside the application config directory; every other
command loads it from there.
"""

from __future__ import annotations

import getpass
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from fumosync.errors import InvalidSecretsError, SecretsExpiredError
from fumosync.platform_utils import get_secrets_path, open_url_in_browser

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"


@dataclass
class Secrets:
    """A stored session cookie and, when known, when it stops being valid."""

    session: str
    expires: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires

    def to_dict(self) -> dict:
        return {
            "session": self.session,
            "expires": self.expires.isoformat() if self.expires else None,
        }


def _parse_expiry(value: object) -> datetime | None:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise InvalidSecretsError("expiry is not a timestamp")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise InvalidSecretsError(f"unreadable expiry {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def load_secrets(path: Path | None = None) -> Secrets:
    """Load and validate the stored secrets.

    Raises ``InvalidSecretsError`` when nothing usable is stored and
    ``SecretsExpiredError`` when the stored session is known to be stale.
    """
    path = path or get_secrets_path()
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        raise InvalidSecretsError("not logged in; run `fumo login` first") from None
    except (OSError, ValueError) as exc:
        raise InvalidSecretsError(f"could not read {path}: {exc}") from None

    if not isinstance(data, dict) or not isinstance(data.get(SESSION_COOKIE), str):
        raise InvalidSecretsError(f"{path} holds no session")
    if not data[SESSION_COOKIE].strip():
        raise InvalidSecretsError("stored session is empty")

    secrets = Secrets(session=data[SESSION_COOKIE], expires=_parse_expiry(data.get("expires")))
    if secrets.is_expired():
        raise SecretsExpiredError(secrets.expires)
    return secrets


def save_session(session: str, expires: datetime | None = None, path: Path | None = None) -> Secrets:
    """Store *session*, replacing whatever was there before."""
    path = path or get_secrets_path()
    session = session.strip()
    if not session:
        raise InvalidSecretsError("refusing to store an empty session")

    secrets = Secrets(session=session, expires=expires)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(secrets.to_dict(), fh, indent=2)
    # The session grants full account access.
    try:
        os.chmod(path, 0o600)
    except OSError:
        logger.debug("Could not restrict permissions on %s", path, exc_info=True)
    logger.info("Saved session secrets to %s", path)
    return secrets


def prompt_for_session(login_url: str, open_browser: bool = False) -> str:
    """Ask the user to paste the ``session`` cookie of a logged-in browser."""
    if open_browser:
        open_url_in_browser(login_url)
    print(f"Log in at {login_url}, then copy the value of the '{SESSION_COOKIE}' cookie.")
    return getpass.getpass("session cookie: ")

"""Exception hierarchy for fumosync.

Every failure the command line knows how to report derives from
:class:`FumoError`; anything else is a bug and surfaces with a traceback.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path


class FumoError(Exception):
    """Base class for all fumosync errors."""


# ---- filesystem ----


class PathError(FumoError):
    """An operation on a specific path failed."""

    action = "accessing"

    def __init__(self, path: Path | str, cause: BaseException | None = None):
        self.path = Path(path)
        self.cause = cause
        detail = f"; {cause}" if cause is not None else ""
        super().__init__(f"failed {self.action} {self.path}{detail}")


class CreateFileError(PathError):
    action = "creating file"


class CreateDirectoryError(PathError):
    action = "creating directory"


class ReadFileError(PathError):
    action = "reading file"


class ReadDirectoryError(PathError):
    action = "reading directory"


class DirectoryAlreadyExistsError(FumoError):
    """``init`` was pointed at a directory that already exists."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"the directory at {self.path} already exists")


class ProjectInitError(FumoError):
    """Scaffolding a project for ``pull`` failed."""

    def __init__(self, cause: FumoError):
        self.cause = cause
        super().__init__(f"failed initializing project: {cause}")


class ConfigurationError(FumoError):
    """``fumosync.json`` exists but does not hold a valid configuration."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        super().__init__(f"invalid project configuration in {self.path}: {reason}")


class PathDiffError(FumoError):
    """A watched path cannot be expressed relative to the project root."""

    def __init__(self, path: Path | str, base: Path | str):
        self.path = path
        self.base = base
        super().__init__(f"failed diffing paths: {path} against {base}")


class WatchSetupError(FumoError):
    """The filesystem watch could not be established."""


# ---- authentication ----


class InvalidSecretsError(FumoError):
    """No usable session secret is stored; ``fumo login`` is required."""

    def __init__(self, reason: str = "authentication required"):
        super().__init__(f"invalid secrets; {reason}")


class SecretsExpiredError(FumoError):
    def __init__(self, expired_at: datetime):
        self.expired_at = expired_at
        super().__init__(f"secrets expired at {expired_at.isoformat()}")


# ---- remote API ----


class RemoteError(FumoError):
    """Base class for failures talking to the fumosclub API."""


class RequestError(RemoteError):
    """The HTTP request could not be completed."""


class DecodeError(RemoteError):
    """The API answered with a body that could not be decoded."""


class ResponseStatusError(RemoteError):
    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        suffix = f" ({message})" if message else ""
        super().__init__(f"got error response status: {status_code}{suffix}")


class NotLoggedInError(RemoteError):
    def __init__(self):
        super().__init__('invalid secrets; API returned a "not logged in" response')


class InsufficientAuthorizationError(RemoteError):
    def __init__(self):
        super().__init__("secrets do not have a high enough role")


class UserBannedError(RemoteError):
    def __init__(self, reason: str | None = None):
        self.reason = reason
        super().__init__(f"the user is banned for {reason or '(no reason provided)'}")


class InvalidKeyGenerationTargetError(RemoteError):
    def __init__(self, script_id: str):
        self.script_id = script_id
        super().__init__(
            f"the id {script_id!r} is either invalid or designated for a package"
        )


class FumosclubAPIError(RemoteError):
    """The API reported ``success: false`` with an error message."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"fumosclub api error: {message}")

"""
fumo — command line interface for fumosync.

    fumo login [--session VALUE] [--open-browser]
    fumo view
    fumo init DIR
    fumo list
    fumo pull SCRIPT_ID DIR
    fumo push [--project DIR]
    fumo watch [--project DIR] [--debounce SECONDS]
    fumo generate [--id SCRIPT_ID] [--project DIR]
"""

from __future__ import annotations

import argparse
import logging
import logging.handlers
import signal
import sys
import threading
from pathlib import Path

from fumosync import __app_name__, __version__
from fumosync.client import Client
from fumosync.config import Settings, get_log_path
from fumosync.errors import FumoError, InvalidSecretsError
from fumosync.project import init, pull, push, read_configuration
from fumosync.session import load_secrets, prompt_for_session, save_session
from fumosync.watcher import watch

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _setup_logging(settings: Settings, verbose: bool = False) -> None:
    """Configure rotating file log and stderr handler."""
    level_name = "DEBUG" if verbose else settings.log_level
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    fmt = logging.Formatter(_LOG_FORMAT)

    # Rotating file handler
    try:
        fh = logging.handlers.RotatingFileHandler(
            str(get_log_path()),
            maxBytes=settings.max_log_size_mb * 1024 * 1024,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
    except OSError as exc:
        print(f"warning: file logging disabled ({exc})", file=sys.stderr)
    else:
        fh.setLevel(level)
        fh.setFormatter(fmt)
        root_logger.addHandler(fh)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)


def _make_client(settings: Settings) -> Client:
    return Client(load_secrets(), base_url=settings.base_url, timeout=settings.request_timeout)


def _project_dir(args: argparse.Namespace) -> Path:
    return Path(args.project) if args.project else Path.cwd()


# ---- commands ----


def cmd_login(args: argparse.Namespace, settings: Settings) -> int:
    session = args.session or prompt_for_session(settings.base_url, open_browser=args.open_browser)
    if not session.strip():
        raise InvalidSecretsError("no session given")
    save_session(session)
    print("Session saved.")
    return 0


def cmd_view(args: argparse.Namespace, settings: Settings) -> int:
    with _make_client(settings) as client:
        details = client.get_details()
    print(f"{details.name} - {details.roblox_user} - {details.id}")
    print(f"{details.num_sessions} currently logged in sessions")
    return 0


def cmd_init(args: argparse.Namespace, settings: Settings) -> int:
    init(Path(args.project_directory))
    print(f"Initialized project in {args.project_directory}")
    return 0


def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    with _make_client(settings) as client:
        scripts = client.list_scripts()
    for script in scripts:
        star = "★" if script.is_favorite else "☆"
        lock = "unlocked" if script.editable else "locked"
        print(f"{star} {script.name} ({script.id}) by {script.creator} [{lock}]")
    return 0


def cmd_pull(args: argparse.Namespace, settings: Settings) -> int:
    with _make_client(settings) as client:
        pull(client, args.script_id, Path(args.project_directory))
    print(f"Pulled {args.script_id} into {args.project_directory}")
    return 0


def cmd_push(args: argparse.Namespace, settings: Settings) -> int:
    with _make_client(settings) as client:
        push(client, _project_dir(args))
    return 0


def cmd_watch(args: argparse.Namespace, settings: Settings) -> int:
    if args.debounce is not None:
        settings.debounce_seconds = args.debounce
    stop = threading.Event()

    def _handler(sig, frame):
        logger.info("Received signal %d, shutting down…", sig)
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)

    with _make_client(settings) as client:
        watch(_project_dir(args), client, debounce_seconds=settings.debounce_seconds, stop_event=stop)
    return 0


def cmd_generate(args: argparse.Namespace, settings: Settings) -> int:
    script_id = args.id or read_configuration(_project_dir(args)).script_id
    with _make_client(settings) as client:
        print(client.generate_key(script_id))
    return 0


_COMMANDS = {
    "login": cmd_login,
    "view": cmd_view,
    "init": cmd_init,
    "list": cmd_list,
    "pull": cmd_pull,
    "push": cmd_push,
    "watch": cmd_watch,
    "generate": cmd_generate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fumo",
        description="fumo is a cli tool built for fumosclub <https://fumosclubv1.vercel.app>",
    )
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    login_p = subparsers.add_parser(
        "login", help="Login to fumosclub (overwrites existing secrets)"
    )
    login_p.add_argument("--session", metavar="VALUE",
                         help="Value of the 'session' cookie (prompted for when omitted)")
    login_p.add_argument("--open-browser", action="store_true",
                         help="Open fumosclub in the default browser before prompting")

    subparsers.add_parser("view", help="Show information about the logged in account")

    init_p = subparsers.add_parser("init", help="Initialize a project in the specified directory")
    init_p.add_argument("project_directory", metavar="DIR")

    subparsers.add_parser("list", help="List all scripts under the logged in account")

    pull_p = subparsers.add_parser(
        "pull", help="Pull down a script via the fumosclub API (the script must be editable)"
    )
    pull_p.add_argument("script_id", metavar="SCRIPT_ID")
    pull_p.add_argument("project_directory", metavar="DIR")

    push_p = subparsers.add_parser(
        "push", help="Push a project to fumosclub; data is sourced from DIR/fumosync.json"
    )
    push_p.add_argument("--project", metavar="DIR",
                        help="Project directory (default: current directory)")

    watch_p = subparsers.add_parser(
        "watch", help="Watch a project for changes and push them to fumosclub"
    )
    watch_p.add_argument("--project", metavar="DIR",
                         help="Project directory (default: current directory)")
    watch_p.add_argument("--debounce", type=float, metavar="SECONDS",
                         help="Seconds a change must be quiet before it is sent")

    generate_p = subparsers.add_parser(
        "generate", help="Generate a key for a script under the logged in account"
    )
    generate_p.add_argument("--id", metavar="SCRIPT_ID",
                            help="Id of the script (default: the id in fumosync.json)")
    generate_p.add_argument("--project", metavar="DIR",
                            help="Project directory (default: current directory)")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    settings = Settings()
    _setup_logging(settings, verbose=args.verbose)
    logger.warning("fumo is alpha software; please report bugs.")

    try:
        return _COMMANDS[args.command](args, settings)
    except FumoError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 130

#!/usr/bin/env python3
"""
Dropbox Babel CLI

Links an account and makes calls from a terminal, using the configured
token backend.

Usage:
    dropbox-babel auth-url
    dropbox-babel handle-redirect 'db-<app key>://2/token#access_token=...&uid=...'
    dropbox-babel tokens
    dropbox-babel whoami [--uid UID]
    dropbox-babel unlink
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from dropbox_babel.auth.oauth2 import AuthFailure, AuthSuccess, DropboxAuthManager
from dropbox_babel.auth.platform import AppManifest
from dropbox_babel.auth.token_store import create_token_store
from dropbox_babel.client.dropbox import DropboxClient
from dropbox_babel.config import Settings, get_settings
from dropbox_babel.kernel.errors import BabelError, ConfigurationError
from dropbox_babel.logging_config import configure_logging

logger = structlog.get_logger()


def _build_manager(settings: Settings) -> DropboxAuthManager:
    if not settings.app_key:
        raise ConfigurationError(
            message="Set DROPBOX_APP_KEY to use the CLI",
            code="config.missing_app_key",
        )
    return DropboxAuthManager(
        settings.app_key,
        host=settings.auth_host,
        token_store=create_token_store(settings),
        manifest=AppManifest.for_app_key(settings.app_key),
    )


def cmd_auth_url(args: argparse.Namespace, settings: Settings) -> int:
    print(_build_manager(settings).auth_url())
    return 0


def cmd_handle_redirect(args: argparse.Namespace, settings: Settings) -> int:
    result = _build_manager(settings).handle_redirect_url(args.url)
    match result:
        case None:
            print("Not a Dropbox link redirect for this app", file=sys.stderr)
            return 2
        case AuthSuccess(token=token):
            print(f"Linked uid {token.uid}")
            return 0
        case AuthFailure(error=error, message=message):
            print(f"Link failed ({error.value}): {message}", file=sys.stderr)
            return 1
    return 1


def cmd_tokens(args: argparse.Namespace, settings: Settings) -> int:
    for uid in sorted(_build_manager(settings).get_all_access_tokens()):
        print(uid)
    return 0


async def _whoami(settings: Settings, uid: str | None) -> int:
    manager = _build_manager(settings)
    token = manager.get_access_token(uid) if uid else manager.get_first_access_token()
    if token is None:
        print("No linked account", file=sys.stderr)
        return 1

    async with DropboxClient(token, settings=settings) as client:
        result = await client.users.get_current_account()

    if not result.ok:
        print(f"Call failed: {result.error}", file=sys.stderr)
        return 1

    account = result.value
    print(f"{account.name.display_name} <{account.email}> ({account.account_id})")
    return 0


def cmd_whoami(args: argparse.Namespace, settings: Settings) -> int:
    return asyncio.run(_whoami(settings, args.uid))


def cmd_unlink(args: argparse.Namespace, settings: Settings) -> int:
    _build_manager(settings).clear_stored_access_tokens()
    print("Unlinked")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dropbox-babel", description="Dropbox Babel SDK CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("auth-url", help="Print the consent page URL").set_defaults(func=cmd_auth_url)

    redirect = subparsers.add_parser("handle-redirect", help="Finish linking from a redirect URL")
    redirect.add_argument("url")
    redirect.set_defaults(func=cmd_handle_redirect)

    subparsers.add_parser("tokens", help="List linked user ids").set_defaults(func=cmd_tokens)

    whoami = subparsers.add_parser("whoami", help="Show the linked account")
    whoami.add_argument("--uid", default=None)
    whoami.set_defaults(func=cmd_whoami)

    subparsers.add_parser("unlink", help="Remove every stored token").set_defaults(func=cmd_unlink)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    try:
        return args.func(args, settings)
    except BabelError as e:
        logger.error("Command failed", code=e.code, error=e.message)
        print(e.message, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

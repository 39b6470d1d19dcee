"""Validate the bridge's ``.env`` and detect drift between deployments.

``check`` loads ``AppSettings`` from the file and, given ``--account-id``,
renders the tenant endpoint URLs. ``record`` stores a SHA256 baseline of the
file and ``verify`` compares against it::

    python -m scripts.check_env check --env-file .env --account-id 1234567
    python -m scripts.check_env record --env-file .env --hash-file .env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import re
import sys
from pathlib import Path

import httpx
from pydantic import ValidationError

from mcp_bridge.core.config import AppSettings, _load_env_file
from mcp_bridge.models.oauth import ACCOUNT_ID_PATTERN

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _load_settings(env_file: Path) -> AppSettings:
    if not env_file.exists():
        raise FileNotFoundError(f"Environment file {env_file} does not exist.")
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _validation_lines(exc: ValidationError) -> list[str]:
    return [
        f"  - {'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
        for error in exc.errors()
    ]


def _tenant_endpoints(settings: AppSettings, account_id: str) -> dict[str, str]:
    """Render every endpoint template for ``account_id``; raises ``ValueError``."""
    if not re.match(ACCOUNT_ID_PATTERN, account_id):
        raise ValueError(f"Account id {account_id!r} is not a hostname label.")
    provider = settings.provider
    endpoints = {
        "authorize": provider.authorize_url_template,
        "token": provider.token_url_template,
        "mcp": provider.mcp_url_template,
    }
    rendered = {}
    for name, template in endpoints.items():
        url = template.format(account_id=account_id)
        try:
            httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise ValueError(f"{name} endpoint {url!r} is not a valid URL: {exc}") from exc
        rendered[name] = url
    return rendered


def _checksum(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _verify(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(f"No baseline at {hash_file}; run 'record' first.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _checksum(env_file)
    if expected != actual:
        print(
            f"Environment checksum mismatch: expected {expected}, got {actual}.",
            file=sys.stderr,
        )
        return EXIT_CHECKSUM_ERROR
    print("Environment checksum OK.")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate bridge settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    for command, help_text in (
        ("check", "Validate settings only."),
        ("record", "Validate settings and write the checksum baseline."),
        ("verify", "Validate settings and compare with the checksum baseline."),
    ):
        subparser = subparsers.add_parser(command, help=help_text)
        subparser.add_argument("--env-file", default=".env", type=Path)
        if command == "check":
            subparser.add_argument(
                "--account-id", help="Render the endpoint URLs for this tenant."
            )
        else:
            subparser.add_argument("--hash-file", required=True, type=Path)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    try:
        settings = _load_settings(env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print("Settings validation failed:", file=sys.stderr)
        print("\n".join(_validation_lines(exc)), file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    print(f"Environment:   {settings.environment}")
    print(f"Database:      {settings.database_path}")
    print(f"Redirect URI:  {settings.provider.redirect_uri}")

    if args.command == "check":
        if args.account_id:
            try:
                endpoints = _tenant_endpoints(settings, args.account_id)
            except ValueError as exc:
                print(str(exc), file=sys.stderr)
                return EXIT_VALIDATION_ERROR
            for name, url in endpoints.items():
                print(f"{name.capitalize() + ':':<14} {url}")
        return EXIT_OK
    if args.command == "record":
        checksum = _checksum(env_file)
        args.hash_file.write_text(f"{checksum}\n", encoding="utf-8")
        print(f"Recorded checksum {checksum} to {args.hash_file}")
        return EXIT_OK
    return _verify(env_file, args.hash_file)


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())

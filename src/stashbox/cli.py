"""
stashbox CLI - command-line front end for a password-gated file store.

Provides subcommands:
- stashbox ls: List stored files
- stashbox upload FILE...: Upload files one after another
- stashbox download NAME: Print (or save) a short-lived download link
- stashbox rm NAME: Delete a file after confirmation
- stashbox login: Check the password
- stashbox version: Display version information

Every invocation is its own session: the password is asked for (or read from
STASHBOX_PASSWORD) each time and nothing is written to disk.
"""

import argparse
import asyncio
import getpass
import sys
from pathlib import Path

import aiofiles
import aiohttp
from loguru import logger

from stashbox.config import (
    DEFAULT_API_URL,
    DEFAULT_S3_PREFIX,
    DEFAULT_S3_REGION,
    Settings,
)
from stashbox.models import DownloadGrant, UploadItem
from stashbox.orchestrator import Orchestrator
from stashbox.presenter import ConsolePresenter
from stashbox.session import SessionStore
from stashbox.storage.backend import StorageBackend


def get_version() -> str:
    """Get the package version."""
    try:
        from importlib.metadata import version

        return version("stashbox")
    except Exception:
        return "0.0.1"  # Fallback version


def cmd_version(args):
    """Handle the 'version' subcommand."""
    print(f"stashbox version {get_version()}")
    print(f"Python {sys.version}")


def create_storage_backend(settings: Settings) -> StorageBackend:
    if settings.storage == "http":
        from stashbox.storage.http import HttpApiStorage

        return HttpApiStorage(settings.api_url, timeout=settings.timeout)

    if settings.storage == "s3":
        from stashbox.storage.s3 import S3Storage

        if not settings.s3_bucket:
            print("Error: --s3-bucket or STASHBOX_S3_BUCKET is required for S3 storage")
            sys.exit(1)
        if not settings.password_sha256:
            print(
                "Error: --password-sha256 or STASHBOX_PASSWORD_SHA256 "
                "is required for S3 storage"
            )
            sys.exit(1)

        return S3Storage(
            bucket=settings.s3_bucket,
            password_sha256=settings.password_sha256,
            region=settings.s3_region,
            prefix=settings.s3_prefix,
            endpoint_url=settings.s3_endpoint,
        )

    print(f"Error: Unknown storage type: {settings.storage}")
    sys.exit(1)


def _build(args) -> tuple[Orchestrator, Settings]:
    try:
        settings = Settings.from_args(args)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    presenter = ConsolePresenter(assume_yes=getattr(args, "yes", False))
    orchestrator = Orchestrator(
        create_storage_backend(settings),
        SessionStore(),
        presenter,
        timeout=settings.timeout,
    )
    return orchestrator, settings


async def _login(orchestrator: Orchestrator, settings: Settings) -> bool:
    password = settings.password or getpass.getpass("Password: ")
    result = await orchestrator.login(password)
    return result.ok


async def save_grant(grant: DownloadGrant, destination: Path) -> int:
    """Fetch a granted URL and write it to ``destination``; returns bytes written."""
    written = 0
    async with aiohttp.ClientSession() as session:
        async with session.get(grant.url) as resp:
            resp.raise_for_status()
            async with aiofiles.open(destination, "wb") as f:
                async for chunk in resp.content.iter_chunked(64 * 1024):
                    await f.write(chunk)
                    written += len(chunk)
    return written


async def _run_login(args) -> int:
    orchestrator, settings = _build(args)
    return 0 if await _login(orchestrator, settings) else 1


async def _run_upload(args) -> int:
    paths = [Path(p).expanduser() for p in args.files]
    missing = [p for p in paths if not p.is_file()]
    if missing:
        for path in missing:
            print(f"Error: not a file: {path}")
        return 1

    orchestrator, settings = _build(args)
    if not await _login(orchestrator, settings):
        return 1
    result = await orchestrator.upload([UploadItem.from_path(p) for p in paths])
    return 1 if result.failed else 0


async def _run_download(args) -> int:
    orchestrator, settings = _build(args)
    if not await _login(orchestrator, settings):
        return 1
    result = await orchestrator.download(args.name)
    if not result.ok:
        return 1
    if args.save:
        destination = Path(args.save).expanduser()
        if destination.is_dir():
            destination = destination / Path(args.name).name
        try:
            written = await save_grant(result.grant, destination)
        except aiohttp.ClientError as e:
            logger.error(f"Fetching {args.name} failed: {e}")
            print(f"Error: download failed: {e}")
            return 1
        print(f"Saved {written} bytes to {destination}")
    return 0


async def _run_delete(args) -> int:
    orchestrator, settings = _build(args)
    if not await _login(orchestrator, settings):
        return 1
    result = await orchestrator.delete(args.name)
    return 0 if result.ok else 1


def _dispatch(runner):
    def handler(args):
        sys.exit(asyncio.run(runner(args)))

    return handler


def _add_storage_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--storage",
        type=str,
        default=None,
        choices=["http", "s3"],
        help="Storage backend type (default: http, or STASHBOX_STORAGE)",
    )
    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help=f"Base URL of the HTTP API (default: {DEFAULT_API_URL})",
    )
    parser.add_argument(
        "--s3-bucket",
        type=str,
        default=None,
        help="S3 bucket name (required when --storage=s3)",
    )
    parser.add_argument(
        "--s3-region",
        type=str,
        default=None,
        help=f"S3 region (default: {DEFAULT_S3_REGION})",
    )
    parser.add_argument(
        "--s3-prefix",
        type=str,
        default=None,
        help=f"S3 key prefix for stored files (default: {DEFAULT_S3_PREFIX})",
    )
    parser.add_argument(
        "--s3-endpoint",
        type=str,
        default=None,
        help="S3 endpoint URL (for S3-compatible services like LocalStack or MinIO)",
    )
    parser.add_argument(
        "--password-sha256",
        type=str,
        default=None,
        help="SHA-256 hex digest of the password (required when --storage=s3)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Give up on a backend call after this many seconds (default: wait)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stashbox",
        description="stashbox - password-gated personal file store client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
    )

    ls_parser = subparsers.add_parser(
        "ls",
        help="List stored files",
        description="List stored files, newest first",
    )
    _add_storage_arguments(ls_parser)
    ls_parser.set_defaults(func=_dispatch(_run_login))

    upload_parser = subparsers.add_parser(
        "upload",
        help="Upload one or more files",
        description="Upload files one at a time, renaming any that would overwrite",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stashbox upload report.pdf                     # HTTP API at the default URL
  stashbox upload a.txt b.txt --api-url https://files.example.com
  stashbox upload photo.jpg --storage=s3 --s3-bucket=mybucket --password-sha256=...
        """,
    )
    upload_parser.add_argument("files", nargs="+", help="Files to upload")
    _add_storage_arguments(upload_parser)
    upload_parser.set_defaults(func=_dispatch(_run_upload))

    download_parser = subparsers.add_parser(
        "download",
        help="Get a download link for a file",
        description="Request a short-lived download link for a stored file",
    )
    download_parser.add_argument("name", help="Stored file name")
    download_parser.add_argument(
        "--save",
        type=str,
        default=None,
        help="Fetch the file through the link and write it to this path",
    )
    _add_storage_arguments(download_parser)
    download_parser.set_defaults(func=_dispatch(_run_download))

    rm_parser = subparsers.add_parser(
        "rm",
        help="Delete a stored file",
        description="Delete a stored file after confirmation",
    )
    rm_parser.add_argument("name", help="Stored file name")
    rm_parser.add_argument(
        "-y", "--yes", action="store_true", help="Do not ask for confirmation"
    )
    _add_storage_arguments(rm_parser)
    rm_parser.set_defaults(func=_dispatch(_run_delete))

    login_parser = subparsers.add_parser(
        "login",
        help="Check the password",
        description="Authenticate once and show the current files",
    )
    _add_storage_arguments(login_parser)
    login_parser.set_defaults(func=_dispatch(_run_login))

    version_parser = subparsers.add_parser(
        "version",
        help="Display version information",
        description="Display stashbox version and Python version",
    )
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional
from uuid import uuid4

from rich.console import Console

from .core.config import get_settings
from .core.db import create_engine, create_session_factory
from .core.storage import get_storage
from .db.models import ThumbnailType
from .db.repositories import ChannelRepository
from .media.thumbnails import ThumbnailError, derive_thumbnail

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="Livecast developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate OpenCV and storage availability")

    subparsers = parser.add_subparsers(dest="command")

    channel_parser = subparsers.add_parser("channel-create", help="Create a video channel owned by a user")
    channel_parser.add_argument("--name", required=True, help="Display name of the channel")
    channel_parser.add_argument("--owner", required=True, help="User id (JWT subject) owning the channel")
    channel_parser.set_defaults(func=_cmd_channel_create)

    thumb_parser = subparsers.add_parser("thumbnail", help="Derive a miniature or preview from an image")
    thumb_parser.add_argument("--file", required=True, help="Path to the source image")
    thumb_parser.add_argument("--uuid", default=None, help="Video UUID used to name the artifact")
    thumb_parser.add_argument(
        "--type",
        choices=["miniature", "preview"],
        default="miniature",
        help="Artifact type, which selects the target size.",
    )
    thumb_parser.set_defaults(func=_cmd_thumbnail)
    return parser


def _cmd_channel_create(args: argparse.Namespace) -> None:
    """Create a channel and print its id.

    Args:
        args: The command-line arguments.
    """
    settings = get_settings()
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    async def _runner() -> dict:
        try:
            async with session_factory() as session:
                async with session.begin():
                    channel = await ChannelRepository().create(session, name=args.name, owner_id=args.owner)
                return {"id": channel.id, "name": channel.name, "owner_id": channel.owner_id}
        finally:
            await engine.dispose()

    console.print_json(data=asyncio.run(_runner()))


def _cmd_thumbnail(args: argparse.Namespace) -> None:
    """Derive an image artifact into storage and print its descriptor.

    Args:
        args: The command-line arguments.
    """
    source = Path(args.file).expanduser().resolve()
    if not source.exists():
        console.print(f"[red]File not found: {source}[/]")
        sys.exit(2)

    settings = get_settings()
    thumbnail_type = ThumbnailType[args.type.upper()]
    if thumbnail_type is ThumbnailType.MINIATURE:
        size = (settings.thumbnail_width, settings.thumbnail_height)
    else:
        size = (settings.preview_width, settings.preview_height)

    try:
        artifact = derive_thumbnail(
            source,
            args.uuid or str(uuid4()),
            thumbnail_type,
            size,
            get_storage(settings),
            keep_original=True,
        )
    except ThumbnailError as exc:
        console.print(f"[red]Thumbnail derivation failed:[/] {exc}")
        sys.exit(3)

    payload = asdict(artifact)
    payload["type"] = artifact.type.name.lower()
    console.print_json(data=payload)


def _run_environment_check() -> None:
    """Check that the image toolchain and storage root are usable."""
    results = {}
    try:
        import cv2  # type: ignore

        results[f"OpenCV {cv2.__version__}"] = True
    except ImportError:
        results["OpenCV"] = False

    settings = get_settings()
    results[f"storage ({settings.storage_root})"] = get_storage(settings).is_writable()

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Consult pyproject.toml.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()

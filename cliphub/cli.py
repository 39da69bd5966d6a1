from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn
from rich.table import Table

from .core.auth import issue_token
from .core.config import Settings, get_settings
from .core.db import create_engine, create_schema, create_session_factory
from .core.errors import ClipHubError
from .core.jobs import build_worker_dispatch
from .core.logging import configure_logging, level_from_name
from .core.storage import UploadProgress, get_object_store
from .ingest.source_resolver import FileSubmission, SourceResolver, UrlSubmission
from .services.clip_repository import ClipRepository
from .services.download_service import DownloadRetriever, suggested_filename
from .services.ingest_service import IngestionCoordinator
from .services.realtime import ChangeFeed

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level), json=False)
    try:
        asyncio.run(args.func(args, settings))
    except ClipHubError as exc:
        console.print(f"[red]{exc.code}:[/] {exc}")
        sys.exit(2)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="ClipHub developer CLI")
    subparsers = parser.add_subparsers(dest="command")

    submit_parser = subparsers.add_parser("submit", help="Upload a video file or import a platform link")
    submit_parser.add_argument("--owner", required=True, help="User id that will own the clip")
    source = submit_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="Path to a local video file")
    source.add_argument("--url", help="Link to a video on a supported platform")
    submit_parser.set_defaults(func=_cmd_submit)

    list_parser = subparsers.add_parser("list", help="List an owner's clips, newest first")
    list_parser.add_argument("--owner", required=True)
    list_parser.set_defaults(func=_cmd_list)

    download_parser = subparsers.add_parser("download", help="Save a completed clip to disk")
    download_parser.add_argument("--owner", required=True)
    download_parser.add_argument("--clip-id", required=True)
    download_parser.add_argument("--out", default=".", help="Target directory (default: current directory)")
    download_parser.set_defaults(func=_cmd_download)

    token_parser = subparsers.add_parser("token", help="Print a signed session token for calling the API")
    token_parser.add_argument("--user", required=True)
    token_parser.add_argument("--scope", action="append", default=[], help="Grant a scope, e.g. worker (repeatable)")
    token_parser.set_defaults(func=_cmd_token)
    return parser


class _Runtime:
    """Engine, session and collaborators for one CLI command."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = create_engine(settings)
        self.session_factory = create_session_factory(engine=self.engine)
        self.store = get_object_store(settings)
        self.feed = ChangeFeed(max_pending=settings.realtime_queue_size)

    async def __aenter__(self) -> "_Runtime":
        await create_schema(self.engine)
        self.session = self.session_factory()
        self.repository = ClipRepository(self.session, self.feed)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.session.close()
        await self.engine.dispose()


async def _cmd_submit(args: argparse.Namespace, settings: Settings) -> None:
    """Run one ingestion and print the new clip id.

    Args:
        args: The command-line arguments.
        settings: Runtime configuration.
    """
    resolver = SourceResolver(
        max_size_bytes=settings.max_upload_size_bytes,
        allowed_extensions=settings.allowed_video_extensions,
        supported_hosts=settings.supported_platform_hosts,
    )
    async with _Runtime(settings) as runtime:
        coordinator = IngestionCoordinator(resolver, runtime.store, runtime.repository, build_worker_dispatch(settings))
        if args.url:
            clip_id = await coordinator.ingest(args.owner, UrlSubmission(url=args.url))
        else:
            clip_id = await _submit_file(coordinator, args.owner, Path(args.file).expanduser())
    console.print(f"[green]Clip created:[/] {clip_id}")


async def _submit_file(coordinator: IngestionCoordinator, owner: str, path: Path) -> str:
    if not path.is_file():
        console.print(f"[red]File not found: {path}[/]")
        sys.exit(2)

    size = path.stat().st_size
    with path.open("rb") as handle, Progress(
        TextColumn("[bold]{task.description}"), BarColumn(), DownloadColumn(), console=console
    ) as bar:
        task = bar.add_task(path.name, total=size)
        progress = UploadProgress(total_bytes=size)
        progress.subscribe(lambda p: bar.update(task, completed=p.transferred_bytes))
        submission = FileSubmission(filename=path.name, size_bytes=size, stream=handle)
        return await coordinator.ingest(owner, submission, progress=progress)


async def _cmd_list(args: argparse.Namespace, settings: Settings) -> None:
    async with _Runtime(settings) as runtime:
        clips = await runtime.repository.list_by_owner(args.owner)

    table = Table(title=f"Clips for {args.owner}")
    for column in ("id", "title", "status", "source", "created"):
        table.add_column(column)
    for clip in clips:
        table.add_row(
            clip.id,
            clip.title,
            clip.status.value,
            clip.source_kind.value,
            clip.created_at.isoformat(timespec="seconds"),
        )
    console.print(table)


async def _cmd_download(args: argparse.Namespace, settings: Settings) -> None:
    async with _Runtime(settings) as runtime:
        clip = await runtime.repository.get(args.owner, args.clip_id)
        if clip is None:
            console.print(f"[red]No clip {args.clip_id} for {args.owner}[/]")
            sys.exit(2)

        retriever = DownloadRetriever(runtime.store, timeout_s=settings.download_timeout_s)
        stream = retriever.download(clip)
        target_dir = Path(args.out).expanduser()
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / suggested_filename(clip)
        partial = target.with_name(f"{target.name}.part")
        written = 0
        try:
            with partial.open("wb") as handle:
                async for chunk in stream:
                    handle.write(chunk)
                    written += len(chunk)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        partial.replace(target)
    console.print(f"[green]Saved {written} bytes to {target}[/]")


async def _cmd_token(args: argparse.Namespace, settings: Settings) -> None:
    console.print(issue_token(args.user, settings, scopes=args.scope), soft_wrap=True)


if __name__ == "__main__":
    main()

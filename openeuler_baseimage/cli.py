"""Thin CLI wrapper for openeuler_baseimage.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules; domain errors are turned
into exit codes here and nowhere else.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Annotated

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from openeuler_baseimage import __version__
from openeuler_baseimage.config import Settings, get_settings, print_settings_json
from openeuler_baseimage.engine.build import (
    BuildInvocationError,
    build_image,
    list_images,
    pull_image,
)
from openeuler_baseimage.reconcile import reconcile
from openeuler_baseimage.rootfs.fetch import (
    DownloadError,
    ProgressCallback,
    VerificationError,
)
from openeuler_baseimage.rootfs.layout import PreparedArchive
from openeuler_baseimage.rootfs.repack import PlatformError, RepackError
from openeuler_baseimage.rootfs.service import MaterializeError, materialize
from openeuler_baseimage.sources.errors import SourceError
from openeuler_baseimage.sources.mirror import fetch_mirror_versions
from openeuler_baseimage.sources.registry import fetch_registry_tags
from openeuler_baseimage.types import Architecture, BuildRequest

app = typer.Typer(
    name="oe-baseimage",
    help="openEuler base image preparation - sync releases, repack rootfs, build images",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

USAGE_MESSAGE = (
    "bad num of arguments:\n\t1. = dir with image content\n\t2. = image name"
)

PREPARE_ERRORS = (
    SourceError,
    DownloadError,
    VerificationError,
    PlatformError,
    RepackError,
    MaterializeError,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"openeuler-baseimage version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through Rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override the configured log level"),
    ] = None,
) -> None:
    """openEuler base image preparation - sync releases, repack rootfs, build images."""
    configure_logging((log_level or get_settings().log_level).upper())


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), soft_wrap=True)
        return

    template = settings.resolved_dockerfile_template()
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Work directory:      {settings.work_dir}")
    console.print(f"  Distro root:         {settings.distro_root}")
    console.print(f"  Dockerfile template: {template}")
    console.print()
    console.print("[bold]Sources:[/bold]")
    console.print(f"  Mirror URL:          {settings.mirror_url}")
    console.print(f"  Registry API:        {settings.registry_api_url}")
    console.print(f"  Repository:          {settings.registry_repository}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    archs = ", ".join(a.value for a in settings.architectures)
    console.print(f"  Architectures:       {archs}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  Max downloads:       {settings.max_concurrent_downloads}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Request timeout:     {settings.request_timeout}")
    console.print(f"  Download timeout:    {settings.download_timeout}")
    console.print(f"  Build timeout:       {settings.build_timeout}")


def _fetch_versions(
    client: httpx.Client, settings: Settings
) -> tuple[list[str], list[str], list[str]]:
    """Return (upstream, published, missing) version lists."""
    upstream = fetch_mirror_versions(
        client, settings.mirror_url, timeout=settings.request_timeout
    )
    published = fetch_registry_tags(
        client,
        settings.registry_repository,
        settings.registry_api_url,
        timeout=settings.request_timeout,
    )
    return upstream, published, reconcile(upstream, published)


@app.command()
def versions(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Compare releases on the mirror with tags in the registry."""
    settings = get_settings()
    try:
        with httpx.Client(
            headers={"User-Agent": settings.user_agent}, follow_redirects=True
        ) as client:
            upstream, published, missing = _fetch_versions(client, settings)
    except SourceError as e:
        console.print(f"[red]Failed to fetch versions: {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        output = {"upstream": upstream, "published": published, "missing": missing}
        console.print(json.dumps(output, indent=2), soft_wrap=True)
        return

    console.print(f"[bold]Upstream ({len(upstream)}):[/bold] {', '.join(upstream)}")
    console.print(f"[bold]Published ({len(published)}):[/bold] {', '.join(published)}")
    if missing:
        console.print(f"[yellow]Missing ({len(missing)}):[/yellow] {', '.join(missing)}")
    else:
        console.print("[green]Registry is up to date[/green]")


def _progress_reporter(progress: Progress) -> ProgressCallback:
    """Create a download callback that drives one Rich task per file."""
    tasks: dict[Path, int] = {}
    lock = threading.Lock()

    def report(path: Path, current: int, total: int | None) -> None:
        with lock:
            task_id = tasks.get(path)
            if task_id is None:
                task_id = progress.add_task(path.name, total=total)
                tasks[path] = task_id
        progress.update(task_id, completed=current)

    return report


def _print_prepared(prepared: list[PreparedArchive]) -> None:
    if not prepared:
        console.print("[green]Nothing to prepare[/green]")
        return
    console.print(f"[bold]Prepared {len(prepared)} archive(s):[/bold]")
    for archive in prepared:
        actions = []
        if archive.downloaded:
            actions.append("downloaded " + ", ".join(archive.downloaded))
        if archive.repacked:
            actions.append("repacked")
        if not archive.is_complete:
            actions.append("incomplete")
        summary = "; ".join(actions) if actions else "up to date"
        color = "green" if archive.is_complete else "yellow"
        console.print(
            f"  [{color}]{archive.version}/{archive.architecture.value}[/{color}]"
            f" ({summary})"
        )
        console.print(f"    {archive.directory}")


def _run_prepare(
    settings: Settings,
    architectures: list[Architecture] | None,
    only_versions: list[str] | None,
) -> list[PreparedArchive]:
    """Reconcile versions (unless given) and materialize them."""
    archs = architectures or settings.architectures
    with httpx.Client(
        headers={"User-Agent": settings.user_agent}, follow_redirects=True
    ) as client:
        if only_versions:
            missing = list(only_versions)
        else:
            _, _, missing = _fetch_versions(client, settings)

        if not missing:
            return []

        console.print(
            f"[blue]Preparing {', '.join(missing)} for "
            f"{', '.join(Architecture(a).value for a in archs)}...[/blue]"
        )
        with Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=err_console,
            transient=True,
        ) as progress:
            return materialize(
                missing,
                archs,
                work_dir=settings.work_dir,
                client=client,
                settings=settings,
                on_progress=_progress_reporter(progress),
            )


ArchOption = Annotated[
    list[Architecture] | None,
    typer.Option("--arch", "-a", help="Architecture to prepare (can be repeated)"),
]
VersionOption = Annotated[
    list[str] | None,
    typer.Option(
        "--version", "-v", help="Prepare this version instead of reconciling"
    ),
]
WorkDirOption = Annotated[
    Path | None,
    typer.Option("--work-dir", "-w", help="Root directory for prepared archives"),
]


def _build_request(directory: Path, image_name: str) -> BuildRequest:
    try:
        return BuildRequest(directory, image_name)
    except ValueError as e:
        console.print(f"[red]Invalid build request: {e}[/red]")
        raise typer.Exit(code=2) from None


def _settings_for(work_dir: Path | None) -> Settings:
    settings = get_settings()
    if work_dir is not None:
        settings = settings.model_copy(update={"work_dir": work_dir})
    return settings


@app.command()
def prepare(
    architectures: ArchOption = None,
    only_versions: VersionOption = None,
    work_dir: WorkDirOption = None,
) -> None:
    """Download, verify and repack every release missing from the registry."""
    settings = _settings_for(work_dir)
    try:
        prepared = _run_prepare(settings, architectures, only_versions)
    except PREPARE_ERRORS as e:
        console.print(f"[red]Preparation failed: {e}[/red]")
        raise typer.Exit(code=1) from None
    _print_prepared(prepared)


def _run_build(request: BuildRequest, timeout: int) -> None:
    console.print(
        f"[blue]Building {request.image_name} from {request.directory}...[/blue]"
    )
    try:
        messages = build_image(request.directory, request.image_name, timeout=timeout)
    except BuildInvocationError as e:
        for line in e.messages:
            console.print(line, markup=False, highlight=False)
        console.print(f"[red]Build failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    for line in messages:
        console.print(line, markup=False, highlight=False)
    console.print(f"[green]✓ Built {request.image_name}[/green]")


@app.command()
def build(
    directory: Annotated[Path, typer.Argument(help="Directory with image content")],
    image_name: Annotated[str, typer.Argument(help="Image name")],
) -> None:
    """Build an image from a prepared directory."""
    request = _build_request(directory, image_name)
    _run_build(request, get_settings().build_timeout)


@app.command()
def run(
    directory: Annotated[
        Path | None, typer.Argument(help="Directory with image content")
    ] = None,
    image_name: Annotated[str | None, typer.Argument(help="Image name")] = None,
    architectures: ArchOption = None,
    work_dir: WorkDirOption = None,
) -> None:
    """Prepare missing releases, then build DIRECTORY as IMAGE_NAME if given."""
    if (directory is None) != (image_name is None):
        console.print(USAGE_MESSAGE, markup=False, highlight=False)
        raise typer.Exit(code=2)
    request = None
    if directory is not None and image_name is not None:
        request = _build_request(directory, image_name)

    settings = _settings_for(work_dir)
    try:
        prepared = _run_prepare(settings, architectures, None)
    except PREPARE_ERRORS as e:
        console.print(f"[red]Preparation failed: {e}[/red]")
        raise typer.Exit(code=1) from None
    _print_prepared(prepared)

    if request is not None:
        _run_build(request, settings.build_timeout)


@app.command()
def images(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List local images known to the container engine."""
    try:
        tags = list_images()
    except BuildInvocationError as e:
        console.print(f"[red]Failed to list images: {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print(json.dumps(tags, indent=2), soft_wrap=True)
        return
    if not tags:
        console.print("[yellow]No images found[/yellow]")
        return
    for tag in tags:
        console.print(f"  {tag}")


@app.command()
def pull(
    reference: Annotated[str, typer.Argument(help="Image reference to pull")],
) -> None:
    """Pull an image, using the configured registry credentials."""
    settings = get_settings()
    try:
        tags = pull_image(
            reference,
            username=settings.registry_username,
            password=settings.registry_password,
        )
    except BuildInvocationError as e:
        console.print(f"[red]Failed to pull {reference}: {e}[/red]")
        raise typer.Exit(code=1) from None
    console.print(f"[green]✓ Pulled {', '.join(tags) or reference}[/green]")


if __name__ == "__main__":
    app()

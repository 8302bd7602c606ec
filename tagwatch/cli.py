"""CLI entry point for tagwatch."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from tagwatch import TagwatchError
from tagwatch.config import Settings
from tagwatch.models import ImageState, MonitoredImage
from tagwatch.registry.parser import classify
from tagwatch.service import WatchService

logger = logging.getLogger(__name__)


def _echo_update(image: MonitoredImage, state: ImageState) -> None:
    """Console notifier: print one line per newly detected update."""
    if state.latest_available_version and state.tracking_mode.value == "version":
        detail = f"newer version {state.latest_available_version} (tracking {state.tag})"
    else:
        detail = f"new build {state.current_content_id[:19]}"
    click.echo(f"  ↑ {image.name}: update available, {detail}", err=True)


def _status_label(state: ImageState) -> str:
    if state.error:
        return "error"
    if state.never_checked:
        return "unknown"
    if state.has_update:
        return "update available"
    if state.dismissed:
        return "dismissed"
    return "up to date"


@click.group()
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable verbose (DEBUG) logging.",
)
@click.option(
    "-d",
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="TAGWATCH_DATA_DIR",
    default=None,
    help="Directory holding images.yml and state.json (default: ./data).",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, data_dir: Path | None) -> None:
    """tagwatch: container image update detection."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    settings = Settings.from_env()
    if data_dir is not None:
        settings.data_dir = data_dir
    ctx.obj = settings


@main.command()
@click.option(
    "-i",
    "--index",
    type=int,
    default=None,
    help="Check only the monitored image at this index.",
)
@click.option(
    "--pacing",
    type=float,
    default=None,
    help="Seconds to wait between two images (default: 1).",
)
@click.option(
    "--auth",
    "auth",
    multiple=True,
    help="Credentials in registry.domain=user:pass format. Can be repeated.",
)
@click.pass_obj
def check(settings: Settings, index: int | None, pacing: float | None, auth: tuple[str, ...]) -> None:
    """Check monitored images for updates and record the outcome."""
    if pacing is not None:
        settings.pacing = pacing
    settings.auths = list(auth)
    service = WatchService.from_settings(settings, notifier=_echo_update)

    try:
        if index is not None:
            results = [service.check_single(index)]
        else:
            results = service.check_all()
    except TagwatchError as exc:
        raise click.ClickException(str(exc)) from exc

    for result in results:
        if result.failed:
            click.echo(f"  ✗ {result.image}:{result.tag}: {result.error}", err=True)
        elif result.degraded:
            click.echo(f"  ? {result.image}:{result.tag}: registry unreachable", err=True)
        else:
            click.echo(f"  ✓ {result.image}:{result.tag}", err=True)
    click.echo(f"Checked {len(results)} image(s)", err=True)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print state rows as JSON.")
@click.pass_obj
def status(settings: Settings, as_json: bool) -> None:
    """Show the recorded state of every monitored image."""
    service = WatchService.from_settings(settings)
    try:
        states = service.list_states()
    except TagwatchError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps([s.to_dict() for s in states], indent=2, ensure_ascii=False))
        return

    if not states:
        click.echo("No state recorded yet.")
        return
    for state in states:
        line = f"{state.image}:{state.tag}  {_status_label(state)}"
        if state.latest_available_version:
            line += f"  (latest {state.latest_available_version})"
        if state.platform:
            line += f"  {state.platform}"
        if state.status_message:
            line += f"  [{state.status_message}]"
        click.echo(line)


@main.command()
@click.argument("image")
@click.argument("tag")
@click.pass_obj
def dismiss(settings: Settings, image: str, tag: str) -> None:
    """Dismiss the pending update of IMAGE:TAG."""
    service = WatchService.from_settings(settings)
    try:
        service.dismiss_update(image, tag)
    except TagwatchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Update dismissed for {image}:{tag}")


@main.command()
@click.argument("image")
@click.argument("tag")
@click.pass_obj
def reset(settings: Settings, image: str, tag: str) -> None:
    """Mark IMAGE:TAG as up to date."""
    service = WatchService.from_settings(settings)
    try:
        service.reset_state(image, tag)
    except TagwatchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"State reset for {image}:{tag}")


@main.command(name="classify")
@click.argument("image_path")
def classify_command(image_path: str) -> None:
    """Show how IMAGE_PATH is mapped to a registry."""
    ref = classify(image_path)
    click.echo(f"kind:       {ref.kind.value}")
    click.echo(f"registry:   {ref.domain}")
    click.echo(f"repository: {ref.repository}")


@main.command()
def version() -> None:
    """Print the tagwatch version."""
    from importlib.metadata import version as pkg_version

    click.echo(f"tagwatch version {pkg_version('tagwatch')}")


if __name__ == "__main__":
    main()

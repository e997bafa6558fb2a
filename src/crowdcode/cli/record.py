"""crowdcode record command - headless recording of a workspace."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from pathlib import Path

import click
import structlog

from crowdcode.app import create_engine
from crowdcode.config.loader import load_config
from crowdcode.config.models import CrowdCodeConfig
from crowdcode.core.errors import ConfigError
from crowdcode.core.logging import configure_logging
from crowdcode.core.progress import pluralize, status

logger = structlog.get_logger()


async def run_recording(workspace_root: Path, config: CrowdCodeConfig) -> Path | None:
    """Record until SIGINT/SIGTERM or until the engine cancels itself."""
    engine = create_engine(workspace_root, config)
    if not await engine.start():
        raise click.ClickException("Recording did not start (see log for details)")
    status(f"Recording {workspace_root} (Ctrl+C to stop)", style="success")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        while engine.is_recording and not stop_event.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=1.0)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        logger.info("shutdown_signal_received")
        session = engine.session
        path = await engine.stop()
        await engine.wait_for_background(timeout=config.upload.transfer_timeout_sec)

    if path is not None:
        status(
            f"Saved {pluralize(session.chunk_index, 'chunk')}; last: {path.name}",
            style="success",
        )
    else:
        status("Recording ended without a final chunk", style="warning")
    return path


@click.command()
@click.argument(
    "path",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option(
    "--export-path",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for chunk files (default: PATH/.crowdcode/recordings)",
)
@click.pass_context
def record_command(ctx: click.Context, path: Path, export_path: Path | None) -> None:
    """Record filesystem and git activity in a workspace.

    PATH is the workspace root (default: current directory). Runs in
    foreground until interrupted, then writes the final chunk.
    """
    workspace_root = path.resolve()
    overrides: dict[str, object] = {}
    if export_path is not None:
        overrides["persistence"] = {"export_path": str(export_path.resolve())}

    try:
        config = load_config(workspace_root, **overrides)
    except ConfigError as e:
        raise click.ClickException(e.message) from e

    if not (ctx.obj or {}).get("verbose"):
        configure_logging(config=config.logging)

    asyncio.run(run_recording(workspace_root, config))

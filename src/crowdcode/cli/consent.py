"""crowdcode consent commands - data-collection consent."""

from __future__ import annotations

import click

from crowdcode.config.state import YamlStateStore
from crowdcode.core.progress import status
from crowdcode.recording.consent import ConsentManager


def _manager() -> ConsentManager:
    return ConsentManager(YamlStateStore())


@click.group()
def consent_group() -> None:
    """Show or change data-collection consent."""


@consent_group.command("status")
def consent_status() -> None:
    """Print the current consent status."""
    manager = _manager()
    click.echo(manager.status())
    status(manager.status_message())


@consent_group.command("accept")
def consent_accept() -> None:
    """Allow recorded chunks to be uploaded."""
    manager = _manager()
    manager.set_status("accepted")
    status(manager.status_message(), style="success")


@consent_group.command("decline")
def consent_decline() -> None:
    """Keep recordings local only."""
    manager = _manager()
    manager.set_status("declined")
    status(manager.status_message(), style="warning")

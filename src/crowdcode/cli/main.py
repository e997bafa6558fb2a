"""crowd-code CLI - crowdcode command."""

import click

from crowdcode.cli.consent import consent_group
from crowdcode.cli.inspect import inspect_command
from crowdcode.cli.record import record_command
from crowdcode.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="crowdcode")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """crowd-code - Attributed capture of editing activity."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(record_command, name="record")
cli.add_command(inspect_command, name="inspect")
cli.add_command(consent_group, name="consent")


if __name__ == "__main__":
    cli()

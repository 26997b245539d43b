"""paytrace command line: inspect recorded payment traces.

Commands:
    trace   Rebuild one payment's timeline, optionally with analysis.
    prune   Delete trace events past the retention period.
"""

import typer

from paytrace import __version__
from paytrace.cli.prune_cmd import prune
from paytrace.cli.trace_cmd import trace

app = typer.Typer(
    name="paytrace",
    help="Inspect recorded payment traces: rebuild timelines and prune old events.",
    no_args_is_help=True,
)

app.command(help="Rebuild a payment's timeline from its recorded trace events.")(trace)
app.command(help="Delete trace events older than the retention period.")(prune)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"paytrace {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Print the paytrace version and exit.",
        callback=_show_version,
        is_eager=True,
    ),
) -> None:
    """Trace events are read from .paytrace/ under the nearest paytrace.yaml."""

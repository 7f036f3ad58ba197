"""CLI output formatting helpers using click.style."""

import click

from warren.protocol import AgentOutput


def success(msg: str) -> None:
    """Green checkmark prefix."""
    click.echo(click.style(" [*] ", fg="green") + msg)


def error(msg: str) -> None:
    """Red error prefix, writes to stderr."""
    click.echo(click.style(" [x] ", fg="red") + msg, err=True)


def dim(msg: str) -> None:
    click.echo(click.style(msg, dim=True))


def output(result: AgentOutput) -> None:
    """Print one agent result: text on success, the error otherwise."""
    if result.ok:
        if result.result:
            click.echo(result.result)
        dim(f"session: {result.new_session_id or '-'}")
    else:
        error(result.error or "unknown error")

"""Warren CLI entry point using Click.

Commands:
    warren doctor                                — verify runtime dependencies
    warren run <folder> --prompt TEXT [--stream] — run one agent pass for a conversation
    warren send <folder> <text>                  — queue a follow-up for a running agent
    warren close <folder>                        — ask a running agent to finish
    warren config set <key> <value>              — persist a config.yaml key
    warren config show                           — show resolved settings
"""

import asyncio
import logging
from dataclasses import fields
from pathlib import Path

import click
import yaml

from warren import fmt
from warren.config import ConfigError, Settings, load_settings
from warren.paths import home as _home, input_dir, ipc_dir

logger = logging.getLogger(__name__)


def _get_home(ctx: click.Context) -> Path:
    """Resolve warren home from context or default."""
    return _home(ctx.obj.get("home_override") if ctx.obj else None)


def _get_settings(hc_home: Path) -> Settings:
    try:
        return load_settings(hc_home)
    except ConfigError as e:
        fmt.error(str(e))
        raise SystemExit(1)


@click.group()
@click.option(
    "--home", "home_override", type=click.Path(path_type=Path), default=None,
    envvar="WARREN_HOME",
    help="Override warren home directory (default: ~/.warren).",
)
@click.pass_context
def main(ctx: click.Context, home_override: Path | None) -> None:
    """Warren — per-conversation agent processes."""
    ctx.ensure_object(dict)
    ctx.obj["home_override"] = home_override


# ──────────────────────────────────────────────────────────────
# warren doctor
# ──────────────────────────────────────────────────────────────

@main.command()
@click.pass_context
def doctor(ctx: click.Context) -> None:
    """Verify that all runtime dependencies are installed."""
    from warren.doctor import print_doctor_report, run_doctor

    hc_home = _get_home(ctx)
    settings = _get_settings(hc_home)
    checks = run_doctor(hc_home, settings)
    ok = print_doctor_report(checks, hc_home, settings)
    if not ok:
        raise SystemExit(1)


# ──────────────────────────────────────────────────────────────
# warren run
# ──────────────────────────────────────────────────────────────

@main.command()
@click.argument("folder")
@click.option("--prompt", "-p", required=True, help="First prompt for the agent.")
@click.option("--name", default=None, help="Display name of the conversation (default: folder).")
@click.option("--session", "session_id", default=None, help="Resume this session id.")
@click.option("--chat-jid", default="", help="Chat identifier passed to the agent.")
@click.option("--main", "is_main", is_flag=True, help="Run as the main (privileged) conversation.")
@click.option("--scheduled", is_flag=True, help="Mark the prompt as a scheduled task.")
@click.option("--stream", is_flag=True, help="Print every result frame as it arrives.")
@click.option("--timeout", type=float, default=None, help="Per-conversation timeout in seconds.")
@click.pass_context
def run(
    ctx: click.Context,
    folder: str,
    prompt: str,
    name: str | None,
    session_id: str | None,
    chat_jid: str,
    is_main: bool,
    scheduled: bool,
    stream: bool,
    timeout: float | None,
) -> None:
    """Run an agent for FOLDER and print its result."""
    from warren.logging_setup import configure_logging
    from warren.protocol import AgentInput, AgentOutput
    from warren.supervisor import GroupConfig, run_agent

    hc_home = _get_home(ctx)
    settings = _get_settings(hc_home)
    configure_logging(hc_home, console=settings.verbose, level=settings.log_level)

    group = GroupConfig(name=name or folder, folder=folder, timeout=timeout)
    agent_input = AgentInput(
        prompt=prompt,
        group_folder=folder,
        chat_jid=chat_jid,
        is_main=is_main or folder == settings.main_folder,
        session_id=session_id,
        is_scheduled_task=scheduled,
    )

    def on_process(proc, process_name: str) -> None:
        logger.info("Agent process started | process=%s | pid=%s", process_name, proc.pid)

    async def on_output(frame: AgentOutput) -> None:
        fmt.output(frame)

    result = asyncio.run(run_agent(
        group, agent_input, on_process, on_output if stream else None,
        hc_home=hc_home, settings=settings,
    ))
    if not stream or not result.ok:
        fmt.output(result)
    if not result.ok:
        raise SystemExit(1)


# ──────────────────────────────────────────────────────────────
# warren send / close
# ──────────────────────────────────────────────────────────────

@main.command()
@click.argument("folder")
@click.argument("text")
@click.pass_context
def send(ctx: click.Context, folder: str, text: str) -> None:
    """Queue TEXT as a follow-up message for the agent running FOLDER."""
    from warren.mailbox import send_message

    path = send_message(input_dir(ipc_dir(_get_home(ctx), folder)), text)
    fmt.success(f"Queued {path.name}")


@main.command()
@click.argument("folder")
@click.pass_context
def close(ctx: click.Context, folder: str) -> None:
    """Ask the agent running FOLDER to finish after its current turn."""
    from warren.mailbox import request_close

    request_close(input_dir(ipc_dir(_get_home(ctx), folder)))
    fmt.success(f"Close requested for {folder}")


# ──────────────────────────────────────────────────────────────
# warren config set / show
# ──────────────────────────────────────────────────────────────

@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set KEY in config.yaml.  VALUE is parsed as YAML (numbers, lists...)."""
    from warren.config import set_value

    hc_home = _get_home(ctx)
    try:
        set_value(hc_home, key, yaml.safe_load(value))
    except ConfigError as e:
        fmt.error(str(e))
        raise SystemExit(1)
    click.echo(f"{key} set to: {value}")


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the resolved settings (config.yaml plus environment)."""
    settings = _get_settings(_get_home(ctx))
    width = max(len(f.name) for f in fields(Settings))
    for f in fields(Settings):
        click.echo(f"{f.name.ljust(width)}  {getattr(settings, f.name)}")

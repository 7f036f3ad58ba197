"""Agent runner — the process the supervisor spawns.

Reads one ``AgentInput`` from stdin, then loops:

    run the agent CLI on the prompt  →  write a result frame to stdout
      →  wait for mailbox messages (or the close sentinel)  →  repeat

Stdout carries nothing but frames written here; the CLI's own output is
captured and folded into the frame.  Logs go to stderr.

Usage:
    python -m warren.runner < payload.json
"""

import asyncio
import codecs
import json
import logging
import os
import shlex
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from warren.logging_setup import configure_runner_logging
from warren.mailbox import DEFAULT_POLL_INTERVAL, clear_close, drain, wait_for_message
from warren.paths import input_dir
from warren.protocol import (
    SCHEDULED_TASK_PREFIX,
    AgentInput,
    AgentOutput,
    OutputCapture,
    PayloadError,
    derive_session_id,
    failure,
    normalize_output,
    success,
    tail,
    write_frame,
)

logger = logging.getLogger(__name__)

DEFAULT_CLI = "kiro-cli"
DEFAULT_AGENT_NAME = "kiro-assistant"
DEFAULT_INPUT_COPY = "/tmp/input.json"
DEFAULT_MAX_OUTPUT_SIZE = 10 * 1024 * 1024
ERROR_TAIL_CHARS = 1000
READ_CHUNK = 8192


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


def _input_copy(env) -> Path | None:
    # Only the container entrypoint leaves a copy behind.
    path = env.get("WARREN_INPUT_COPY")
    if not path and _truthy(env.get("WARREN_IN_DOCKER")):
        path = DEFAULT_INPUT_COPY
    return Path(path) if path else None


@dataclass
class RunnerConfig:
    """Runner settings, taken from the environment the supervisor sets."""

    group_dir: Path
    ipc_dir: Path
    real_home: Path
    cli: list[str]
    agent_name: str | None = None
    model: str | None = None
    one_shot: bool = False
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "RunnerConfig":
        env = os.environ if environ is None else environ
        return cls(
            group_dir=Path(env.get("WARREN_GROUP_DIR") or "/workspace/group"),
            ipc_dir=Path(env.get("WARREN_IPC_DIR") or "/workspace/ipc"),
            real_home=Path(env.get("WARREN_REAL_HOME") or env.get("HOME") or "~").expanduser(),
            cli=shlex.split(env.get("WARREN_AGENT_CLI") or DEFAULT_CLI),
            agent_name=(env.get("WARREN_AGENT_NAME") or "").strip() or None,
            model=(env.get("WARREN_MODEL") or "").strip() or None,
            one_shot=_truthy(env.get("WARREN_AGENT_ONE_SHOT")),
            poll_interval=float(env.get("WARREN_POLL_INTERVAL") or DEFAULT_POLL_INTERVAL),
            max_output_size=int(env.get("WARREN_MAX_OUTPUT_SIZE") or DEFAULT_MAX_OUTPUT_SIZE),
        )


# ---------------------------------------------------------------------------
# Startup helpers
# ---------------------------------------------------------------------------

def read_payload(stream: TextIO) -> AgentInput:
    """Read stdin to EOF and decode it.  Raises ``PayloadError``."""
    return AgentInput.from_json(stream.read())


def discard_launcher_copy(path: Path) -> None:
    """Delete the temp copy of the payload a launcher shim may have left."""
    try:
        path.unlink()
        logger.debug("Removed launcher payload copy %s", path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove launcher payload copy %s: %s", path, e)


def resolve_agent_name(config: RunnerConfig) -> str:
    if config.agent_name:
        return config.agent_name
    agent_config = config.real_home / ".kiro" / "agents" / "agent_config.json"
    if agent_config.exists():
        try:
            name = json.loads(agent_config.read_text()).get("name")
        except (OSError, ValueError, AttributeError) as e:
            logger.warning("Failed to read %s: %s", agent_config, e)
        else:
            if isinstance(name, str) and name.strip():
                return name.strip()
    return DEFAULT_AGENT_NAME


def build_first_prompt(payload: AgentInput, pending: list[str]) -> str:
    prompt = payload.prompt
    if payload.is_scheduled_task:
        prompt = f"{SCHEDULED_TASK_PREFIX}\n\n{prompt}"
    if pending:
        logger.info("Draining %d pending mailbox messages into initial prompt", len(pending))
        prompt += "\n" + "\n".join(pending)
    return prompt


def build_cli_args(
    cli: list[str], prompt: str, agent_name: str, *, resume: bool, model: str | None = None,
) -> list[str]:
    args = [
        *cli, "chat",
        "--no-interactive",
        "--trust-all-tools",
        "--wrap", "never",
        "--agent", agent_name,
    ]
    if resume:
        args.append("--resume")
    if model:
        args += ["--model", model]
    args.append(prompt)
    return args


async def _pump(stream: asyncio.StreamReader, capture: OutputCapture) -> None:
    # Keep reading past the cap so the child never blocks on a full pipe.
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while chunk := await stream.read(READ_CHUNK):
        capture.append(decoder.decode(chunk))
    capture.append(decoder.decode(b"", final=True))


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

class AgentRunner:
    """Turn loop for one conversation.

    ``active_child`` is the CLI process of the turn in progress, so a
    signal delivered to the runner can be forwarded to it.
    """

    def __init__(self, config: RunnerConfig, payload: AgentInput, out: TextIO | None = None):
        self.config = config
        self.payload = payload
        self.out = out or sys.stdout
        self.agent_name = resolve_agent_name(config)
        self.session_id = derive_session_id(payload.group_folder)
        self.active_child: asyncio.subprocess.Process | None = None
        self.received_signal: int | None = None

    @property
    def inbox(self) -> Path:
        return input_dir(self.config.ipc_dir)

    def child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update({
            "HOME": str(self.config.real_home),
            "NO_COLOR": "1",
            "CLICOLOR": "0",
            "KIRO_CLI_DISABLE_PAGER": "1",
            "WARREN_CHAT_JID": self.payload.chat_jid,
            "WARREN_GROUP_FOLDER": self.payload.group_folder,
            "WARREN_IS_MAIN": "1" if self.payload.is_main else "0",
        })
        # Secrets reach the CLI process only, never this process's environ.
        env.update(self.payload.secrets or {})
        return env

    async def run_turn(self, prompt: str, *, resume: bool) -> AgentOutput:
        args = build_cli_args(
            self.config.cli, prompt, self.agent_name, resume=resume, model=self.config.model,
        )
        logger.info("Spawning agent CLI | agent=%s | resume=%s", self.agent_name, resume)
        stdout = OutputCapture(self.config.max_output_size)
        stderr = OutputCapture(self.config.max_output_size)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.config.group_dir),
                env=self.child_env(),
            )
        except OSError as e:
            return failure(f"Failed to start agent CLI: {e}", self.session_id)

        self.active_child = proc
        try:
            assert proc.stdout is not None and proc.stderr is not None
            await asyncio.gather(_pump(proc.stdout, stdout), _pump(proc.stderr, stderr))
            code = await proc.wait()
        finally:
            self.active_child = None

        if stdout.truncated or stderr.truncated:
            logger.warning(
                "Agent CLI output truncated | stdout=%s | stderr=%s",
                stdout.truncated, stderr.truncated,
            )
        clean_out = normalize_output(stdout.text)
        if code == 0:
            return success(clean_out or None, self.session_id)

        details = normalize_output(stderr.text) or clean_out or f"{self.config.cli[0]} exited with code {code}"
        logger.error("Agent CLI failed | code=%s", code)
        return failure(tail(details, ERROR_TAIL_CHARS), self.session_id)

    async def run(self) -> int:
        """Run turns until close, error, or (one-shot) the first frame."""
        self.inbox.mkdir(parents=True, exist_ok=True)
        clear_close(self.inbox)

        prompt = build_first_prompt(self.payload, drain(self.inbox))
        resume = bool(self.payload.session_id)
        while True:
            output = await self.run_turn(prompt, resume=resume)
            write_frame(self.out, output)
            if not output.ok:
                return 1
            resume = True
            if self.config.one_shot:
                logger.info("One-shot mode, exiting after first turn")
                return 0

            message = await wait_for_message(self.inbox, self.config.poll_interval)
            if message is None:
                logger.info("Close sentinel received, exiting")
                return 0
            logger.info("Got new message (%d chars), starting next turn", len(message))
            prompt = message

    def forward_signal(self, signum: int) -> None:
        child = self.active_child
        if child is not None and child.returncode is None:
            try:
                child.send_signal(signum)
            except ProcessLookupError:
                pass

    async def main(self) -> int:
        """``run()`` with SIGTERM/SIGINT forwarded to the active child."""
        loop = asyncio.get_running_loop()
        task = asyncio.current_task()

        def on_signal(signum: int) -> None:
            logger.info("Received %s", signal.Signals(signum).name)
            self.received_signal = signum
            self.forward_signal(signum)
            if task is not None:
                task.cancel()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, on_signal, sig)
        try:
            return await self.run()
        except asyncio.CancelledError:
            if self.received_signal is None:
                raise
            return 0
        except Exception as e:
            logger.error("Agent runner error | error=%s", e)
            write_frame(self.out, failure(str(e) or type(e).__name__, self.session_id))
            return 1
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)


def main() -> None:
    configure_runner_logging(os.environ.get("LOG_LEVEL"))
    input_copy = _input_copy(os.environ)
    try:
        payload = read_payload(sys.stdin)
    except PayloadError as e:
        write_frame(sys.stdout, failure(f"Failed to parse input: {e}"))
        sys.exit(1)
    finally:
        if input_copy is not None:
            discard_launcher_copy(input_copy)
    logger.info("Received input for group: %s", payload.group_folder)

    try:
        config = RunnerConfig.from_env()
    except ValueError as e:
        logger.error("Invalid runner environment: %s", e)
        write_frame(
            sys.stdout,
            failure(f"Invalid runner environment: {e}", derive_session_id(payload.group_folder)),
        )
        sys.exit(1)

    runner = AgentRunner(config, payload)
    sys.exit(asyncio.run(runner.main()))


if __name__ == "__main__":
    main()

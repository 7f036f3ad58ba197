"""Process supervisor — runs one agent process for one conversation.

``run_agent()`` is the single entry point.  For each call it:

1. Prepares the conversation's directory layout (idempotent): working dir,
   mailbox, session state, and a symlink farm for validated extra mounts.
2. Spawns the agent runner, either as ``docker run -i --rm ...`` or as a
   host subprocess, depending on ``Settings.runtime``.
3. Writes the ``AgentInput`` payload (with secrets) to stdin exactly once,
   closes stdin, and drops the secrets from the payload object.
4. Reads stdout incrementally, cutting out result frames.  Each frame
   re-arms the idle timer and is handed to ``on_output`` — one at a time,
   in stream order, through a single dispatcher.
5. Enforces the escalating idle timeout (SIGTERM, then SIGKILL).
6. Classifies the exit and writes a per-run log under
   ``groups/<folder>/logs/``.

Child failures never raise: every outcome is an ``AgentOutput``, and the
``error`` field carries a bounded tail of captured output.
"""

import asyncio
import codecs
import json
import logging
import os
import shutil
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from warren import paths
from warren.config import Settings, load_settings, read_secrets
from warren.logging_setup import log_caller
from warren.mounts import (
    EXTRA_MOUNT_ROOT,
    AdditionalMount,
    AllowlistValidator,
    MountValidator,
    ValidatedMount,
)
from warren.protocol import (
    AgentInput,
    AgentOutput,
    FrameParser,
    OutputCapture,
    derive_session_id,
    extract_last_frame,
    failure,
    success,
    tail,
)
from warren.timeout import EscalatingTimeout

logger = logging.getLogger(__name__)

OnProcess = Callable[[asyncio.subprocess.Process, str], Any]
OnOutput = Callable[[AgentOutput], Awaitable[None]]

# Container-side layout (must match the runner's defaults).
CONTAINER_GROUP_DIR = "/workspace/group"
CONTAINER_GLOBAL_DIR = "/workspace/global"
CONTAINER_EXTRA_DIR = EXTRA_MOUNT_ROOT
CONTAINER_IPC_DIR = "/workspace/ipc"
CONTAINER_HOME = "/home/agent"
CONTAINER_PATH = f"{CONTAINER_HOME}/.local/bin:/usr/local/bin:/usr/bin:/bin"

# Docker caps container names at 63 characters.
MAX_CONTAINER_NAME = 63

# How much captured output goes into an error message.
ERROR_TAIL_CHARS = 200

READ_CHUNK = 8192

# Upper bound on waiting for a best-effort ``docker rm -f``.
CLEANUP_WAIT = 10.0

# Host credential dirs for the agent CLI, mounted when present.
# (path under the real home, path under CONTAINER_HOME)
CREDENTIAL_DIRS = [
    (".kiro", ".kiro"),
    (".aws", ".aws"),
    ("Library/Application Support/kiro-cli", ".local/share/kiro-cli"),
]

# Agent CLI knobs passed through from the host environment when set.
PASSTHROUGH_ENV = ("WARREN_AGENT_NAME", "WARREN_MODEL", "WARREN_AGENT_CLI")

DEFAULT_SESSION_SETTINGS = {
    "env": {
        "CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS": "1",
        "CLAUDE_CODE_ADDITIONAL_DIRECTORIES_CLAUDE_MD": "1",
        "CLAUDE_CODE_DISABLE_AUTO_MEMORY": "0",
    },
}


@dataclass
class GroupConfig:
    """A registered conversation as the supervisor sees it."""

    name: str
    folder: str
    additional_mounts: list[AdditionalMount] = field(default_factory=list)
    timeout: float | None = None


@dataclass
class ProcessContext:
    env: dict[str, str]
    validated_mounts: list[ValidatedMount]


@dataclass
class ProcessHandle:
    """Supervisor-owned state for one spawned child."""

    proc: asyncio.subprocess.Process
    name: str
    stdout: OutputCapture
    stderr: OutputCapture
    timer: EscalatingTimeout | None = None
    closed: bool = False
    cleanup_tasks: set[asyncio.Task] = field(default_factory=set)


# ---------------------------------------------------------------------------
# Directory layout
# ---------------------------------------------------------------------------

def _seed_from_template(template: Path, target: Path) -> None:
    """Copy *template* to *target* once; never overwrite agent edits."""
    if target.exists():
        return
    if not template.exists():
        logger.warning("Template missing, skipping bootstrap | template=%s", template)
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(template, target)
    logger.info("Created %s from template", target)


def _sync_skills(project_root: Path, session_dir: Path) -> None:
    """Copy ``<project>/container/skills/<skill>/*`` into the session dir."""
    src = project_root / "container" / "skills"
    if not src.is_dir():
        return
    dst = session_dir / "skills"
    for skill in sorted(src.iterdir()):
        if not skill.is_dir():
            continue
        target = dst / skill.name
        target.mkdir(parents=True, exist_ok=True)
        for f in skill.iterdir():
            if f.is_file():
                shutil.copy2(f, target / f.name)


def _link_extra_mounts(extra: Path, mounts: list[ValidatedMount]) -> None:
    extra.mkdir(parents=True, exist_ok=True)
    for entry in extra.iterdir():
        try:
            entry.unlink()
        except OSError as e:
            logger.debug("Could not remove stale extra entry %s: %s", entry, e)
    for m in mounts:
        link = extra / m.name
        try:
            link.symlink_to(m.host_path)
        except OSError as e:
            logger.warning(
                "Failed to create extra mount symlink | host=%s | link=%s | error=%s",
                m.host_path, link, e,
            )


def prepare_group(
    hc_home: Path,
    group: GroupConfig,
    is_main: bool,
    settings: Settings,
    validator: MountValidator | None = None,
    environ: dict[str, str] | None = None,
) -> ProcessContext:
    """Create the conversation's directories and the host-side env.

    Safe to call repeatedly for the same group.
    """
    environ = os.environ if environ is None else environ

    gdir = paths.group_dir(hc_home, group.folder)
    gdir.mkdir(parents=True, exist_ok=True)
    paths.global_dir(hc_home).mkdir(parents=True, exist_ok=True)

    templates = settings.project_root / "templates"
    _seed_from_template(
        templates / "main.md", paths.group_dir(hc_home, settings.main_folder) / "AGENTS.md",
    )
    _seed_from_template(templates / "global.md", paths.global_dir(hc_home) / "AGENTS.md")

    ipc = paths.ipc_dir(hc_home, group.folder)
    for sub in ("messages", "tasks", "input"):
        (ipc / sub).mkdir(parents=True, exist_ok=True)

    session_dir = paths.sessions_dir(hc_home, group.folder)
    session_dir.mkdir(parents=True, exist_ok=True)
    settings_file = session_dir / "settings.json"
    if not settings_file.exists():
        settings_file.write_text(json.dumps(DEFAULT_SESSION_SETTINGS, indent=2) + "\n")
    _sync_skills(settings.project_root, session_dir)

    validated: list[ValidatedMount] = []
    if group.additional_mounts:
        validator = validator or AllowlistValidator(settings.mount_allowlist)
        validated = validator(group.additional_mounts, group.name, is_main)
    extra = paths.extra_dir(hc_home, group.folder)
    _link_extra_mounts(extra, validated)

    real_home = str(Path.home())
    env = {
        "WARREN_GROUP_DIR": str(gdir),
        "WARREN_IPC_DIR": str(ipc),
        "WARREN_GLOBAL_DIR": str(paths.global_dir(hc_home)),
        "WARREN_EXTRA_DIR": str(extra),
        "WARREN_REAL_HOME": real_home,
        # ~/.agent resolves to the per-group session dir
        "HOME": str(session_dir.parent),
        "PATH": environ.get("PATH", ""),
        "WARREN_AGENT_ONE_SHOT": "1" if settings.one_shot else "0",
        "WARREN_POLL_INTERVAL": str(settings.poll_interval),
        "WARREN_MAX_OUTPUT_SIZE": str(settings.max_output_size),
    }
    if environ.get("PYTHONPATH"):
        env["PYTHONPATH"] = environ["PYTHONPATH"]
    for key in PASSTHROUGH_ENV:
        if environ.get(key):
            env[key] = environ[key]
    if is_main:
        env["WARREN_PROJECT_DIR"] = str(settings.project_root)

    return ProcessContext(env=env, validated_mounts=validated)


# ---------------------------------------------------------------------------
# Launch arguments
# ---------------------------------------------------------------------------

def process_name_for(folder: str, now_ms: int | None = None) -> str:
    safe = "".join(c if c.isalnum() or c == "-" else "-" for c in folder)
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"warren-{safe}-{stamp}"


def container_name_for(process_name: str) -> str:
    return process_name[:MAX_CONTAINER_NAME]


def build_docker_args(
    ctx: ProcessContext,
    process_name: str,
    settings: Settings,
    environ: dict[str, str] | None = None,
) -> list[str]:
    """Arguments for ``docker`` (the executable itself not included)."""
    environ = os.environ if environ is None else environ
    env = ctx.env
    args = [
        "run", "-i", "--rm",
        "--name", container_name_for(process_name),
        "-v", f"{env['WARREN_GROUP_DIR']}:{CONTAINER_GROUP_DIR}",
        "-v", f"{env['WARREN_GLOBAL_DIR']}:{CONTAINER_GLOBAL_DIR}",
        "-v", f"{env['WARREN_EXTRA_DIR']}:{CONTAINER_EXTRA_DIR}",
        "-v", f"{env['WARREN_IPC_DIR']}:{CONTAINER_IPC_DIR}",
    ]

    real_home = Path(env["WARREN_REAL_HOME"])
    for host_rel, container_rel in CREDENTIAL_DIRS:
        host_dir = real_home / host_rel
        if host_dir.exists():
            args += ["-v", f"{host_dir}:{CONTAINER_HOME}/{container_rel}"]
        else:
            logger.warning(
                "Host credential dir not found; containerized agent may fail to authenticate | path=%s",
                host_dir,
            )

    for m in ctx.validated_mounts:
        args += ["-v", f"{m.host_path}:{m.container_path}{':ro' if m.readonly else ''}"]

    container_env = {
        "WARREN_GROUP_DIR": CONTAINER_GROUP_DIR,
        "WARREN_IPC_DIR": CONTAINER_IPC_DIR,
        "WARREN_GLOBAL_DIR": CONTAINER_GLOBAL_DIR,
        "WARREN_EXTRA_DIR": CONTAINER_EXTRA_DIR,
        "WARREN_REAL_HOME": CONTAINER_HOME,
        "HOME": CONTAINER_HOME,
        "PATH": CONTAINER_PATH,
        "WARREN_IN_DOCKER": "1",
        "WARREN_AGENT_ONE_SHOT": env["WARREN_AGENT_ONE_SHOT"],
        "WARREN_POLL_INTERVAL": env["WARREN_POLL_INTERVAL"],
        "WARREN_MAX_OUTPUT_SIZE": env["WARREN_MAX_OUTPUT_SIZE"],
    }
    for key in PASSTHROUGH_ENV:
        if environ.get(key):
            container_env[key] = environ[key]
    for key, value in container_env.items():
        args += ["-e", f"{key}={value}"]

    args.append(settings.image)
    return args


# ---------------------------------------------------------------------------
# Run log
# ---------------------------------------------------------------------------

def write_run_log(
    *,
    logs_dir: Path,
    group: GroupConfig,
    process_name: str,
    agent_input: AgentInput,
    env: dict[str, str],
    handle: ProcessHandle,
    duration_ms: float,
    exit_code: int | None,
    timed_out: bool,
    had_output: bool,
    verbose: bool,
    launch_args: list[str] | None = None,
) -> Path:
    """Write ``agent-<timestamp>.log`` and return its path.

    The summary is always written.  Payload, env and captured streams are
    included only when *verbose* or when the run failed.
    """
    now = datetime.now(timezone.utc)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"agent-{now.isoformat().replace(':', '-').replace('.', '-')}.log"

    title = "=== Agent Run Log (TIMEOUT) ===" if timed_out else "=== Agent Run Log ==="
    lines = [
        title,
        f"Timestamp: {now.isoformat()}",
        f"Group: {group.name}",
        f"Process: {process_name}",
        f"IsMain: {agent_input.is_main}",
        f"Duration: {duration_ms:.0f}ms",
        f"Exit Code: {exit_code}",
        f"Had Streaming Output: {had_output}",
        f"Stdout Truncated: {handle.stdout.truncated}",
        f"Stderr Truncated: {handle.stderr.truncated}",
        "",
    ]

    is_error = (timed_out and not had_output) or (not timed_out and exit_code != 0)
    if verbose or is_error:
        env_lines = sorted(
            f"{k}={v}" for k, v in env.items() if k.startswith("WARREN_") or k == "HOME"
        )
        lines += [
            "=== Input ===",
            json.dumps(agent_input.to_dict(), indent=2),
            "",
            "=== Env ===",
            "\n".join(env_lines),
            "",
        ]
        if launch_args:
            lines += ["=== Launch Args ===", " ".join(launch_args), ""]
        lines += [
            f"=== Stderr{' (TRUNCATED)' if handle.stderr.truncated else ''} ===",
            handle.stderr.text,
            "",
            f"=== Stdout{' (TRUNCATED)' if handle.stdout.truncated else ''} ===",
            handle.stdout.text,
        ]
    else:
        lines += [
            "=== Input Summary ===",
            f"Prompt length: {len(agent_input.prompt)} chars",
            f"Session ID: {agent_input.session_id or 'new'}",
            "",
        ]

    log_file.write_text("\n".join(lines))
    logger.debug("Agent log written | file=%s | verbose=%s", log_file, verbose)
    return log_file


# ---------------------------------------------------------------------------
# Exit helpers
# ---------------------------------------------------------------------------

def exit_error_message(code: int | None, stderr: str, stdout: str) -> str:
    detail = tail(stderr.strip(), ERROR_TAIL_CHARS) or tail(stdout.strip(), ERROR_TAIL_CHARS)
    if detail:
        return f"Agent exited with code {code}: {detail}"
    return f"Agent exited with code {code}"


def parse_final_output(stdout: str) -> AgentOutput:
    """Batch mode: the last complete frame (or last line) of stdout."""
    body = extract_last_frame(stdout)
    try:
        return AgentOutput.from_json(body)
    except ValueError as e:
        return failure(f"Failed to parse agent output: {e}")


async def _force_remove_container(name: str) -> None:
    """``docker rm -f`` — cleanup only; failures are logged, never raised."""
    try:
        rm = await asyncio.create_subprocess_exec(
            "docker", "rm", "-f", name,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        await rm.wait()
    except OSError as e:
        logger.debug("Best-effort docker rm -f failed | container=%s | error=%s", name, e)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

async def run_agent(
    group: GroupConfig,
    agent_input: AgentInput,
    on_process: OnProcess,
    on_output: OnOutput | None = None,
    *,
    hc_home: Path | None = None,
    settings: Settings | None = None,
    validator: MountValidator | None = None,
    secrets_reader: Callable[[], dict[str, str]] | None = None,
) -> AgentOutput:
    """Spawn an agent process, stream its output and return the final result.

    With *on_output* ("streaming mode") every frame is delivered to the
    callback as it arrives and the returned result carries no text.
    Without it ("batch mode") the last frame on stdout is returned.
    """
    hc_home = paths.home(hc_home)
    settings = settings or load_settings(hc_home)
    token = log_caller.set(group.folder)
    try:
        return await _run(
            hc_home, settings, group, agent_input, on_process, on_output,
            validator, secrets_reader or (lambda: read_secrets(hc_home)),
        )
    finally:
        log_caller.reset(token)


async def _run(
    hc_home: Path,
    settings: Settings,
    group: GroupConfig,
    agent_input: AgentInput,
    on_process: OnProcess,
    on_output: OnOutput | None,
    validator: MountValidator | None,
    secrets_reader: Callable[[], dict[str, str]],
) -> AgentOutput:
    start = time.monotonic()
    ctx = prepare_group(hc_home, group, agent_input.is_main, settings, validator)
    process_name = process_name_for(group.folder)
    container_name = container_name_for(process_name)
    docker = settings.runtime == "docker"

    if docker:
        launch = ["docker", *build_docker_args(ctx, process_name, settings)]
        spawn_kwargs: dict[str, Any] = {}
    else:
        launch = list(settings.host_command)
        spawn_kwargs = {"cwd": ctx.env["WARREN_GROUP_DIR"], "env": ctx.env}

    logger.debug(
        "Agent process configuration | process=%s | runtime=%s | group_dir=%s | ipc_dir=%s | home=%s",
        process_name, settings.runtime, ctx.env["WARREN_GROUP_DIR"],
        ctx.env["WARREN_IPC_DIR"], ctx.env["HOME"],
    )
    logger.info(
        "Spawning agent process | group=%s | process=%s | runtime=%s | is_main=%s",
        group.name, process_name, settings.runtime, agent_input.is_main,
    )
    logs_dir = paths.logs_dir(hc_home, group.folder)
    logs_dir.mkdir(parents=True, exist_ok=True)
    secrets = secrets_reader()

    try:
        proc = await asyncio.create_subprocess_exec(
            *launch,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **spawn_kwargs,
        )
    except OSError as e:
        logger.error("Agent spawn error | group=%s | process=%s | error=%s", group.name, process_name, e)
        return failure(f"Agent spawn error: {e}")

    handle = ProcessHandle(
        proc=proc,
        name=process_name,
        stdout=OutputCapture(settings.max_output_size),
        stderr=OutputCapture(settings.max_output_size),
    )
    on_process(proc, process_name)

    # --- Escalating timeout ---
    configured = group.timeout or settings.agent_timeout

    def terminate() -> None:
        try:
            proc.terminate()
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.warning("Failed to send SIGTERM | process=%s | error=%s", process_name, e)

    def kill() -> None:
        if not handle.closed:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            except OSError as e:
                logger.warning("Failed to send SIGKILL | process=%s | error=%s", process_name, e)
        if docker:
            task = asyncio.ensure_future(_force_remove_container(container_name))
            handle.cleanup_tasks.add(task)
            task.add_done_callback(handle.cleanup_tasks.discard)

    handle.timer = EscalatingTimeout(
        settings.effective_timeout(group.timeout),
        on_terminate=terminate,
        on_kill=kill,
        kill_delay=settings.kill_delay,
        label=process_name,
    )
    handle.timer.start()

    # --- Payload: secrets travel over stdin only, then are dropped ---
    # Written alongside the readers so a child that never reads stdin is
    # still covered by the timer.
    agent_input.secrets = secrets
    try:
        payload = agent_input.to_json().encode()
    finally:
        agent_input.secrets = None
        del secrets

    async def write_payload() -> None:
        nonlocal payload
        assert proc.stdin is not None
        try:
            proc.stdin.write(payload)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.warning("Agent closed stdin before the payload was written | error=%s", e)
        finally:
            payload = b""
            proc.stdin.close()

    # --- Ordered output dispatch ---
    queue: asyncio.Queue[AgentOutput | None] = asyncio.Queue()

    async def dispatch() -> None:
        while True:
            item = await queue.get()
            if item is None:
                return
            try:
                await on_output(item)  # type: ignore[misc]
            except Exception:
                logger.exception("Output callback failed | group=%s", group.name)

    dispatcher = asyncio.ensure_future(dispatch()) if on_output is not None else None

    new_session_id: str | None = None
    frames_seen = 0

    async def read_stdout() -> None:
        nonlocal new_session_id, frames_seen
        assert proc.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        parser = FrameParser()
        while True:
            chunk = await proc.stdout.read(READ_CHUNK)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                if handle.stdout.append(text):
                    logger.warning(
                        "Agent stdout truncated due to size limit | group=%s | size=%d",
                        group.name, len(handle.stdout),
                    )
                for body in parser.feed(text):
                    try:
                        parsed = AgentOutput.from_json(body)
                    except ValueError as e:
                        logger.warning(
                            "Failed to parse streamed output chunk | group=%s | error=%s",
                            group.name, e,
                        )
                        continue
                    frames_seen += 1
                    if parsed.new_session_id:
                        new_session_id = parsed.new_session_id
                    handle.timer.rearm()
                    if on_output is not None:
                        queue.put_nowait(parsed)
            if not chunk:
                return

    async def read_stderr() -> None:
        assert proc.stderr is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await proc.stderr.read(READ_CHUNK)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                # stderr never counts as activity: the CLI logs continuously.
                for line in text.strip().splitlines():
                    if line:
                        logger.debug("[%s] %s", group.folder, line)
                if handle.stderr.append(text):
                    logger.warning(
                        "Agent stderr truncated due to size limit | group=%s | size=%d",
                        group.name, len(handle.stderr),
                    )
            if not chunk:
                return

    await asyncio.gather(write_payload(), read_stdout(), read_stderr())
    code = await proc.wait()
    handle.closed = True
    handle.timer.cancel()
    timed_out = handle.timer.timed_out
    duration_ms = (time.monotonic() - start) * 1000

    async def settle() -> None:
        if dispatcher is not None:
            queue.put_nowait(None)
            await dispatcher
        if handle.cleanup_tasks:
            await asyncio.wait(set(handle.cleanup_tasks), timeout=CLEANUP_WAIT)

    log_file = write_run_log(
        logs_dir=logs_dir,
        group=group,
        process_name=process_name,
        agent_input=agent_input,
        env=ctx.env,
        handle=handle,
        duration_ms=duration_ms,
        exit_code=code,
        timed_out=timed_out,
        had_output=frames_seen > 0,
        verbose=settings.verbose,
        launch_args=launch if docker else None,
    )
    session_id = new_session_id or derive_session_id(agent_input.group_folder)

    if timed_out:
        await settle()
        if frames_seen:
            logger.info(
                "Agent timed out after output (idle cleanup) | group=%s | process=%s | duration=%.0fms | code=%s",
                group.name, process_name, duration_ms, code,
            )
            return success(None, session_id)
        logger.error(
            "Agent timed out with no output | group=%s | process=%s | duration=%.0fms | code=%s",
            group.name, process_name, duration_ms, code,
        )
        return failure(f"Agent timed out after {configured:g}s")

    if code != 0:
        await settle()
        logger.error(
            "Agent exited with error | group=%s | code=%s | duration=%.0fms | log=%s",
            group.name, code, duration_ms, log_file,
        )
        return failure(exit_error_message(code, handle.stderr.text, handle.stdout.text))

    if on_output is not None:
        await settle()
        logger.info(
            "Agent completed (streaming mode) | group=%s | duration=%.0fms | session=%s",
            group.name, duration_ms, session_id,
        )
        return success(None, session_id)

    output = parse_final_output(handle.stdout.text)
    if output.ok and not output.new_session_id:
        output.new_session_id = session_id
    if output.ok:
        logger.info(
            "Agent completed | group=%s | duration=%.0fms | status=%s | has_result=%s",
            group.name, duration_ms, output.status, bool(output.result),
        )
    else:
        logger.error("Agent output unusable | group=%s | error=%s", group.name, output.error)
    return output


# ---------------------------------------------------------------------------
# Snapshots for the agent
# ---------------------------------------------------------------------------

def write_tasks_snapshot(
    hc_home: Path, group_folder: str, is_main: bool, tasks: list[dict[str, Any]],
) -> Path:
    """Write ``current_tasks.json`` into the group's ipc dir.

    The main group sees every task; other groups see only their own.
    """
    ipc = paths.ipc_dir(hc_home, group_folder)
    ipc.mkdir(parents=True, exist_ok=True)
    visible = tasks if is_main else [t for t in tasks if t.get("groupFolder") == group_folder]
    out = ipc / "current_tasks.json"
    out.write_text(json.dumps(visible, indent=2))
    return out


def write_groups_snapshot(
    hc_home: Path, group_folder: str, is_main: bool, groups: list[dict[str, Any]],
) -> Path:
    """Write ``available_groups.json``; only the main group gets the list."""
    ipc = paths.ipc_dir(hc_home, group_folder)
    ipc.mkdir(parents=True, exist_ok=True)
    out = ipc / "available_groups.json"
    out.write_text(json.dumps({
        "groups": groups if is_main else [],
        "lastSync": datetime.now(timezone.utc).isoformat(),
    }, indent=2))
    return out

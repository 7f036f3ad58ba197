"""Wire protocol shared by the supervisor and the agent runner.

Supervisor → runner: one ``AgentInput`` JSON document on stdin, then EOF.

Runner → supervisor: zero or more result frames on stdout, interleaved
with whatever else the agent CLI prints.  A frame is::

    ---WARREN_OUTPUT_START---
    {"status": "success", "result": "...", "newSessionId": "warren:g1"}
    ---WARREN_OUTPUT_END---

Keys are camelCase on the wire and snake_case in Python.  The marker
strings must match on both sides.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, TextIO

OUTPUT_START_MARKER = "---WARREN_OUTPUT_START---"
OUTPUT_END_MARKER = "---WARREN_OUTPUT_END---"

SESSION_PREFIX = "warren"

# Prepended to prompts that come from the scheduler rather than a person.
SCHEDULED_TASK_PREFIX = (
    "[SCHEDULED TASK - The following message was sent automatically "
    "and is not coming directly from the user or group.]"
)


class PayloadError(ValueError):
    """Raised when an ``AgentInput`` document cannot be decoded."""


def derive_session_id(group_folder: str) -> str:
    """Stable session id for a conversation folder (never random)."""
    return f"{SESSION_PREFIX}:{group_folder}"


# ---------------------------------------------------------------------------
# Payload and frame records
# ---------------------------------------------------------------------------

@dataclass
class AgentInput:
    """Configuration payload pushed to the runner over stdin."""

    prompt: str
    group_folder: str
    chat_jid: str
    is_main: bool = False
    session_id: str | None = None
    is_scheduled_task: bool = False
    secrets: dict[str, str] | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "prompt": self.prompt,
            "groupFolder": self.group_folder,
            "chatJid": self.chat_jid,
            "isMain": self.is_main,
        }
        if self.session_id:
            d["sessionId"] = self.session_id
        if self.is_scheduled_task:
            d["isScheduledTask"] = True
        if self.secrets is not None:
            d["secrets"] = dict(self.secrets)
        return d

    @classmethod
    def from_dict(cls, data: Any) -> "AgentInput":
        if not isinstance(data, dict):
            raise PayloadError("payload must be a JSON object")
        try:
            prompt = data["prompt"]
            group_folder = data["groupFolder"]
        except KeyError as e:
            raise PayloadError(f"payload is missing {e.args[0]!r}") from e
        secrets = data.get("secrets")
        return cls(
            prompt=str(prompt),
            group_folder=str(group_folder),
            chat_jid=str(data.get("chatJid", "")),
            is_main=bool(data.get("isMain", False)),
            session_id=str(data.get("sessionId") or "").strip() or None,
            is_scheduled_task=bool(data.get("isScheduledTask", False)),
            secrets={str(k): str(v) for k, v in secrets.items()} if isinstance(secrets, dict) else None,
        )

    @classmethod
    def from_json(cls, text: str) -> "AgentInput":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PayloadError(f"payload is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class AgentOutput:
    """One turn's result, or a supervisor-synthesised final result."""

    status: str
    result: str | None = None
    new_session_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"status": self.status, "result": self.result}
        if self.new_session_id is not None:
            d["newSessionId"] = self.new_session_id
        if self.error is not None:
            d["error"] = self.error
        return d

    @classmethod
    def from_json(cls, text: str) -> "AgentOutput":
        """Parse a frame body.  Raises ``ValueError`` on malformed input."""
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("frame body must be a JSON object")
        status = data.get("status")
        if status not in ("success", "error"):
            raise ValueError(f"invalid frame status: {status!r}")
        result = data.get("result")
        return cls(
            status=status,
            result=None if result is None else str(result),
            new_session_id=data.get("newSessionId"),
            error=data.get("error"),
        )


def success(result: str | None, session_id: str | None) -> AgentOutput:
    return AgentOutput(status="success", result=result, new_session_id=session_id)


def failure(error: str, session_id: str | None = None) -> AgentOutput:
    return AgentOutput(status="error", result=None, new_session_id=session_id, error=error)


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------

def format_frame(output: AgentOutput) -> str:
    return f"{OUTPUT_START_MARKER}\n{json.dumps(output.to_dict())}\n{OUTPUT_END_MARKER}\n"


def write_frame(stream: TextIO, output: AgentOutput) -> None:
    """Write one frame and flush so the supervisor sees it immediately."""
    stream.write(format_frame(output))
    stream.flush()


class FrameParser:
    """Incremental marker scanner for a chunked stdout stream.

    ``feed()`` returns the frame bodies completed by the new chunk, in
    stream order.  Anything outside a marker pair is discarded; an
    incomplete pair stays buffered until more data arrives.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[str]:
        self._buffer += chunk
        bodies: list[str] = []
        while True:
            start = self._buffer.find(OUTPUT_START_MARKER)
            if start == -1:
                # Keep a possible partial start marker at the tail.
                keep = len(OUTPUT_START_MARKER) - 1
                if len(self._buffer) > keep:
                    self._buffer = self._buffer[-keep:]
                break
            end = self._buffer.find(OUTPUT_END_MARKER, start)
            if end == -1:
                self._buffer = self._buffer[start:]
                break
            bodies.append(self._buffer[start + len(OUTPUT_START_MARKER):end].strip())
            self._buffer = self._buffer[end + len(OUTPUT_END_MARKER):]
        return bodies


def extract_last_frame(stdout: str) -> str:
    """Body of the last complete frame, or the last non-empty line."""
    end = stdout.rfind(OUTPUT_END_MARKER)
    if end != -1:
        start = stdout.rfind(OUTPUT_START_MARKER, 0, end)
        if start != -1:
            return stdout[start + len(OUTPUT_START_MARKER):end].strip()
    lines = [line for line in stdout.strip().splitlines() if line.strip()]
    return lines[-1] if lines else ""


# ---------------------------------------------------------------------------
# Capture and normalisation
# ---------------------------------------------------------------------------

class OutputCapture:
    """Size-capped text accumulator.

    ``limit`` is in UTF-8 bytes.  Once it is reached, further text is
    dropped and ``truncated`` is set; a character that would straddle the
    limit is dropped whole.  ``append()`` returns True only on the call
    that first truncates, so callers can warn exactly once.
    """

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.truncated = False
        self._parts: list[str] = []
        self._size = 0

    def append(self, text: str) -> bool:
        if self.truncated or not text:
            return False
        data = text.encode("utf-8", errors="surrogatepass")
        remaining = self.limit - self._size
        if len(data) > remaining:
            self._parts.append(data[:remaining].decode("utf-8", errors="ignore"))
            self._size = self.limit
            self.truncated = True
            return True
        self._parts.append(text)
        self._size += len(data)
        return False

    def __len__(self) -> int:
        return self._size

    @property
    def text(self) -> str:
        return "".join(self._parts)


_ANSI_RE = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")

# Lines the agent CLI prints on every run that carry no answer content.
CHROME_LINES = (
    "Opening browser...",
    "Press (^) + C to cancel",
)


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def normalize_output(text: str) -> str:
    """Strip colour codes, CRs, blank lines and CLI chrome."""
    cleaned = strip_ansi(text).replace("\r", "\n")
    lines = [
        line.rstrip()
        for line in cleaned.split("\n")
        if line.strip() and not any(marker in line for marker in CHROME_LINES)
    ]
    return "\n".join(lines).strip()


def tail(text: str, limit: int) -> str:
    return text[-limit:] if len(text) > limit else text

"""File-based mailbox for follow-up messages to a running agent.

The mailbox is a single directory (``<ipc>/input/``) with one writer side
(the host) and one reader side (the agent runner):

    <stamp>.json  — ``{"type": "message", "text": "..."}``; read once, deleted
    _close        — presence-only sentinel; ends the conversation

There is no locking.  Writers create messages under a temporary name and
rename them into place, so the reader only ever lists complete files.  The
reader deletes every entry it opens, parsed or not, so a message is
delivered at most once.  The close sentinel is checked before messages on
every poll.

Usage:
    python -m warren.mailbox send <ipc_dir> <text>
    python -m warren.mailbox close <ipc_dir>
"""

import argparse
import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from warren.paths import CLOSE_SENTINEL, input_dir as _input_dir

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5


@dataclass
class MailboxMessage:
    text: str
    type: str = "message"

    def to_json(self) -> str:
        return json.dumps({"type": self.type, "text": self.text})


# ---------------------------------------------------------------------------
# Writer side (host)
# ---------------------------------------------------------------------------

def send_message(input_dir: Path, text: str) -> Path:
    """Drop a follow-up message into the mailbox.  Returns the file path.

    Names start with a nanosecond timestamp so the reader's lexical
    order matches send order.
    """
    input_dir.mkdir(parents=True, exist_ok=True)
    name = f"{time.time_ns():020d}-{uuid.uuid4().hex[:8]}.json"
    tmp = input_dir / f".{name}.tmp"
    tmp.write_text(MailboxMessage(text=text).to_json())
    final = input_dir / name
    tmp.rename(final)
    logger.debug("Mailbox message queued | file=%s | length=%d", final.name, len(text))
    return final


def request_close(input_dir: Path) -> None:
    """Ask the runner to finish after its current turn."""
    input_dir.mkdir(parents=True, exist_ok=True)
    (input_dir / CLOSE_SENTINEL).touch()
    logger.info("Close sentinel written | dir=%s", input_dir)


def clear_close(input_dir: Path) -> None:
    """Remove a stale close sentinel left over from a previous run."""
    (input_dir / CLOSE_SENTINEL).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Reader side (agent runner)
# ---------------------------------------------------------------------------

def should_close(input_dir: Path) -> bool:
    """Consume the close sentinel if present."""
    sentinel = input_dir / CLOSE_SENTINEL
    if not sentinel.exists():
        return False
    try:
        sentinel.unlink()
    except FileNotFoundError:
        pass
    return True


def drain(input_dir: Path) -> list[str]:
    """Read and delete every pending message, in lexical filename order.

    Entries that fail to parse are logged and deleted as well.  If the
    directory itself cannot be read the error is logged and nothing is
    returned.
    """
    try:
        input_dir.mkdir(parents=True, exist_ok=True)
        files = sorted(p for p in input_dir.iterdir() if p.name.endswith(".json") and p.is_file())
    except OSError as e:
        logger.error("Mailbox drain error | dir=%s | error=%s", input_dir, e)
        return []

    messages: list[str] = []
    for path in files:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Failed to process input file %s: %s", path.name, e)
            data = None
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove input file %s: %s", path.name, e)

        if isinstance(data, dict) and data.get("type") == "message" and data.get("text"):
            messages.append(str(data["text"]))
    return messages


async def wait_for_message(
    input_dir: Path,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> str | None:
    """Block until messages arrive or the close sentinel appears.

    Returns all messages found in one drain joined by newlines, or None
    when the conversation was closed.
    """
    while True:
        if should_close(input_dir):
            return None
        messages = drain(input_dir)
        if messages:
            return "\n".join(messages)
        await asyncio.sleep(poll_interval)


def main() -> None:
    parser = argparse.ArgumentParser(description="Warren mailbox writer")
    sub = parser.add_subparsers(dest="command", required=True)
    p_send = sub.add_parser("send", help="Queue a follow-up message")
    p_send.add_argument("ipc_dir", type=Path)
    p_send.add_argument("text")
    p_close = sub.add_parser("close", help="Signal end of conversation")
    p_close.add_argument("ipc_dir", type=Path)
    args = parser.parse_args()

    inbox = _input_dir(args.ipc_dir)
    if args.command == "send":
        print(send_message(inbox, args.text))
    else:
        request_close(inbox)


if __name__ == "__main__":
    main()

"""
Helpers for turning exceptions into text for requesters and operators.
"""

import re
import traceback

from soundrelay import messages
from soundrelay.exceptions import QueueFullError, UserFacingRetrievalError

MAX_OPERATOR_NOTICE_CHARS = 3500

_ERROR_LINE = re.compile(r"ERROR:\s*(.+)", re.IGNORECASE)


def truncate(text: str, max_length: int = 140) -> str:
    if len(text) <= max_length:
        return text
    return f"{text[: max_length - 1]}…"


def format_user_facing_error(error: BaseException) -> str:
    """Picks the message to show a requester for a failed request."""
    if isinstance(error, UserFacingRetrievalError):
        return error.user_message
    if isinstance(error, QueueFullError):
        return messages.QUEUE_FULL
    return messages.GENERIC_ERROR


def should_notify_admin(error: BaseException | None) -> bool:
    """
    Operators only hear about unclassified failures. Requesters already got a
    precise message for the others.
    """
    if error is None:
        return True
    return not isinstance(error, (UserFacingRetrievalError, QueueFullError))


def describe_error(error: object) -> str:
    """Renders an error (with traceback when available) for an operator notice."""
    if error is None:
        return "Unknown error"
    if isinstance(error, BaseException):
        text = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ).strip()
        if not text:
            text = f"{type(error).__name__}: {error}"
    else:
        text = str(error)
    if len(text) > MAX_OPERATOR_NOTICE_CHARS:
        return text[:MAX_OPERATOR_NOTICE_CHARS] + "..."
    return text


def pick_user_friendly_line(text: str | None) -> str | None:
    """
    Extracts the most readable line from tool output: the `ERROR:` line when
    yt-dlp printed one, otherwise the first non-traceback line.
    """
    if not text:
        return None
    if match := _ERROR_LINE.search(text):
        return truncate(match.group(1).strip())

    lines = [
        line.strip()
        for line in text.splitlines()
        if line.strip()
        and not line.strip().startswith(("Traceback", 'File "', "at "))
    ]
    if not lines:
        return None
    return truncate(lines[0])


def extract_readable_error_text(error: BaseException) -> str | None:
    """Returns the first readable line among the message, stderr, and stdout."""
    candidates = [str(error), getattr(error, "stderr", ""), getattr(error, "stdout", "")]
    for text in candidates:
        if isinstance(text, str) and (cleaned := pick_user_friendly_line(text)):
            return cleaned
    return None

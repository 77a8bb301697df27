"""This modules contains common utils"""

# pylint: disable=broad-exception-caught

import os
import re
import urllib.parse
from typing import Optional

from fake_useragent import UserAgent
from tqdm import tqdm

from flickrsync.config import DEBUG


def dbg(msg: str) -> None:
    """
    Print a debug message when the DEBUG flag is enabled.

    Args:
        msg (str): Message to print when debug logging is active.

    Returns:
        None
    """
    if DEBUG:
        tqdm.write(f"[debug] {msg}")


def get_random_user_agent() -> str:
    """
    Return a random user agent string; fallback to a generic UA if generator fails.
    """
    try:
        return UserAgent().random
    except Exception:
        return "Mozilla/5.0"


def confirm(prompt: str) -> bool:
    """
    Prompt the user with a yes/no question.

    Args:
        prompt (str): The message to display to the user.

    Returns:
        bool: True only when the user typed 'y' or 'yes'; empty input means no.
    """
    i = input(prompt).strip().lower()
    return i in {"y", "yes"}


def sanitize(name: Optional[str]) -> str:
    """
    Sanitize a string to be safe for folder/file names by replacing invalid
    characters with underscores. If input is None or empty, returns "unknown".

    Args:
        name (Optional[str]): The input string to sanitize.

    Returns:
        str: A sanitized string safe to use as filename or folder name.
    """
    return re.sub(r'[\\/*?:"<>|@]', "_", name) if name else "unknown"


def url_basename(url: Optional[str]) -> Optional[str]:
    """Return the last path segment of a URL, ignoring host and query."""
    if not url:
        return None
    path = urllib.parse.urlsplit(url).path
    base = os.path.basename(path)
    return base or None


def format_size(num_bytes: int) -> str:
    """Render a byte count as a short human readable string; -1 means unknown."""
    if num_bytes < 0:
        return "?"
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}GB"

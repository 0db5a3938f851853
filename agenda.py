#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = []
# ///
"""
Calendar agenda reader

Wraps `gcalcli agenda` and turns its colored, human-readable output into
bullet lines for the daily summary. gcalcli has no structured output mode we
rely on, so parsing is best-effort and isolated in parse_agenda_line().

Usage:
    uv run agenda.py 2026-01-26 2026-01-27
"""

import logging
import re
import shutil
import subprocess
import sys
from typing import Callable, NamedTuple

logger = logging.getLogger(__name__)

GCALCLI_COMMAND = 'gcalcli'

# Calendar entries whose titles contain any of these (case-insensitive) are dropped
DEFAULT_EXCLUDE_PATTERNS = [
    'ask before booking',
    'out of office',
    'ooo',
    'focus time',
    'lunch',
    'blocked',
    'do not book',
    'busy',
    'on call -',
    'stand up',
    'standup',
    'stand-up',
]

ANSI_ESCAPE_RE = re.compile(r'\x1b\[[0-9;]*m')

# gcalcli prints "Mon Dec 01" on its own line when a day has no timed events first
DATE_HEADER_RE = re.compile(r'^[A-Z][a-z]{2} [A-Z][a-z]{2} [0-9]{1,2}\s*$')

# 9:00, 14:30, 9:00am, 10:30 pm
TIME_RE = re.compile(r'([0-9]{1,2}:[0-9]{2})(?:\s?[ap]m\b)?', re.IGNORECASE)


class AgendaEntry(NamedTuple):
    time: str
    title: str


def gcalcli_available(command: str = GCALCLI_COMMAND) -> bool:
    return shutil.which(command) is not None


def strip_ansi(text: str) -> str:
    """Remove terminal color codes from gcalcli output."""
    return ANSI_ESCAPE_RE.sub('', text)


def parse_agenda_line(line: str) -> AgendaEntry | None:
    """Parse one line of agenda output.

    Returns None for date headers, all-day events (no time token) and lines
    with nothing after the time. The title is everything after the first
    time token, so a date prefix on the same line is ignored.
    """
    if DATE_HEADER_RE.match(line):
        return None

    match = TIME_RE.search(line)
    if not match:
        return None

    title = line[match.end():].strip()
    if not title:
        return None

    return AgendaEntry(time=match.group(0).strip(), title=title)


def is_noise(title: str, patterns: list[str] | None = None) -> bool:
    """Check whether a meeting title matches any exclude pattern."""
    if patterns is None:
        patterns = DEFAULT_EXCLUDE_PATTERNS
    lowered = title.lower()
    return any(p.lower() in lowered for p in patterns if p)


def fetch_agenda(start: str, end: str, hide_started: bool = True,
                 command: str = GCALCLI_COMMAND, timeout: int = 60) -> str:
    """Run gcalcli agenda for [start, end) and return its raw stdout.

    Returns an empty string if gcalcli fails; the failure is logged.
    """
    args = [command, 'agenda', start, end]
    if hide_started:
        args.append('--nostarted')

    logger.debug(f"Running: {' '.join(args)}")
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        logger.warning(f"{command} not found")
        return ''
    except subprocess.TimeoutExpired:
        logger.warning(f"{command} agenda timed out after {timeout}s")
        return ''

    if result.returncode != 0:
        logger.warning(f"{command} agenda failed: {(result.stderr or '').strip()[:200]}")
        return ''

    return result.stdout or ''


def get_meetings(start: str, end: str, use_ai: bool = True, hide_started: bool = True, *,
                 command: str = GCALCLI_COMMAND,
                 exclude_patterns: list[str] | None = None,
                 summarize: Callable[[str], str] | None = None,
                 timeout: int = 60) -> list[str]:
    """Get formatted meeting bullets for a date range.

    Skips date headers, all-day events, untitled lines and noise entries
    (standups, OOO, focus time...). When use_ai is set, each kept title is
    passed through summarize(). Order follows the agenda.
    """
    raw = strip_ansi(fetch_agenda(start, end, hide_started, command=command, timeout=timeout))

    lines = []
    for line in raw.splitlines():
        if not line.strip():
            continue

        entry = parse_agenda_line(line)
        if entry is None:
            continue

        if is_noise(entry.title, exclude_patterns):
            logger.debug(f"Skipping noise entry: {entry.title}")
            continue

        title = entry.title
        if use_ai and summarize is not None:
            title = summarize(title)

        lines.append(f"• {title}")

    return lines


if __name__ == '__main__':
    if len(sys.argv) != 3:
        print("Usage: uv run agenda.py START_DATE END_DATE")
        sys.exit(1)
    if not gcalcli_available():
        print(f"Error: {GCALCLI_COMMAND} not found on PATH")
        sys.exit(1)
    for bullet in get_meetings(sys.argv[1], sys.argv[2], use_ai=False, hide_started=False):
        print(bullet)

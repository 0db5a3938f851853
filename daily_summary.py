#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "pyyaml>=6.0",
#     "requests>=2.31.0",
# ]
# ///
"""
Daily Summary

Generates a Slack-ready summary of your PRs, meetings, and current work.

Usage:
    uv run daily_summary.py              # Yesterday's summary + today's agenda
    uv run daily_summary.py 2025-12-01   # Specific date

Prerequisites:
  - gh (GitHub CLI), authenticated
  - gcalcli (optional, meetings are skipped without it)
  - ANTHROPIC_API_KEY env var (optional, for shortening long meeting titles)

Configuration is read from config.yaml next to this script, or from the file
named by DAILY_SUMMARY_CONFIG / --config. See config.example.yaml.
"""

import argparse
import json
import logging
import os
import re
import subprocess
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

import requests
import yaml

import agenda

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))

# Logs go to stderr so stdout stays pasteable
logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ============================================================================
# Configuration
# ============================================================================

ANTHROPIC_API_URL = 'https://api.anthropic.com/v1/messages'
ANTHROPIC_VERSION = '2023-06-01'
SUMMARY_MODEL = 'claude-3-haiku-20240307'

# Titles shorter than this are left alone
SUMMARY_MIN_LENGTH = 30

SUMMARY_INSTRUCTION = (
    "Shorten this meeting title to 5-8 words max. Keep it professional and clear. "
    "Just output the shortened title, nothing else. Meeting: {title}"
)

TRUNK_BRANCHES = ['main', 'master']

# Removed from the start of a branch name, in order. Each entry is a regex.
DEFAULT_STRIP_RULES = [
    r'feature/',
    r'fix/',
    r'[A-Z][A-Z0-9]*-[0-9]+[-_]*',
]

PR_FIELDS = 'number,title,state,url,createdAt,mergedAt'

STATUS_GLYPHS = {
    'MERGED': '✅',
    'OPEN': '🟡',
}
CLOSED_GLYPH = '🔴'
WORK_GLYPH = '🔧'


def get_default_config_file() -> str:
    """Return the config path from DAILY_SUMMARY_CONFIG, or config.yaml beside this script."""
    return os.getenv('DAILY_SUMMARY_CONFIG') or os.path.join(SCRIPT_DIR, 'config.yaml')


def load_config(config_path: str | None = None) -> dict:
    """Load configuration from a YAML file.

    A missing file is not an error: every setting has a default.
    """
    path = Path(config_path or get_default_config_file()).expanduser()
    if not path.exists():
        if config_path:
            logger.warning(f"Configuration file not found: {path}, using defaults")
        return {}

    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _get_nested(config: dict, keys: list[str], default=None):
    current = config
    for key in keys:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


class DigestSettings:
    def __init__(self, config: dict | None = None, repo_path: str | None = None):
        config = config or {}

        # CLI arg > env var > config file > current directory
        raw_repo_path = repo_path or os.getenv('DAILY_SUMMARY_REPO') or config.get('repo_path') or '.'
        self.repo_path = os.path.expanduser(str(raw_repo_path))

        self.github_repo = _get_nested(config, ['github', 'repo'])
        self.pr_limit = int(_get_nested(config, ['github', 'pr_limit'], 50))

        self.git_remote = _get_nested(config, ['git', 'remote'], 'origin')
        self.trunk_branches = list(_get_nested(config, ['git', 'trunk_branches'], TRUNK_BRANCHES) or TRUNK_BRANCHES)

        self.strip_rules = list(_get_nested(config, ['branch', 'strip_rules'], DEFAULT_STRIP_RULES) or [])

        self.calendar_command = _get_nested(config, ['calendar', 'command'], agenda.GCALCLI_COMMAND)
        self.exclude_patterns = list(
            _get_nested(config, ['calendar', 'exclude_patterns'], agenda.DEFAULT_EXCLUDE_PATTERNS) or []
        )

        self.anthropic_api_key = os.getenv('ANTHROPIC_API_KEY', '')
        self.summary_model = _get_nested(config, ['summarizer', 'model'], SUMMARY_MODEL)
        self.summary_api_url = _get_nested(config, ['summarizer', 'api_url'], ANTHROPIC_API_URL)
        self.summary_min_length = int(_get_nested(config, ['summarizer', 'min_length'], SUMMARY_MIN_LENGTH))
        self.summary_max_tokens = int(_get_nested(config, ['summarizer', 'max_tokens'], 50))
        self.summary_timeout_seconds = float(_get_nested(config, ['summarizer', 'timeout_seconds'], 30))

        self.command_timeout_seconds = int(_get_nested(config, ['commands', 'timeout_seconds'], 60))

    def working_dir(self) -> str | None:
        return self.repo_path if os.path.isdir(self.repo_path) else None


# ============================================================================
# Date Resolution
# ============================================================================

DISPLAY_FORMAT = '%A, %B %d, %Y'


class DigestDates:
    """Dates for one run: the target day, its exclusive end, and today."""

    def __init__(self, target: str, next_date: str | None, today: str, tomorrow: str,
                 target_display: str, today_display: str, explicit: bool = False):
        self.target = target
        self.next_date = next_date
        self.today = today
        self.tomorrow = tomorrow
        self.target_display = target_display
        self.today_display = today_display
        self.explicit = explicit

    def window(self) -> tuple[str, str] | None:
        """Return the [start, end) UTC timestamp bounds of the target day."""
        if not self.next_date:
            return None
        return f"{self.target}T00:00:00Z", f"{self.next_date}T00:00:00Z"


def resolve_dates(date_arg: str | None = None, today: date | None = None) -> DigestDates:
    """Work out the target date (yesterday by default) and its neighbours.

    An unparseable date_arg is kept as-is for display; it gets no window, so
    date-bounded lookups for it come back empty.
    """
    today = today or date.today()
    tomorrow = today + timedelta(days=1)

    target: date | None
    if date_arg:
        try:
            target = datetime.strptime(date_arg, '%Y-%m-%d').date()
        except ValueError:
            logger.warning(f"Could not parse date '{date_arg}', expected YYYY-MM-DD")
            target = None
    else:
        target = today - timedelta(days=1)

    if target is None:
        target_str = date_arg
        next_str = None
        target_display = date_arg
    else:
        target_str = target.isoformat()
        next_str = (target + timedelta(days=1)).isoformat()
        target_display = target.strftime(DISPLAY_FORMAT)

    return DigestDates(
        target=target_str,
        next_date=next_str,
        today=today.isoformat(),
        tomorrow=tomorrow.isoformat(),
        target_display=target_display,
        today_display=today.strftime(DISPLAY_FORMAT),
        explicit=bool(date_arg),
    )


# ============================================================================
# External Commands
# ============================================================================

def run_command(args: list[str], cwd: str | None = None,
                timeout: int = 60) -> subprocess.CompletedProcess | None:
    """Run a command and capture its output.

    Returns None when the command could not be started or timed out.
    """
    logger.debug(f"Running: {' '.join(args)} (cwd={cwd})")
    try:
        return subprocess.run(args, cwd=cwd, capture_output=True, text=True, timeout=timeout)
    except OSError as e:
        logger.warning(f"Could not run {args[0]}: {e}")
    except subprocess.TimeoutExpired:
        logger.warning(f"{args[0]} timed out after {timeout}s")
    return None


# ============================================================================
# Meeting Title Summarizer
# ============================================================================

def _extract_text(data) -> str:
    """Pull content[0].text out of a Messages API response."""
    if not isinstance(data, dict):
        return ''
    content = data.get('content')
    if not isinstance(content, list) or not content:
        return ''
    first = content[0]
    if not isinstance(first, dict):
        return ''
    text = first.get('text')
    return text.strip() if isinstance(text, str) else ''


def summarize_meeting_title(title: str, settings: DigestSettings | None = None) -> str:
    """Shorten a long meeting title with Claude.

    Falls back to the original title on any failure, so this never raises.
    """
    settings = settings or DigestSettings()

    if len(title) < settings.summary_min_length:
        return title

    if not settings.anthropic_api_key:
        logger.debug("ANTHROPIC_API_KEY not set, keeping original meeting title")
        return title

    headers = {
        'Content-Type': 'application/json',
        'x-api-key': settings.anthropic_api_key,
        'anthropic-version': ANTHROPIC_VERSION,
    }
    payload = {
        'model': settings.summary_model,
        'max_tokens': settings.summary_max_tokens,
        'messages': [{
            'role': 'user',
            'content': SUMMARY_INSTRUCTION.format(title=title),
        }],
    }

    try:
        resp = requests.post(settings.summary_api_url, headers=headers, json=payload,
                             timeout=settings.summary_timeout_seconds)
    except requests.RequestException as e:
        logger.warning(f"Meeting title summary failed: {e}")
        return title

    if resp.status_code != 200:
        logger.warning(f"Meeting title summary failed ({resp.status_code}): {resp.text[:200]}")
        return title

    try:
        summary = _extract_text(resp.json())
    except ValueError as e:
        logger.warning(f"Meeting title summary returned invalid JSON: {e}")
        return title

    if not summary or summary == 'null':
        return title
    return summary


# ============================================================================
# Pull Requests
# ============================================================================

def list_pull_requests(state: str, settings: DigestSettings) -> list[dict]:
    """List your PRs in the given state via `gh pr list`.

    Any gh failure (not installed, not authenticated, bad JSON) yields an
    empty list and a warning on stderr.
    """
    args = [
        'gh', 'pr', 'list',
        '--author', '@me',
        '--state', state,
        '--limit', str(settings.pr_limit),
        '--json', PR_FIELDS,
    ]
    if settings.github_repo:
        args.extend(['--repo', settings.github_repo])

    result = run_command(args, cwd=settings.working_dir(), timeout=settings.command_timeout_seconds)
    if result is None:
        return []
    if result.returncode != 0:
        logger.warning(f"gh pr list --state {state} failed: {(result.stderr or '').strip()[:200]}")
        return []

    try:
        prs = json.loads(result.stdout or '[]')
    except json.JSONDecodeError as e:
        logger.warning(f"gh pr list returned invalid JSON: {e}")
        return []

    if not isinstance(prs, list):
        return []
    return [pr for pr in prs if isinstance(pr, dict)]


def created_in_window(pr: dict, start: str, end: str) -> bool:
    created = pr.get('createdAt') or ''
    return start <= created < end


def merged_in_window(pr: dict, start: str, end: str) -> bool:
    """Merged inside the window but created before it.

    PRs created and merged the same day are left to created_in_window.
    """
    merged = pr.get('mergedAt') or ''
    created = pr.get('createdAt') or ''
    return bool(merged) and start <= merged < end and bool(created) and created < start


def open_outside_window(pr: dict, start: str, end: str) -> bool:
    return pr.get('state') == 'OPEN' and not created_in_window(pr, start, end)


def get_created_prs(dates: DigestDates, settings: DigestSettings) -> list[dict]:
    """PRs of any state created on the target date."""
    window = dates.window()
    if window is None:
        return []
    return [pr for pr in list_pull_requests('all', settings) if created_in_window(pr, *window)]


def get_merged_prs(dates: DigestDates, settings: DigestSettings) -> list[dict]:
    """PRs merged on the target date that were created earlier."""
    window = dates.window()
    if window is None:
        return []
    return [pr for pr in list_pull_requests('merged', settings) if merged_in_window(pr, *window)]


def get_other_open_prs(dates: DigestDates, settings: DigestSettings) -> list[dict]:
    """Open PRs not already listed as created on the target date."""
    prs = list_pull_requests('open', settings)
    window = dates.window()
    if window is None:
        return [pr for pr in prs if pr.get('state') == 'OPEN']
    return [pr for pr in prs if open_outside_window(pr, *window)]


def format_pr_line(pr: dict, state: str | None = None) -> str:
    state = state or pr.get('state', '')
    glyph = STATUS_GLYPHS.get(state, CLOSED_GLYPH)
    return f"• {glyph} <{pr.get('url', '')}|{pr.get('title', '')}>"


# ============================================================================
# Branch Activity
# ============================================================================

def humanize_branch_name(branch: str, strip_rules: list[str] | None = None) -> str:
    """Turn a branch name into a feature title.

    Example: feature/SESO-1234-add-widget -> Add Widget
    """
    if strip_rules is None:
        strip_rules = DEFAULT_STRIP_RULES

    name = branch.strip()
    for rule in strip_rules:
        name = re.sub(f'^(?:{rule})', '', name)

    words = re.split(r'[-_\s]+', name)
    return ' '.join(w[:1].upper() + w[1:].lower() for w in words if w)


def _run_git(args: list[str], settings: DigestSettings) -> subprocess.CompletedProcess | None:
    if not os.path.isdir(settings.repo_path):
        return None
    return run_command(['git', *args], cwd=settings.repo_path, timeout=settings.command_timeout_seconds)


def is_work_tree(settings: DigestSettings) -> bool:
    result = _run_git(['rev-parse', '--is-inside-work-tree'], settings)
    return bool(result and result.returncode == 0 and result.stdout.strip() == 'true')


def get_current_branch(settings: DigestSettings) -> str:
    result = _run_git(['branch', '--show-current'], settings)
    if result is None or result.returncode != 0:
        return ''
    return result.stdout.strip()


def get_trunk_ref(settings: DigestSettings) -> str | None:
    """Return the first remote trunk ref that exists, e.g. origin/main."""
    for name in settings.trunk_branches:
        ref = f"{settings.git_remote}/{name}"
        result = _run_git(['rev-parse', '--verify', '--quiet', ref], settings)
        if result is not None and result.returncode == 0:
            return ref
    return None


def get_first_commit_date(settings: DigestSettings) -> str | None:
    """Committer date (YYYY-MM-DD) of the oldest commit on HEAD not on trunk."""
    trunk_ref = get_trunk_ref(settings)
    if not trunk_ref:
        logger.debug("No remote trunk ref found, treating branch as new")
        return None

    result = _run_git(['log', f'{trunk_ref}..HEAD', '--reverse', '--format=%cd', '--date=short'], settings)
    if result is None or result.returncode != 0:
        return None

    for line in result.stdout.splitlines():
        if line.strip():
            return line.strip()
    return None


def has_open_pr_for_branch(branch: str, settings: DigestSettings) -> bool:
    args = ['gh', 'pr', 'list', '--head', branch, '--state', 'open', '--json', 'number']
    if settings.github_repo:
        args.extend(['--repo', settings.github_repo])

    result = run_command(args, cwd=settings.working_dir(), timeout=settings.command_timeout_seconds)
    if result is None or result.returncode != 0:
        return False
    try:
        prs = json.loads(result.stdout or '[]')
    except json.JSONDecodeError:
        return False
    return isinstance(prs, list) and len(prs) > 0


class BranchActivity:
    def __init__(self, branch: str, feature: str, predates_today: bool, has_open_pr: bool):
        self.branch = branch
        self.feature = feature
        self.predates_today = predates_today
        self.has_open_pr = has_open_pr

    def yesterday_line(self) -> str | None:
        if self.has_open_pr or not self.predates_today:
            return None
        return f"• {WORK_GLYPH} Worked on {self.feature}"

    def today_line(self) -> str | None:
        # An open PR already shows up in the PR list
        if self.has_open_pr:
            return None
        if self.predates_today:
            return f"• {WORK_GLYPH} Keep working on {self.feature}"
        return f"• {WORK_GLYPH} Working on {self.feature}"


def detect_branch_activity(dates: DigestDates, settings: DigestSettings) -> BranchActivity | None:
    """Inspect the configured repo's current branch.

    Returns None on trunk, outside a git repo, or when the branch name
    humanizes to nothing.
    """
    if not is_work_tree(settings):
        logger.debug(f"{settings.repo_path} is not a git work tree, skipping branch activity")
        return None

    branch = get_current_branch(settings)
    if not branch or branch in settings.trunk_branches:
        return None

    feature = humanize_branch_name(branch, settings.strip_rules)
    if not feature.strip():
        return None

    has_open_pr = has_open_pr_for_branch(branch, settings)
    first_date = get_first_commit_date(settings)
    predates_today = bool(first_date) and first_date < dates.today

    logger.debug(f"Branch {branch}: feature={feature!r} first_commit={first_date} open_pr={has_open_pr}")
    return BranchActivity(branch, feature, predates_today, has_open_pr)


# ============================================================================
# Rendering
# ============================================================================

def build_summary(dates: DigestDates, settings: DigestSettings, use_ai: bool = True) -> list[str]:
    """Build the summary as a list of output lines."""
    calendar_available = agenda.gcalcli_available(settings.calendar_command)

    def meetings(start: str, end: str, hide_started: bool) -> list[str]:
        if not calendar_available:
            return []
        return agenda.get_meetings(
            start, end, use_ai=use_ai, hide_started=hide_started,
            command=settings.calendar_command,
            exclude_patterns=settings.exclude_patterns,
            summarize=lambda title: summarize_meeting_title(title, settings),
            timeout=settings.command_timeout_seconds,
        )

    activity = detect_branch_activity(dates, settings)

    # --- Yesterday (or the requested date) ---
    lines = ['']
    lines.append(f"*{dates.target_display}:*" if dates.explicit else '*Yesterday:*')
    lines.append('')

    day_lines = [format_pr_line(pr) for pr in get_created_prs(dates, settings)]
    day_lines += [format_pr_line(pr, state='MERGED') for pr in get_merged_prs(dates, settings)]
    if activity is not None and activity.yesterday_line():
        day_lines.append(activity.yesterday_line())
    if dates.next_date:
        day_lines += meetings(dates.target, dates.next_date, hide_started=False)

    lines.extend(day_lines or ['_No activity_'])

    # --- Today ---
    lines.append('')
    lines.append(f"*Today ({dates.today_display}):*" if dates.explicit else '*Today:*')
    lines.append('')

    if activity is not None and activity.today_line():
        lines.append(activity.today_line())
    lines += meetings(dates.today, dates.tomorrow, hide_started=True)

    # --- Everything else still open ---
    other_open = get_other_open_prs(dates, settings)
    if other_open:
        lines.append('')
        lines.append('*Other open PRs:*')
        lines.append('')
        lines += [format_pr_line(pr) for pr in other_open]

    lines.append('')
    return lines


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description='Generate a Slack-ready summary of your PRs, meetings, and current work.',
        epilog='Without a date, summarizes yesterday and lists today\'s agenda.'
    )
    parser.add_argument('date', nargs='?', default=None,
                        help='Target date as YYYY-MM-DD. Default: yesterday.')
    parser.add_argument('--config', default=None,
                        help='Path to YAML config. Default: DAILY_SUMMARY_CONFIG env var, or config.yaml beside this script.')
    parser.add_argument('--repo-path', default=None,
                        help='Local working copy to inspect. Default: DAILY_SUMMARY_REPO env var, repo_path in config, or current directory.')
    parser.add_argument('--no-ai', action='store_true',
                        help='Do not shorten long meeting titles.')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging on stderr.')
    args = parser.parse_args(argv)

    logging.getLogger().setLevel(logging.DEBUG if args.debug else logging.WARNING)

    config = load_config(args.config)
    settings = DigestSettings(config, repo_path=args.repo_path)
    dates = resolve_dates(args.date)

    print('\n'.join(build_summary(dates, settings, use_ai=not args.no_ai)))
    return 0


if __name__ == '__main__':
    sys.exit(main())

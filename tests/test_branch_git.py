#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "pytest>=8.0.0",
#     "pyyaml>=6.0",
#     "requests>=2.31.0",
# ]
# ///
"""
Tests for branch activity detection against a real git repository.

Covers:
- Current branch lookup and trunk detection
- First commit date relative to origin/main (or origin/master)
- detect_branch_activity() end to end (gh lookup mocked)

Run with: uv run pytest tests/test_branch_git.py -v
"""

import os
import subprocess
import sys
from datetime import date
from pathlib import Path
from unittest import mock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
import daily_summary

TODAY = date(2026, 1, 27)


def _git(repo: Path, *args, when: str = '2026-01-01T12:00:00+00:00'):
    """Run git in repo with fixed identity and commit dates."""
    env = os.environ.copy()
    env.update({
        'GIT_AUTHOR_NAME': 'Test',
        'GIT_AUTHOR_EMAIL': 'test@test.com',
        'GIT_COMMITTER_NAME': 'Test',
        'GIT_COMMITTER_EMAIL': 'test@test.com',
        'GIT_AUTHOR_DATE': when,
        'GIT_COMMITTER_DATE': when,
    })
    return subprocess.run(
        ['git', '-c', 'commit.gpgsign=false', *args],
        cwd=repo, env=env, capture_output=True, text=True, check=True,
    )


def _commit(repo: Path, name: str, when: str):
    (repo / name).write_text(name)
    _git(repo, 'add', name, when=when)
    _git(repo, 'commit', '-m', f'Add {name}', when=when)


@pytest.fixture
def git_repo(tmp_path):
    """A repo on main with one commit, mirrored as origin/main."""
    repo = tmp_path / 'repo'
    repo.mkdir()
    _git(repo, 'init')
    _git(repo, 'symbolic-ref', 'HEAD', 'refs/heads/main')
    _commit(repo, 'README.md', '2026-01-01T12:00:00+00:00')
    _git(repo, 'update-ref', 'refs/remotes/origin/main', 'HEAD')
    return repo


@pytest.fixture
def settings(git_repo):
    with mock.patch.dict(os.environ, {'ANTHROPIC_API_KEY': '', 'DAILY_SUMMARY_REPO': ''}):
        return daily_summary.DigestSettings({}, repo_path=str(git_repo))


@pytest.fixture
def no_open_pr():
    with mock.patch.object(daily_summary, 'has_open_pr_for_branch', return_value=False) as m:
        yield m


def _dates():
    return daily_summary.resolve_dates(None, today=TODAY)


class TestGitHelpers:

    def test_is_work_tree(self, settings):
        assert daily_summary.is_work_tree(settings)

    def test_not_a_work_tree(self, tmp_path):
        plain = tmp_path / 'plain'
        plain.mkdir()
        settings = daily_summary.DigestSettings({}, repo_path=str(plain))
        assert not daily_summary.is_work_tree(settings)

    def test_missing_directory(self, tmp_path):
        settings = daily_summary.DigestSettings({}, repo_path=str(tmp_path / 'nope'))
        assert not daily_summary.is_work_tree(settings)
        assert daily_summary.get_current_branch(settings) == ''

    def test_current_branch(self, git_repo, settings):
        assert daily_summary.get_current_branch(settings) == 'main'
        _git(git_repo, 'checkout', '-b', 'feature/SESO-1-thing')
        assert daily_summary.get_current_branch(settings) == 'feature/SESO-1-thing'

    def test_trunk_ref_prefers_main(self, settings):
        assert daily_summary.get_trunk_ref(settings) == 'origin/main'

    def test_trunk_ref_falls_back_to_master(self, git_repo, settings):
        _git(git_repo, 'update-ref', 'refs/remotes/origin/master', 'HEAD')
        _git(git_repo, 'update-ref', '-d', 'refs/remotes/origin/main')
        assert daily_summary.get_trunk_ref(settings) == 'origin/master'

    def test_no_trunk_ref(self, git_repo, settings):
        _git(git_repo, 'update-ref', '-d', 'refs/remotes/origin/main')
        assert daily_summary.get_trunk_ref(settings) is None
        assert daily_summary.get_first_commit_date(settings) is None

    def test_first_commit_date_is_oldest_on_branch(self, git_repo, settings):
        _git(git_repo, 'checkout', '-b', 'feature/widget')
        _commit(git_repo, 'a.txt', '2026-01-20T12:00:00+00:00')
        _commit(git_repo, 'b.txt', '2026-01-26T12:00:00+00:00')

        assert daily_summary.get_first_commit_date(settings) == '2026-01-20'

    def test_first_commit_date_none_without_commits(self, git_repo, settings):
        _git(git_repo, 'checkout', '-b', 'feature/widget')
        assert daily_summary.get_first_commit_date(settings) is None


class TestDetectBranchActivityInRepo:

    def test_on_main_yields_nothing(self, settings, no_open_pr):
        assert daily_summary.detect_branch_activity(_dates(), settings) is None
        no_open_pr.assert_not_called()

    def test_branch_from_earlier_day(self, git_repo, settings, no_open_pr):
        _git(git_repo, 'checkout', '-b', 'feature/SESO-1234-add-widget')
        _commit(git_repo, 'widget.py', '2026-01-20T12:00:00+00:00')

        activity = daily_summary.detect_branch_activity(_dates(), settings)

        assert activity.feature == 'Add Widget'
        assert activity.yesterday_line() == '• 🔧 Worked on Add Widget'
        assert activity.today_line() == '• 🔧 Keep working on Add Widget'

    def test_branch_started_today(self, git_repo, settings, no_open_pr):
        _git(git_repo, 'checkout', '-b', 'fix/payment_retry_logic')
        _commit(git_repo, 'retry.py', '2026-01-27T09:00:00+00:00')

        activity = daily_summary.detect_branch_activity(_dates(), settings)

        assert activity.feature == 'Payment Retry Logic'
        assert activity.yesterday_line() is None
        assert activity.today_line() == '• 🔧 Working on Payment Retry Logic'

    def test_open_pr_suppresses_lines(self, git_repo, settings):
        _git(git_repo, 'checkout', '-b', 'feature/widget')
        _commit(git_repo, 'widget.py', '2026-01-20T12:00:00+00:00')

        with mock.patch.object(daily_summary, 'has_open_pr_for_branch', return_value=True):
            activity = daily_summary.detect_branch_activity(_dates(), settings)

        assert activity.yesterday_line() is None
        assert activity.today_line() is None

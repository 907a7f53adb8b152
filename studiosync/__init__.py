"""
Studio Sync - optimistic list reconciliation for studio records.

This package keeps client-held, ordered collections of studio records
(packages per event type, event types, scheduler tasks) synchronized with
the studio server. Gestures are applied locally first, then persisted
through a sync gateway and reconciled against the authoritative answer.

Key modules:
- entities: Tagged record variants (Package, EventType, SchedulerTask)
- ordering: Deterministic display order for a group
- store: In-memory mirror of the last known server state
- mutator: Pure reducer computing optimistic state
- reconciler: Commit, rollback and stale-response discard per group
- controller: Owner of a store, dispatching gestures end to end
- gateway: Sync gateway interface, HTTP client and in-memory server
- scheduler: Task completion and payroll decisions
"""

import os
import re
import subprocess
from typing import Optional


def _run_git_command(args: list[str]) -> Optional[str]:
    """Run a Git command and return its output."""
    try:
        result = subprocess.run(
            ['git'] + args,
            capture_output=True,
            text=True,
            check=True,
            timeout=5
        )
        return result.stdout.strip()
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return None


def _get_version_from_git() -> Optional[str]:
    """
    Get version from Git tags.

    Version Format:
    - Tagged releases: "v1.2.3"
    - Development builds: "v1.2.3-dev.5+a1b2c3d"
    - No tags: "v0.0.0-dev+a1b2c3d"
    """
    describe = _run_git_command(['describe', '--tags', '--long', '--always'])

    if describe:
        # "v1.2.3-0-ga1b2c3d" or "v1.2.3-5-ga1b2c3d"
        match = re.match(r'^(.+?)-(\d+)-g([a-f0-9]+)$', describe)

        if match:
            tag, commits_since, commit_hash = match.groups()
            if int(commits_since) == 0:
                return tag
            return f"{tag}-dev.{commits_since}+{commit_hash}"

        commit_hash = _run_git_command(['rev-parse', '--short', 'HEAD'])
        if commit_hash:
            return f"v0.0.0-dev+{commit_hash}"

    return None


def _get_version() -> str:
    """
    Get version with priority: STUDIOSYNC_VERSION env var > _version.py > Git tags > fallback.
    """
    env_version = os.environ.get('STUDIOSYNC_VERSION')
    if env_version:
        return env_version

    try:
        from studiosync._version import __version__ as built_version
        return built_version
    except ImportError:
        pass

    git_version = _get_version_from_git()
    if git_version:
        return git_version

    return 'v0.0.0-dev+unknown'


__version__ = _get_version()

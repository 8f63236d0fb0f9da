import os
import stat
import sys
import time
from pathlib import Path

import pytest

# Ensure src/ is on sys.path so the 'lyracopy' package is importable
SRC = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src'))
if SRC not in sys.path:
    sys.path.insert(0, SRC)

# Shell fragment that leaves the last two arguments in $src and $dst
LAST_TWO_ARGS = 'for arg; do src="$dst"; dst="$arg"; done\n'

CONFIG_ENV_VARS = (
    'LYRACOPY_SOURCE', 'SRC', 'LYRACOPY_DEST', 'DST', 'LYRACOPY_LOG', 'LOG',
    'LYRACOPY_JOB_ID', 'LYRACOPY_RSYNC', 'LYRACOPY_RM', 'LYRACOPY_KILL_GRACE',
    'LYRACOPY_HISTORY_LIMIT', 'LYRACOPY_RESUME_POLICY', 'LYRACOPY_DRY_RUN_PREVIEW',
    'LYRACOPY_LOG_LEVEL',
)

posix_only = pytest.mark.skipif(os.name != 'posix', reason="fake tools are POSIX shell scripts")


@pytest.fixture
def clean_env(monkeypatch):
    """Remove configuration environment variables that would leak into tests."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def make_tool(tmp_path):
    """Write an executable shell script standing in for an external tool."""
    bin_dir = tmp_path / 'bin'
    bin_dir.mkdir()

    def _make(name: str, body: str) -> str:
        path = bin_dir / name
        path.write_text('#!/bin/sh\n' + body, encoding='utf-8')
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def fake_rsync(make_tool):
    """rsync stand-in: copies SRC into DST and reports progress; dry runs list nothing."""
    return make_tool('rsync', LAST_TWO_ARGS + (
        'case " $* " in *" --dry-run "*) exit 0 ;; esac\n'
        'echo "sending incremental file list"\n'
        'cp -R "$src" "$dst"/\n'
        'echo "report.pdf"\n'
        'echo "          2,048 100%    1.00MB/s    0:00:01 (xfr#1, to-chk=0/2)"\n'
        'echo "sent 2,150 bytes  received 35 bytes  4,370.00 bytes/sec"\n'
    ))


@pytest.fixture
def hanging_rsync(make_tool):
    """rsync stand-in whose live copy never finishes on its own."""
    return make_tool('rsync', (
        'case " $* " in *" --dry-run "*) exit 0 ;; esac\n'
        'echo "big.iso"\n'
        'exec sleep 30\n'
    ))


def wait_for(predicate, timeout: float = 10.0, interval: float = 0.02) -> bool:
    """Poll *predicate* until it is truthy or *timeout* expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def source_tree(tmp_path) -> Path:
    """A small source directory with a hidden file and a nested directory."""
    root = tmp_path / 'source'
    (root / 'docs').mkdir(parents=True)
    (root / 'docs' / 'report.pdf').write_bytes(b'x' * 1500)
    (root / 'notes.txt').write_bytes(b'y' * 500)
    (root / '.DS_Store').write_bytes(b'z' * 4096)
    return root

"""Shared test fixtures for the mononoke test harness"""

import os
import stat
import sys

import pytest

from mononoke_harness.config import BinariesSettings, PathsSettings, Settings
from mononoke_harness.harness import Harness
from mononoke_harness.ledger import terminate_recorded


# Stands in for the Mononoke / Eden server: logs its arguments, optionally
# exits early, optionally creates its socket after a delay, then idles.
FAKE_SERVER = '''
import os
import sys
import time

args = sys.argv[1:]
print('fake server args: ' + ' '.join(args), flush=True)
print('fake server stderr line', file=sys.stderr, flush=True)
if '--exit-code' in args:
    sys.exit(int(args[args.index('--exit-code') + 1]))
if '--delay' in args:
    time.sleep(float(args[args.index('--delay') + 1]))
if '--socket' in args:
    path = args[args.index('--socket') + 1]
    os.makedirs(os.path.dirname(path), exist_ok=True)
    open(path, 'w').close()
while True:
    time.sleep(1)
'''

FAKE_BLOBIMPORT = '''
import sys

args = sys.argv[1:]
print('importing into ' + args[-1], flush=True)
if '--fail' in args:
    print('blobimport: corrupt revlog', file=sys.stderr, flush=True)
    sys.exit(1)
'''

# Records every call and creates the .hg directory for init / clone.
FAKE_HG = '''
import os
import sys

args = sys.argv[1:]
calls = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'hg-calls.log')
with open(calls, 'a') as f:
    f.write(' '.join(args) + '\\n')
while args and args[0] == '--config':
    args = args[2:]
if args and args[0] == 'init':
    os.makedirs(os.path.join(args[1], '.hg'), exist_ok=True)
if args and args[0] == 'clone':
    os.makedirs(os.path.join(args[-1], '.hg'), exist_ok=True)
if args and args[0] == 'log':
    print('node:\\t' + args[-1])
if args and args[0] == 'update':
    print('1 files updated')
'''

HARNESS_ENV_VARS = [
    *BinariesSettings.ENV_VARS.values(),
    *PathsSettings.ENV_VARS.values(),
]


def write_script(path, body):
    path.write_text(f'#!{sys.executable}\n{body}')
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture(autouse=True)
def clean_harness_env(monkeypatch):
    """Keep the test runner's own TESTTMP / MONONOKE_* out of the tests"""
    for env_var in HARNESS_ENV_VARS:
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def fake_bin(tmp_path):
    bin_dir = tmp_path / 'bin'
    bin_dir.mkdir()
    return {
        'server': write_script(bin_dir / 'fake_server', FAKE_SERVER),
        'blobimport': write_script(bin_dir / 'fake_blobimport', FAKE_BLOBIMPORT),
        'hg': write_script(bin_dir / 'hg', FAKE_HG),
        'hg_calls': str(bin_dir / 'hg-calls.log'),
        'dummyssh': str(bin_dir / 'dummyssh'),
        'hgcli': str(bin_dir / 'hgcli'),
    }


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / 'work'
    path.mkdir()
    return str(path)


@pytest.fixture
def settings(tmp_path, fake_bin):
    test_tmp = tmp_path / 'testtmp'
    test_tmp.mkdir()
    cfg = Settings()
    cfg.binaries = BinariesSettings(
        mononoke_server=fake_bin['server'],
        blobimport=fake_bin['blobimport'],
        eden_server=fake_bin['server'],
        hgcli=fake_bin['hgcli'],
        hg=fake_bin['hg'],
        dummyssh=fake_bin['dummyssh'],
    )
    cfg.paths = PathsSettings(test_tmp=str(test_tmp))
    cfg.paths.fill_defaults()
    cfg.validate()
    return cfg


@pytest.fixture
def harness(settings, work_dir):
    h = Harness(settings, cwd=work_dir)
    yield h
    terminate_recorded(h.ledger, force=True)
    for service in h.services:
        if service.handle is not None:
            service.handle.process.wait(timeout=5)


@pytest.fixture
def socket_path(work_dir):
    return os.path.join(work_dir, 'repo', '.hg', 'mononoke.sock')

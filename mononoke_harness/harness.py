"""
Test-facing entry points

The Harness ties together settings, the process ledger, the daemon manager,
the readiness poller and the repository config generator. Tests create one
Harness per run and call its methods in the order the scenario needs:
configure repositories, start a service, wait for it, exercise it.
"""

import os
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from logging import getLogger

from . import repo_config
from .config import Settings
from .ledger import ProcessLedger
from .readiness import ReadinessStatus, await_ready, mononoke_socket_path
from .runner import DaemonProcessManager, LaunchFailure, ServiceDescriptor, ServiceHandle


logger = getLogger(__name__)

HGMN_SHOW_TEMPLATE = (
    r'node:\t{node}\np1node:\t{p1node}\np2node:\t{p2node}\n'
    r'author:\t{author}\ndate:\t{date}\ndesc:\t{desc}\n\n{diff()}'
)


class ServiceState(Enum):
    NOT_STARTED = 'not_started'
    LAUNCHED = 'launched'
    READY = 'ready'
    TIMED_OUT = 'timed_out'
    LAUNCH_FAILED = 'launch_failed'


class ManagedService:
    """One service instance and where it is in its startup lifecycle."""

    def __init__(self, name, descriptor: ServiceDescriptor):
        self.name = name
        self.descriptor = descriptor
        self.state = ServiceState.NOT_STARTED
        self.handle: ServiceHandle | None = None

    @property
    def pid(self):
        return self.handle.pid if self.handle is not None else None

    def launch(self, manager: DaemonProcessManager):
        if self.state != ServiceState.NOT_STARTED:
            raise Exception(f'service {self.name} already {self.state.value}')
        try:
            self.handle = manager.launch(self.descriptor)
        except LaunchFailure:
            self.state = ServiceState.LAUNCH_FAILED
            raise
        self.state = ServiceState.LAUNCHED
        logger.info(f'{self.name} launched with pid {self.handle.pid}')
        return self.handle

    def wait_ready(self, max_attempts, interval, sleep=time.sleep):
        if self.state != ServiceState.LAUNCHED:
            raise Exception(f'cannot wait for {self.name} in state {self.state.value}')
        if self.descriptor.ready_path is None:
            raise Exception(f'service {self.name} has no readiness artifact')
        status = await_ready(
            self.descriptor.ready_path,
            max_attempts=max_attempts,
            interval=interval,
            sleep=sleep,
        )
        if status == ReadinessStatus.READY:
            self.state = ServiceState.READY
            logger.info(f'{self.name} is ready')
        else:
            # Left running and in the ledger; it may still come up.
            self.state = ServiceState.TIMED_OUT
        return status


@dataclass
class ImportResult:
    repo_path: str
    returncode: int

    @property
    def failed(self):
        return self.returncode != 0


class Harness:
    MONONOKE = 'mononoke'
    EDEN_SERVER = 'edenserver'
    BLOBIMPORT = 'blobimport'

    SERVICES = [MONONOKE, EDEN_SERVER]

    def __init__(self, settings: Settings, ledger: ProcessLedger | None = None, cwd=None):
        self.settings = settings
        self.ledger = ledger if ledger is not None else ProcessLedger(settings.paths.daemon_pids)
        self.cwd = cwd
        self.manager = DaemonProcessManager(self.ledger, cwd=cwd)
        self.services: list[ManagedService] = []

    def _path(self, path):
        if self.cwd is None or os.path.isabs(path):
            return path
        return os.path.join(self.cwd, path)

    def _descriptor(self, role, args, ready_path=None):
        binaries = self.settings.binaries
        if role == self.MONONOKE:
            executable, args = binaries.mononoke_server, [*args, '--debug']
        elif role == self.EDEN_SERVER:
            executable = binaries.eden_server
        else:
            raise ValueError(f'unknown service role {role!r}, expected one of {self.SERVICES}')
        return ServiceDescriptor(
            executable=executable,
            args=tuple(args),
            log_path=self.settings.log_path(role),
            ready_path=ready_path,
        )

    def start_service(self, role, args=(), repo_root=None) -> ManagedService:
        """Launch a service in the background and record it in the ledger.

        repo_root, when given, sets the readiness artifact that wait_ready()
        polls for.
        """
        ready_path = None
        if repo_root is not None:
            ready_path = mononoke_socket_path(self._path(repo_root))
        service = ManagedService(role, self._descriptor(role, args, ready_path))
        self.services.append(service)
        service.launch(self.manager)
        return service

    def wait_ready(self, service: ManagedService, max_attempts=None, interval=None, sleep=time.sleep):
        readiness = self.settings.readiness
        return service.wait_ready(
            max_attempts=readiness.max_attempts if max_attempts is None else max_attempts,
            interval=readiness.interval if interval is None else interval,
            sleep=sleep,
        )

    def await_ready(self, repo_root, max_attempts=None, interval=None) -> ReadinessStatus:
        """Wait until the Mononoke socket of repo_root exists."""
        readiness = self.settings.readiness
        return await_ready(
            mononoke_socket_path(self._path(repo_root)),
            max_attempts=readiness.max_attempts if max_attempts is None else max_attempts,
            interval=readiness.interval if interval is None else interval,
        )

    def start_mononoke(self, repo_root, *args, max_attempts=None, interval=None) -> ManagedService:
        service = self.start_service(self.MONONOKE, args, repo_root=repo_root)
        self.wait_ready(service, max_attempts=max_attempts, interval=interval)
        return service

    def configure_repository(self, role, options=None, repo_root='.'):
        """Append the hgrc block for role to <repo_root>/.hg/hgrc."""
        hgrc = os.path.join(self._path(repo_root), '.hg', 'hgrc')
        repo_config.append_config(hgrc, repo_config.build_block(role, options))
        logger.debug(f'appended {role} config to {hgrc}')
        return hgrc

    def import_legacy_repository(self, args) -> ImportResult:
        """Run blobimport to completion, then lay out the imported repo.

        The last argument names the destination repository. Its .hg and books
        directories are created whatever the import's exit status; a failed
        import is only logged.
        """
        args = list(args)
        if not args:
            raise ValueError('blobimport needs at least the destination repository argument')
        descriptor = ServiceDescriptor(
            executable=self.settings.binaries.blobimport,
            args=tuple(args),
            log_path=self.settings.log_path(self.BLOBIMPORT),
        )
        returncode = self.manager.run_to_completion(descriptor)
        repo_path = self._path(args[-1])
        if returncode != 0:
            logger.warning(f'blobimport into {repo_path} exited with code {returncode}')
        os.makedirs(os.path.join(repo_path, '.hg'), exist_ok=True)
        os.makedirs(os.path.join(repo_path, 'books'), exist_ok=True)
        return ImportResult(repo_path=repo_path, returncode=returncode)

    def _hg(self, *args, cwd=None):
        cmd = [self.settings.binaries.hg, *args]
        logger.debug(f'running {cmd}')
        return subprocess.run(cmd, cwd=cwd or self.cwd, check=True)

    def setup_config_repo(self, name='mononoke-config', repo_name='repo'):
        """Create the server's config repository with a single blob repo."""
        self._hg('init', name)
        config_root = self._path(name)
        self.configure_repository(repo_config.SERVER, repo_root=config_root)
        repos_dir = os.path.join(config_root, 'repos')
        os.makedirs(repos_dir, exist_ok=True)
        with open(os.path.join(repos_dir, repo_name), 'wt') as f:
            f.write(repo_config.repo_definition(os.path.join(self.settings.paths.test_tmp, repo_name)))
        self._hg('add', '-q', 'repos', cwd=config_root)
        self._hg('ci', '-ma', cwd=config_root)
        self._hg('bookmark', 'test-config', cwd=config_root)
        self._hg('backfilltree', cwd=config_root)
        return config_root

    def setup_common_config(self):
        self.setup_config_repo()
        paths = self.settings.paths
        repo_config.append_config(
            paths.hgrc_path,
            repo_config.common_client_block(self.settings.binaries.dummyssh, paths.cache_path),
        )

    def init_treemanifest_repo(self, path):
        self._hg('init', path)
        return self.configure_repository(
            repo_config.SHALLOW_TREE_SERVER,
            {'reponame': path, 'cache_path': self.settings.paths.cache_path},
            repo_root=path,
        )

    def clone_treemanifest_repo(self, source, dest, *args):
        self._hg('clone', '-q', '--shallow', '--config', 'remotefilelog.reponame=master', *args, source, dest)
        return self.configure_repository(
            repo_config.SHALLOW_TREE_CLIENT,
            {'reponame': dest, 'cache_path': self.settings.paths.cache_path},
            repo_root=dest,
        )

    def hgmn_command(self, *args) -> list[str]:
        binaries = self.settings.binaries
        return [
            binaries.hg,
            '--config', f'ui.ssh={binaries.dummyssh}',
            '--config', 'paths.default=ssh://user@dummy/repo',
            '--config', f'ui.remotecmd={binaries.hgcli}',
            *args,
        ]

    def hgmn(self, *args, cwd=None, check=False, capture=False):
        """Run hg configured to talk to the Mononoke server."""
        return subprocess.run(
            self.hgmn_command(*args),
            cwd=cwd or self.cwd,
            check=check,
            stdout=subprocess.PIPE if capture else None,
            text=True,
        )

    def hgmn_show(self, *revs, cwd=None) -> str:
        """Describe revs as seen through Mononoke, then dump the working copy.

        Logs the revision, updates to it and lists every file outside .hg
        with its contents.
        """
        root = cwd or self.cwd or os.getcwd()
        rev_text = ' '.join(revs)
        log = self.hgmn('log', '--template', HGMN_SHOW_TEMPLATE, '-r', *revs, cwd=root, capture=True)
        update = self.hgmn('update', *revs, cwd=root, capture=True)
        parts = [f'LOG {rev_text}\n', log.stdout, update.stdout, '\n', f'CONTENT {rev_text}\n']
        for dirpath, dirnames, filenames in os.walk(root):
            if dirpath == root and '.hg' in dirnames:
                dirnames.remove('.hg')
            dirnames.sort()
            for filename in sorted(filenames):
                path = os.path.join(dirpath, filename)
                parts.append(f'./{os.path.relpath(path, root)}\n')
                with open(path, 'rt', errors='replace') as f:
                    parts.append(f.read())
        return ''.join(parts)

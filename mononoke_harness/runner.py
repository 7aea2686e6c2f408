import os
import shlex
import subprocess
from dataclasses import dataclass, field
from logging import getLogger

from .ledger import ProcessLedger


logger = getLogger(__name__)


class LaunchFailure(Exception):
    """The executable of a service could not be started at all."""

    def __init__(self, cmd, reason):
        self.cmd = cmd
        self.reason = reason
        super().__init__(f"failed to start '{shlex.join(cmd)}': {reason}")


class OutputSink:
    """Append-only log file receiving a process's combined output."""

    def __init__(self, path):
        self.path = path

    def open(self):
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        return open(self.path, 'ab')


@dataclass(frozen=True)
class ServiceDescriptor:
    executable: str
    args: tuple = field(default_factory=tuple)
    log_path: str = os.devnull
    ready_path: str | None = None

    def command(self) -> list[str]:
        return [self.executable, *self.args]


class ServiceHandle:
    def __init__(self, descriptor: ServiceDescriptor, process: subprocess.Popen):
        self.descriptor = descriptor
        self.process = process

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_alive(self) -> bool:
        return self.process.poll() is None

    @property
    def returncode(self):
        return self.process.poll()

    def __repr__(self):
        return f'ServiceHandle(pid={self.pid}, cmd={shlex.join(self.descriptor.command())!r})'


class DaemonProcessManager:
    """Starts services as detached background processes.

    Every successfully started process is recorded in the ledger handed in
    at construction. The manager never waits for a launched process.
    """

    def __init__(self, ledger: ProcessLedger, cwd=None, env=None):
        self.ledger = ledger
        self.cwd = cwd
        self.env = env

    def _subprocess_env(self):
        if self.env is None:
            return None
        subprocess_env = os.environ.copy()
        subprocess_env.update(self.env)
        return subprocess_env

    def launch(self, descriptor: ServiceDescriptor) -> ServiceHandle:
        cmd = descriptor.command()
        sink = OutputSink(descriptor.log_path)
        try:
            with sink.open() as log_file:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                    cwd=self.cwd,
                    env=self._subprocess_env(),
                )
        except OSError as e:
            logger.error(f"Failed to start process '{shlex.join(cmd)}': {e}")
            raise LaunchFailure(cmd, e) from e

        try:
            self.ledger.append(process.pid)
        except OSError as e:
            # every process left running must be in the ledger
            logger.error(f"Failed to record process {process.pid} in {self.ledger.file_name}: {e}")
            process.kill()
            process.wait()
            raise LaunchFailure(cmd, e) from e
        logger.debug(f'Started process {process.pid}: {shlex.join(cmd)}')
        return ServiceHandle(descriptor, process)

    def run_to_completion(self, descriptor: ServiceDescriptor) -> int:
        """Run a one-shot command in the foreground and return its exit code.

        Output goes to the descriptor's log like a launched service, but the
        process is not recorded in the ledger since it is gone on return.
        """
        cmd = descriptor.command()
        sink = OutputSink(descriptor.log_path)
        try:
            with sink.open() as log_file:
                result = subprocess.run(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    cwd=self.cwd,
                    env=self._subprocess_env(),
                )
        except OSError as e:
            logger.error(f"Failed to run '{shlex.join(cmd)}': {e}")
            raise LaunchFailure(cmd, e) from e
        logger.debug(f"'{shlex.join(cmd)}' exited with code {result.returncode}")
        return result.returncode

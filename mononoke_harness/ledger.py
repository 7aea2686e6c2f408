import os
import signal
from logging import getLogger


logger = getLogger(__name__)


class ProcessLedger:
    """Append-only record of every process the harness launched.

    One ledger belongs to one test run. It is backed by a flat text file with
    one pid per line, which the teardown routine reads at exit. The harness
    only ever appends to the file; it is never truncated or compacted here.
    """

    def __init__(self, file_name):
        self.file_name = file_name
        self.pids: list[int] = []

    def append(self, pid: int):
        parent = os.path.dirname(self.file_name)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(self.file_name, 'at') as f:
            f.write(f'{pid}\n')
        self.pids.append(pid)
        logger.debug(f'recorded pid {pid} in {self.file_name}')

    def read(self) -> list[int]:
        """Pids recorded in the backing file, in launch order.

        Includes pids appended by other writers of the same file (for example
        the shell side of the test runner).
        """
        if not os.path.exists(self.file_name):
            return []
        result = []
        with open(self.file_name, 'rt') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    result.append(int(line))
                except ValueError:
                    logger.warning(f'skipping malformed ledger line {line!r} in {self.file_name}')
        return result

    def __len__(self):
        return len(self.pids)

    def __contains__(self, pid):
        return pid in self.pids


def terminate_recorded(ledger: ProcessLedger, force=False):
    """Signal every process listed in the ledger.

    Processes that already exited are skipped. Returns the pids that were
    signalled.
    """
    sig = signal.SIGKILL if force else signal.SIGTERM
    signalled = []
    for pid in ledger.read():
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            logger.debug(f'process {pid} already exited')
            continue
        except PermissionError as e:
            logger.warning(f'cannot signal process {pid}: {e}')
            continue
        signalled.append(pid)
    logger.info(f'signalled {len(signalled)} recorded processes')
    return signalled

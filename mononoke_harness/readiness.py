import os
import time
from enum import Enum
from logging import getLogger


logger = getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 50
DEFAULT_INTERVAL = 0.1

SOCKET_NAME = 'mononoke.sock'


class ReadinessStatus(Enum):
    READY = 'ready'
    TIMED_OUT = 'timed_out'


def mononoke_socket_path(repo_root):
    return os.path.join(repo_root, '.hg', SOCKET_NAME)


def await_ready(
        artifact_path,
        max_attempts=DEFAULT_MAX_ATTEMPTS,
        interval=DEFAULT_INTERVAL,
        sleep=time.sleep,
        exists=os.path.exists,
) -> ReadinessStatus:
    """Block until a file system object appears at artifact_path.

    Checks once, then sleeps a fixed interval between checks, for at most
    max_attempts sleeps. Running out of attempts is reported as TIMED_OUT
    rather than raised; whether that is fatal is up to the caller.
    """
    attempts = max_attempts
    while not exists(artifact_path) and attempts > 0:
        attempts -= 1
        sleep(interval)

    if exists(artifact_path):
        logger.debug(f'{artifact_path} ready after {max_attempts - attempts} attempts')
        return ReadinessStatus.READY

    logger.warning(
        f'{artifact_path} did not appear after {max_attempts} attempts '
        f'({max_attempts * interval:.1f}s)'
    )
    return ReadinessStatus.TIMED_OUT

import os
import signal
import time


def kill_process(pid, force=False):
    """Kill a process by PID"""
    os.kill(pid, signal.SIGKILL if force else signal.SIGTERM)


def assert_wait(condition, max_wait_time=10.0, retry_interval=0.05):
    """Wait for a condition to be true with timeout"""
    max_time = time.time() + max_wait_time
    while time.time() < max_time:
        if condition():
            return
        time.sleep(retry_interval)
    assert condition()


def read_log(path):
    if not os.path.exists(path):
        return ''
    with open(path, 'rt') as f:
        return f.read()


class FakeClock:
    """Stands in for time.sleep so poll loops run instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

"""
Mononoke Test Harness Configuration Management

This module provides the settings used by the integration test harness:
where the service binaries live, which run-scoped directories the harness
writes to, and how long it waits for a launched service to become ready.

Classes:
    BinariesSettings: Paths of the executables the harness launches
    PathsSettings: Run-scoped temporary directory and the files inside it
    ReadinessSettings: Default bounded polling parameters
    Settings: Main configuration class that orchestrates all settings

Key Features:
    - YAML-based configuration loading
    - Environment variable overrides matching the shell test runner
      (MONONOKE_SERVER, TESTTMP, DAEMON_PIDS, HGRCPATH, ...)
    - Type validation and error handling
"""

import os
from dataclasses import dataclass, fields

import yaml


def stype(obj):
    """Get the simple type name of an object.

    Example:
        >>> stype([1, 2, 3])
        'list'
    """
    return type(obj).__name__


@dataclass
class BinariesSettings:
    """Executables started by the harness.

    Every field can be overridden by the environment variable listed in
    ``ENV_VARS``; the environment always wins over the settings file.
    """
    mononoke_server: str = ""
    blobimport: str = ""
    eden_server: str = ""
    hgcli: str = ""
    hg: str = "hg"
    dummyssh: str = ""

    ENV_VARS = {
        "mononoke_server": "MONONOKE_SERVER",
        "blobimport": "MONONOKE_BLOBIMPORT",
        "eden_server": "MONONOKE_EDEN_SERVER",
        "hgcli": "MONONOKE_HGCLI",
        "hg": "HG",
        "dummyssh": "DUMMYSSH",
    }

    def apply_env(self):
        for attr, env_var in self.ENV_VARS.items():
            value = os.environ.get(env_var)
            if value:
                setattr(self, attr, value)

    def validate(self):
        for field in fields(self):
            value = getattr(self, field.name)
            if not isinstance(value, str):
                raise ValueError(
                    f"binaries {field.name} should be string and not {stype(value)}"
                )


@dataclass
class PathsSettings:
    test_tmp: str = ""
    daemon_pids: str = ""
    hgrc_path: str = ""
    cache_path: str = ""

    ENV_VARS = {
        "test_tmp": "TESTTMP",
        "daemon_pids": "DAEMON_PIDS",
        "hgrc_path": "HGRCPATH",
    }

    def apply_env(self):
        for attr, env_var in self.ENV_VARS.items():
            value = os.environ.get(env_var)
            if value:
                setattr(self, attr, value)

    def fill_defaults(self):
        # Everything defaults to a location inside the run-scoped directory.
        if not self.test_tmp:
            return
        if not self.daemon_pids:
            self.daemon_pids = os.path.join(self.test_tmp, "daemon.pids")
        if not self.hgrc_path:
            self.hgrc_path = os.path.join(self.test_tmp, ".hgrc")
        if not self.cache_path:
            self.cache_path = os.path.join(self.test_tmp, "cachepath")

    def validate(self):
        for field in fields(self):
            value = getattr(self, field.name)
            if not isinstance(value, str):
                raise ValueError(
                    f"paths {field.name} should be string and not {stype(value)}"
                )
        if not self.test_tmp:
            raise ValueError("paths test_tmp is required (set it in the config or via TESTTMP)")


@dataclass
class ReadinessSettings:
    max_attempts: int = 50
    interval: float = 0.1

    def validate(self):
        if not isinstance(self.max_attempts, int) or isinstance(self.max_attempts, bool):
            raise ValueError(
                f"readiness max_attempts should be int and not {stype(self.max_attempts)}"
            )
        if self.max_attempts < 0:
            raise ValueError("readiness max_attempts should be non-negative")
        if not isinstance(self.interval, (int, float)) or isinstance(self.interval, bool):
            raise ValueError(
                f"readiness interval should be a number and not {stype(self.interval)}"
            )
        if self.interval <= 0:
            raise ValueError("readiness interval should be positive")


class Settings:
    DEFAULT_LOG_LEVEL = "info"
    LOG_LEVELS = ["critical", "error", "warning", "info", "debug"]

    def __init__(self):
        self.binaries = BinariesSettings()
        self.paths = PathsSettings()
        self.readiness = ReadinessSettings()
        self.settings_file = ""
        self.log_level = Settings.DEFAULT_LOG_LEVEL
        self.debug_log_level = False

    @classmethod
    def from_environment(cls):
        settings = cls()
        settings.binaries.apply_env()
        settings.paths.apply_env()
        settings.paths.fill_defaults()
        settings.validate()
        return settings

    def load(self, settings_file):
        with open(settings_file, "r") as f:
            data = yaml.safe_load(f) or {}

        self.settings_file = settings_file
        self.binaries = BinariesSettings(**(data.pop("binaries", None) or {}))
        self.paths = PathsSettings(**(data.pop("paths", None) or {}))
        self.readiness = ReadinessSettings(**(data.pop("readiness", None) or {}))
        self.log_level = data.pop("log_level", Settings.DEFAULT_LOG_LEVEL)

        if data:
            raise Exception(f"Unsupported config options: {list(data.keys())}")

        self.binaries.apply_env()
        self.paths.apply_env()
        self.paths.fill_defaults()
        self.validate()

    def validate_log_level(self):
        if self.log_level not in Settings.LOG_LEVELS:
            raise ValueError(f"wrong log level {self.log_level}")
        if self.log_level == "debug":
            self.debug_log_level = True

    def validate(self):
        self.binaries.validate()
        self.paths.validate()
        self.readiness.validate()
        self.validate_log_level()

    def log_path(self, name):
        """Path of the append-only log file for one service category."""
        return os.path.join(self.paths.test_tmp, f"{name}.out")

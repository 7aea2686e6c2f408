#!/usr/bin/env python3

import argparse
import logging
import sys

from .config import Settings
from .harness import Harness
from .readiness import ReadinessStatus
from . import repo_config


def set_logging_config(tags, log_level_str=None):
    """Configure logging to output only to stderr, keeping stdout for results."""
    handlers = [logging.StreamHandler(sys.stderr)]

    log_levels = {
        'critical': logging.CRITICAL,
        'error': logging.ERROR,
        'warning': logging.WARNING,
        'info': logging.INFO,
        'debug': logging.DEBUG,
    }

    log_level = log_levels.get(log_level_str)
    if log_level is None:
        logging.warning(f'Unknown log level {log_level_str}, setting info')
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format=f'[{tags} %(asctime)s %(levelname)8s] %(message)s',
        handlers=handlers,
    )


def parse_options(pairs):
    options = {}
    for pair in pairs or []:
        if '=' not in pair:
            raise Exception(f'option should look like name=value, got {pair!r}')
        name, value = pair.split('=', 1)
        if value.lower() in ('true', 'false'):
            value = value.lower() == 'true'
        options[name] = value
    return options


def run_start_service(args, harness: Harness):
    service = harness.start_service(args.role, args.args, repo_root=args.repo)
    print(service.pid)


def run_await_ready(args, harness: Harness):
    status = harness.await_ready(args.repo, max_attempts=args.max_attempts, interval=args.interval)
    return 0 if status == ReadinessStatus.READY else 1


def run_configure_repository(args, harness: Harness):
    harness.configure_repository(args.role, parse_options(args.option), repo_root=args.repo or '.')


def run_import_legacy_repository(args, harness: Harness):
    harness.import_legacy_repository(args.args)


def run_hgmn(args, harness: Harness):
    return harness.hgmn(*args.args).returncode


def run_hgmn_show(args, harness: Harness):
    print(harness.hgmn_show(*args.args, cwd=args.repo), end='')


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="mononoke_harness",
        description="Options go before the mode; everything after the mode is passed to the executable.",
    )
    parser.add_argument(
        "mode", help="run mode",
        type=str,
        choices=["start_service", "await_ready", "configure_repository", "import_legacy_repository", "hgmn", "hgmn_show"])
    parser.add_argument("--config", help="settings file path, environment is used if not set", default=None, type=str)
    parser.add_argument("--role", help="service role (start_service) or repository role (configure_repository)", type=str)
    parser.add_argument("--repo", help="repository root", type=str, default=None)
    parser.add_argument(
        "--option", action="append",
        help="repository option name=value, may be repeated (configure_repository)",
    )
    parser.add_argument("--max_attempts", type=int, default=None, help="readiness poll attempts")
    parser.add_argument("--interval", type=float, default=None, help="seconds between readiness polls")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="arguments passed to the launched executable")
    args = parser.parse_args(argv)

    if args.config:
        config = Settings()
        config.load(args.config)
    else:
        config = Settings.from_environment()

    set_logging_config('harness', log_level_str=config.log_level)

    if args.mode in ('start_service', 'configure_repository') and not args.role:
        parser.error(f'--role is required for {args.mode}')
    if args.mode == 'configure_repository' and args.role not in repo_config.ROLES:
        parser.error(f'--role should be one of {repo_config.ROLES}')
    if args.mode == 'await_ready' and not args.repo:
        parser.error('--repo is required for await_ready')
    if args.mode == 'hgmn_show' and not args.args:
        parser.error('hgmn_show needs a revision')

    harness = Harness(config)
    result = None
    if args.mode == 'start_service':
        result = run_start_service(args, harness)
    if args.mode == 'await_ready':
        result = run_await_ready(args, harness)
    if args.mode == 'configure_repository':
        result = run_configure_repository(args, harness)
    if args.mode == 'import_legacy_repository':
        result = run_import_legacy_repository(args, harness)
    if args.mode == 'hgmn':
        result = run_hgmn(args, harness)
    if args.mode == 'hgmn_show':
        result = run_hgmn_show(args, harness)
    return result or 0


if __name__ == '__main__':
    sys.exit(main())

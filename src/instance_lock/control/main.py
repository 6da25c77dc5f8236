# src/instance_lock/control/main.py
import sys
import argparse
import logging
from typing import Any, Sequence
from pathlib import Path
from returns.result import Result, safe

from .app_controller import AppController
from .dependency_container import Container


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="instance-lock",
        description="Run a command while holding a single-instance PID lock.",
    )
    parser.add_argument("--config", type=Path, help="YAML file with lock settings")
    parser.add_argument("--env-file", type=Path, default=Path(".env"))
    parser.add_argument("--lock-file-name")
    parser.add_argument("--lock-dir", type=Path)
    parser.add_argument("--kill-timeout", type=int, help="ms to wait for an answer")
    parser.add_argument("--wait-timeout", type=int, help="ms to wait for the old instance to exit")
    parser.add_argument("--check-interval", type=int, help="ms between liveness checks")
    parser.add_argument("--max-retries", type=int)
    parser.add_argument("--default-answer")
    parser.add_argument("--acquire-timeout", type=int, help="ms bound on writing the lock file")
    parser.add_argument("--log-dir", type=Path)
    parser.add_argument("--logfile-size-limit-mb", type=int, default=10)
    parser.add_argument("command", nargs=argparse.REMAINDER)

    args = parser.parse_args(argv)
    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    return args


def build_config(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "dotenv_path": args.env_file,
        "config_file": args.config,
        "log_dir": args.log_dir,
        "logfile_size_limit_MB": args.logfile_size_limit_mb,
        "overrides": {
            "lock_file_name": args.lock_file_name,
            "lock_file_dir": args.lock_dir,
            "kill_timeout": args.kill_timeout,
            "wait_for_exit_timeout": args.wait_timeout,
            "check_interval": args.check_interval,
            "max_retries": args.max_retries,
            "default_answer": args.default_answer,
        },
    }


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)

    result = run_app(build_config(args), args.command, args.acquire_timeout)
    result.alt(
        lambda err: print(f"Application failed: {err}", file=sys.stderr)
    )
    sys.exit(result.value_or(1))


def run_app(
    config: dict[str, Any],
    command: Sequence[str],
    acquire_timeout: int | None = None,
) -> Result[int, Exception]:
    return build_controller(config, acquire_timeout).bind(
        lambda controller: execute_lifecycle(controller, command)
    )


@safe
def build_controller(config: dict[str, Any], acquire_timeout: int | None) -> AppController:
    container = Container()
    container.config.from_dict(config)

    logger: logging.Logger = container.logger()

    return AppController(
        coordinator=container.coordinator(),
        logger=logger,
        acquire_timeout=acquire_timeout,
    )


@safe
def execute_lifecycle(controller: AppController, command: Sequence[str]) -> int:
    return controller.run_guarded(command)


if __name__ == "__main__":
    main()

"""Runtime settings for proctree."""

import argparse
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace

from proctree.errors import ConfigError

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(slots=True, frozen=True)
class Settings:
    """Settings resolved from defaults, the environment and the command line."""

    root_pid: int
    interval: float = 1.0
    keep_terminated: bool = False
    snapshot_timeout: float | None = None
    log_file: str | None = None
    log_level: str = "WARNING"
    once: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Read settings from ``PROCTREE_*`` environment variables.

        Raises:
            ConfigError: if a variable holds an unparsable value.
        """
        env = os.environ if environ is None else environ
        settings = cls(root_pid=os.getppid())
        if "PROCTREE_PID" in env:
            settings = replace(settings, root_pid=_parse(int, "PROCTREE_PID", env["PROCTREE_PID"]))
        if "PROCTREE_INTERVAL" in env:
            settings = replace(
                settings, interval=_parse(float, "PROCTREE_INTERVAL", env["PROCTREE_INTERVAL"])
            )
        if "PROCTREE_KEEP_TERMINATED" in env:
            settings = replace(
                settings,
                keep_terminated=_parse_bool("PROCTREE_KEEP_TERMINATED", env["PROCTREE_KEEP_TERMINATED"]),
            )
        if "PROCTREE_SNAPSHOT_TIMEOUT" in env:
            settings = replace(
                settings,
                snapshot_timeout=_parse(
                    float, "PROCTREE_SNAPSHOT_TIMEOUT", env["PROCTREE_SNAPSHOT_TIMEOUT"]
                ),
            )
        return settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proctree",
        description="Live, incrementally updated view of a process tree.",
    )
    parser.add_argument("--pid", type=int, help="root process id (default: parent of proctree)")
    parser.add_argument("--interval", type=float, help="seconds between snapshots (default: 1.0)")
    parser.add_argument(
        "--keep-terminated",
        action="store_true",
        default=None,
        help="keep terminated processes in the tree, marked as removed",
    )
    parser.add_argument(
        "--snapshot-timeout",
        type=float,
        help="abandon a snapshot request after this many seconds",
    )
    parser.add_argument("--log-file", help="write logs to this file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="log level (default: WARNING)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="print a single snapshot of the tree and exit",
    )
    return parser


def load_settings(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Resolve settings: defaults, then environment, then command line."""
    settings = Settings.from_env(environ)
    args = build_parser().parse_args(argv)

    overrides = {
        "root_pid": args.pid,
        "interval": args.interval,
        "keep_terminated": args.keep_terminated,
        "snapshot_timeout": args.snapshot_timeout,
        "log_file": args.log_file,
        "log_level": args.log_level,
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})
    return replace(settings, once=args.once)


def _parse(kind, name: str, value: str):
    try:
        return kind(value)
    except ValueError as exc:
        raise ConfigError(f"{name}: invalid value {value!r}") from exc


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigError(f"{name}: invalid value {value!r}")

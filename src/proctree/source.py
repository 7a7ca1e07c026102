"""psutil-backed snapshot source for proctree."""

import logging
import os
import re
from collections import defaultdict

import psutil

from proctree.errors import SnapshotUnavailableError
from proctree.models import ProcessRecord

logger = logging.getLogger(__name__)

# Attributes to fetch for every process
ATTRS = ["pid", "ppid", "name", "cmdline", "cpu_percent", "memory_percent"]

TYPE_FLAG_PATTERN = re.compile(r"--type=([a-zA-Z-]+)")
SCRIPT_PATTERN = re.compile(r"[a-zA-Z-]+\.js\b")
ELECTRON_HOST_PATTERN = re.compile(
    r"^(electron|code|code - insiders|code-insiders|code-oss|codium)"
    r"( helper( \([a-z]+\))?)?(\.exe)?$",
    re.IGNORECASE,
)


def _executable(command: str) -> str:
    return os.path.basename(command.split(" ", 1)[0]) if command else ""


def is_electron_host(name: str, command: str) -> bool:
    """Recognize an electron host executable or one of its helper processes."""
    return bool(
        ELECTRON_HOST_PATTERN.match(name)
        or ELECTRON_HOST_PATTERN.match(_executable(command))
    )


def derive_name(name: str, command: str) -> str:
    """
    Derive a short display name for a process.

    Electron helpers are named after their ``--type=`` flag (renderers are
    windows), node scripts run by a non-node host after the scripts they
    run, and everything else after its executable.
    """
    matches = TYPE_FLAG_PATTERN.search(command)
    if matches and is_electron_host(name, command):
        kind = matches.group(1)
        return "window" if kind == "renderer" else kind

    executable = _executable(command)
    scripts = SCRIPT_PATTERN.findall(command)
    if scripts and not executable.startswith("node"):
        return "electron-node " + " ".join(scripts)

    return name or executable or "?"


def collect_infos() -> list[dict]:
    """
    Collect the raw attribute dicts of all running processes.

    Handles AccessDenied, NoSuchProcess and ZombieProcess errors by
    skipping the process.
    """
    infos: list[dict] = []
    for proc in psutil.process_iter(attrs=ATTRS):
        try:
            info = proc.info
            if info.get("pid") is None:
                continue
            infos.append(info)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return infos


def build_tree(infos: list[dict], root_pid: int) -> ProcessRecord:
    """
    Assemble the record tree rooted at ``root_pid`` from raw attribute dicts.

    Raises:
        SnapshotUnavailableError: if ``root_pid`` is not among ``infos``.
    """
    by_pid: dict[int, dict] = {}
    children_of: dict[int, list[int]] = defaultdict(list)
    for info in infos:
        pid = info["pid"]
        by_pid[pid] = info
        ppid = info.get("ppid")
        if ppid is not None and ppid != pid:
            children_of[ppid].append(pid)

    if root_pid not in by_pid:
        raise SnapshotUnavailableError(f"process {root_pid} not found")

    # Walk top-down to fix each pid's children, then build bottom-up
    visited = {root_pid}
    kids: dict[int, list[int]] = {}
    order: list[int] = []
    stack = [root_pid]
    while stack:
        pid = stack.pop()
        order.append(pid)
        kids[pid] = [
            child_pid
            for child_pid in sorted(children_of.get(pid, ()))
            if child_pid not in visited
        ]
        visited.update(kids[pid])
        stack.extend(kids[pid])

    built: dict[int, ProcessRecord] = {}
    for pid in reversed(order):
        children = tuple(built.pop(child_pid) for child_pid in kids[pid])
        built[pid] = _make_record(by_pid[pid], children)
    return built[root_pid]


def snapshot(root_pid: int) -> ProcessRecord:
    """
    Take a snapshot of ``root_pid`` and all of its live descendants.

    Raises:
        SnapshotUnavailableError: if the root process does not exist or the
            process table cannot be read.
    """
    try:
        infos = collect_infos()
    except psutil.Error as exc:
        raise SnapshotUnavailableError(f"cannot list processes: {exc}") from exc
    logger.debug("scanned %d processes for pid %d", len(infos), root_pid)
    return build_tree(infos, root_pid)


def _make_record(info: dict, children: tuple[ProcessRecord, ...]) -> ProcessRecord:
    # Get command line, handling None/empty cases
    cmdline = info.get("cmdline") or []
    raw_name = info.get("name") or ""
    command = " ".join(cmdline) if cmdline else raw_name

    return ProcessRecord(
        pid=info["pid"],
        ppid=info.get("ppid") or 0,
        command=command,
        name=derive_name(raw_name, command),
        cpu_load=float(info.get("cpu_percent") or 0.0),
        memory=float(info.get("memory_percent") or 0.0),
        children=children,
        is_electron_host=is_electron_host(raw_name, command),
    )

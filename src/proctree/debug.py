"""Classify processes by the debugger they can be attached with."""

import re
from dataclasses import dataclass
from enum import Enum

from proctree.models import ProcessRecord

DEBUG_FLAGS_PATTERN = re.compile(r"\s--(inspect|debug)(-brk)?(=([0-9]+))?")


class DebugKind(Enum):
    """How a process can be debugged."""

    NOT_DEBUGGABLE = "none"
    NODE_INSPECT = "node"
    LEGACY_DEBUG = "legacy_debug"
    ELECTRON_INSPECT = "electron_inspect"


@dataclass(slots=True, frozen=True)
class DebugTarget:
    kind: DebugKind
    port: int | None = None


NOT_DEBUGGABLE = DebugTarget(DebugKind.NOT_DEBUGGABLE)


def classify(record: ProcessRecord) -> DebugTarget:
    """
    Classify a process from its command line.

    Node processes started with ``--inspect`` use the inspector protocol,
    ones started with ``--debug`` the legacy protocol. Electron hosts are
    only debuggable through ``--inspect``.
    """
    matches = DEBUG_FLAGS_PATTERN.search(record.command)
    if not matches:
        return NOT_DEBUGGABLE

    flag = matches.group(1)
    port = int(matches.group(4)) if matches.group(4) else None
    if record.name.startswith("node"):
        kind = DebugKind.LEGACY_DEBUG if flag == "debug" else DebugKind.NODE_INSPECT
        return DebugTarget(kind, port)
    if record.is_electron_host and flag == "inspect":
        return DebugTarget(DebugKind.ELECTRON_INSPECT, port)
    return NOT_DEBUGGABLE


def attach_config(record: ProcessRecord) -> dict:
    """
    Build a node "attach" debug configuration for a process.

    With a debug flag on the command line the debugger connects by port
    (when one is given) using the matching protocol; without one it
    attaches by pid.
    """
    config: dict = {
        "type": "node",
        "request": "attach",
        "name": "attach to process",
    }
    matches = DEBUG_FLAGS_PATTERN.search(record.command)
    if matches:
        if matches.group(4):
            config["port"] = int(matches.group(4))
        config["protocol"] = "legacy" if matches.group(1) == "debug" else "inspector"
    else:
        config["processId"] = str(record.pid)
    return config

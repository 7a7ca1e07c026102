"""Merge a fresh process snapshot into an existing node tree in place."""

import logging
from dataclasses import replace

from proctree.errors import MalformedRecordError
from proctree.models import ProcessRecord, TreeNode

logger = logging.getLogger(__name__)


def validate_record(record: ProcessRecord) -> None:
    """
    Check every record in a snapshot carries an integer pid.

    Raises:
        MalformedRecordError: naming the first offending record.
    """
    stack = [record]
    while stack:
        current = stack.pop()
        pid = getattr(current, "pid", None)
        if not isinstance(pid, int) or isinstance(pid, bool):
            raise MalformedRecordError(f"record without a valid pid: {current!r}")
        stack.extend(getattr(current, "children", None) or ())


def merge(node: TreeNode, record: ProcessRecord, keep_terminated: bool = False) -> None:
    """
    Update ``node`` and its subtree so it reflects ``record``.

    Nodes whose pid is still present keep their identity, wherever they
    show up in the new snapshot. Children end up sorted ascending by pid.
    Nodes whose pid vanished are dropped, or kept with ``marked_removed``
    set when ``keep_terminated`` is true.

    The record tree is validated before anything is touched, so a
    malformed snapshot leaves the tree as it was.

    Raises:
        MalformedRecordError: if any record in the snapshot lacks a pid.
    """
    validate_record(record)

    known: dict[int, TreeNode] = {}
    for existing in _descendants(node):
        known.setdefault(existing.pid, existing)

    live_pids: set[int] = set()
    for child in _descendant_records(record):
        live_pids.add(child.pid)

    _merge_tree(node, record, known, live_pids, keep_terminated)


def _merge_tree(
    node: TreeNode,
    record: ProcessRecord,
    known: dict[int, TreeNode],
    live_pids: set[int],
    keep_terminated: bool,
) -> None:
    stack = [(node, record)]
    while stack:
        node, record = stack.pop()
        # pid, ppid and name stay as first observed
        node.record = replace(
            node.record,
            command=record.command,
            cpu_load=record.cpu_load,
            memory=record.memory,
        )
        node.marked_removed = False

        by_pid = {child.pid: child for child in node.children}
        result: list[TreeNode] = []
        for child_record in record.children:
            existing = by_pid.get(child_record.pid)
            if existing is None:
                existing = known.get(child_record.pid)
                if existing is not None:
                    logger.debug("pid %d moved under pid %d", child_record.pid, node.pid)
            if existing is None:
                # New process; its subtree may still contain known nodes
                existing = TreeNode.from_record(child_record)
            stack.append((existing, child_record))
            result.append(existing)

        if keep_terminated:
            seen = {child_record.pid for child_record in record.children}
            for child in node.children:
                if child.pid not in seen and child.pid not in live_pids:
                    _retire(child, live_pids)
                    result.append(child)

        result.sort(key=lambda child: child.pid)
        node.children = result


def _retire(node: TreeNode, live_pids: set[int]) -> None:
    """Mark a vanished subtree removed, detaching descendants that live on elsewhere."""
    stack = [node]
    while stack:
        current = stack.pop()
        current.marked_removed = True
        current.children = [child for child in current.children if child.pid not in live_pids]
        stack.extend(current.children)


def _descendants(node: TreeNode):
    stack = list(node.children)
    while stack:
        current = stack.pop()
        yield current
        stack.extend(current.children)


def _descendant_records(record: ProcessRecord):
    stack = list(record.children)
    while stack:
        current = stack.pop()
        yield current
        stack.extend(current.children)

"""Canonical in-memory process tree."""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from proctree.events import ChangeNotifier
from proctree.models import ROOT_RECORD, ProcessRecord, TreeNode
from proctree.reconciler import merge

logger = logging.getLogger(__name__)


class ProcessTreeStore:
    """
    Holds the process tree under a synthetic root node.

    ``apply`` is the only way to change the tree; it serializes merges
    behind a lock so the store can be fed from worker threads. Readers that
    walk more than one node should do so inside ``reading()`` to never see
    a half-applied merge.
    """

    def __init__(self) -> None:
        self._root = TreeNode(record=ROOT_RECORD)
        self._lock = threading.RLock()
        self._closed = False
        self.changed = ChangeNotifier()

    @property
    def root(self) -> TreeNode:
        return self._root

    @property
    def closed(self) -> bool:
        return self._closed

    def apply(self, record: ProcessRecord, keep_terminated: bool = False) -> bool:
        """
        Merge a snapshot of the monitored process into the tree.

        Returns:
            False if the store was closed and the snapshot was discarded.

        Raises:
            MalformedRecordError: if the snapshot is malformed; the tree is
                left untouched.
        """
        with self._lock:
            if self._closed:
                logger.debug("discarding snapshot of pid %s after close", record.pid)
                return False
            merge(self._root, record, keep_terminated=keep_terminated)
            return True

    @contextmanager
    def reading(self) -> Iterator["ProcessTreeStore"]:
        """Hold off merges while the caller reads several nodes."""
        with self._lock:
            yield self

    def children(self, node: TreeNode | None = None) -> list[TreeNode]:
        """Return the ordered children of ``node`` (the root if omitted)."""
        with self._lock:
            return list((node or self._root).children)

    def walk(self, node: TreeNode | None = None) -> Iterator[tuple[int, TreeNode]]:
        """
        Depth-first, pre-order traversal yielding ``(depth, node)``.

        The starting node is yielded at depth 0. The traversal runs on a
        copy taken under the lock.
        """
        with self._lock:
            items: list[tuple[int, TreeNode]] = []
            stack = [(0, node or self._root)]
            while stack:
                depth, current = stack.pop()
                items.append((depth, current))
                stack.extend((depth + 1, child) for child in reversed(current.children))
        yield from items

    def find(self, pid: int) -> TreeNode | None:
        """Find the node for ``pid`` below the root."""
        for depth, node in self.walk():
            if depth > 0 and node.pid == pid:
                return node
        return None

    def close(self) -> None:
        """Tear the store down; later ``apply`` calls become no-ops."""
        with self._lock:
            self._closed = True
        self.changed.clear()

    def __len__(self) -> int:
        return sum(1 for depth, _ in self.walk() if depth > 0)

"""proctree - Main Textual application."""

import json
import logging
import sys
from collections.abc import Sequence
from queue import Empty, Queue

from rich.text import Text
from textual.app import App, ComposeResult
from textual.widgets import Footer, Tree
from textual.widgets.tree import TreeNode as UINode

from proctree.actions import terminate
from proctree.config import Settings, load_settings
from proctree.debug import DebugKind, attach_config, classify
from proctree.models import TreeNode
from proctree.poller import SnapshotSource, TreePoller
from proctree.source import snapshot
from proctree.store import ProcessTreeStore

logger = logging.getLogger(__name__)


def node_label(node: TreeNode) -> Text:
    """Render a node label, dimmed once terminated, bold when debuggable."""
    if node.marked_removed:
        return Text(node.label, style="dim strike")
    if classify(node.record).kind is not DebugKind.NOT_DEBUGGABLE:
        return Text(node.label, style="bold")
    return Text(node.label)


def render_text(store: ProcessTreeStore) -> str:
    """Render the whole tree as indented text, one process per line."""
    lines = []
    for depth, node in store.walk():
        if depth == 0:
            lines.append(node.name)
        else:
            lines.append(f"{'  ' * (depth - 1)}{node.pid} {node.label}")
    return "\n".join(lines)


class ProcessTreeView(Tree[TreeNode]):
    """Tree widget mirroring a ProcessTreeStore."""

    DEFAULT_CSS = """
    ProcessTreeView {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, store: ProcessTreeStore, **kwargs) -> None:
        """Initialize ProcessTreeView."""
        super().__init__(store.root.name, store.root, **kwargs)
        self._store = store
        self.root.expand()

    @property
    def selected(self) -> TreeNode | None:
        """The process under the cursor, or None on the root."""
        ui_node = self.cursor_node
        if ui_node is None or ui_node.data is None or ui_node.data is self._store.root:
            return None
        return ui_node.data

    def refresh_from_store(self) -> None:
        """
        Bring the widget in line with the store.

        UI nodes are matched to tree nodes by identity, so surviving
        processes keep their row, expansion state and cursor position.
        """
        with self._store.reading():
            self._sync(self.root, self._store.root)

    def _sync(self, ui_node: UINode[TreeNode], node: TreeNode) -> None:
        if ui_node is not self.root:
            ui_node.set_label(node_label(node))
            ui_node.allow_expand = node.has_children

        wanted = node.children
        wanted_ids = {id(child) for child in wanted}
        for ui_child in list(ui_node.children):
            if id(ui_child.data) not in wanted_ids:
                ui_child.remove()

        existing = {id(ui_child.data): ui_child for ui_child in ui_node.children}
        for index, child in enumerate(wanted):
            ui_child = existing.get(id(child))
            if ui_child is None:
                if index < len(ui_node.children):
                    ui_child = ui_node.add(node_label(child), data=child, before=index, expand=True)
                else:
                    ui_child = ui_node.add(node_label(child), data=child, expand=True)
            self._sync(ui_child, child)


class ProcTreeApp(App):
    """Main proctree application."""

    TITLE = "proctree"
    SUB_TITLE = "Process Tree Viewer"

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("k", "terminate", "Kill"),
        ("K", "force_kill", "Force kill"),
        ("d", "debug", "Debug config"),
    ]

    def __init__(
        self,
        settings: Settings | None = None,
        source: SnapshotSource = snapshot,
    ) -> None:
        """Initialize the ProcTreeApp."""
        super().__init__()
        self._settings = settings or Settings.from_env()
        self._store = ProcessTreeStore()
        self._update_queue: Queue[None] = Queue()
        self._poller = TreePoller(
            self._store,
            self._settings.root_pid,
            source=source,
            interval=self._settings.interval,
            keep_terminated=self._settings.keep_terminated,
            snapshot_timeout=self._settings.snapshot_timeout,
        )
        # The poller notifies from worker threads; hand off through the queue
        self._store.changed.subscribe(lambda: self._update_queue.put(None))

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield ProcessTreeView(self._store, id="process-tree")
        yield Footer()

    def on_mount(self) -> None:
        """Start the poller when the app is mounted."""
        self._poller.start()
        self.set_interval(0.25, self._check_for_updates)

    def on_unmount(self) -> None:
        self._poller.stop()

    def _check_for_updates(self) -> None:
        """Drain change notifications and refresh the tree once."""
        changed = False
        while True:
            try:
                self._update_queue.get_nowait()
                changed = True
            except Empty:
                break

        if changed:
            try:
                self.query_one(ProcessTreeView).refresh_from_store()
            except Exception:
                logger.exception("failed to refresh process tree")

    def _selected(self) -> TreeNode | None:
        node = self.query_one(ProcessTreeView).selected
        if node is None:
            self.notify("No process selected", severity="warning")
        return node

    def action_terminate(self) -> None:
        """Send SIGTERM to the selected process."""
        node = self._selected()
        if node is not None and not terminate(node.pid):
            self.notify(f"Could not terminate {node.pid}", severity="error")

    def action_force_kill(self) -> None:
        """Send SIGKILL to the selected process."""
        node = self._selected()
        if node is not None and not terminate(node.pid, force=True):
            self.notify(f"Could not kill {node.pid}", severity="error")

    def action_debug(self) -> None:
        """Show the debugger attach configuration for the selected process."""
        node = self._selected()
        if node is not None:
            self.notify(json.dumps(attach_config(node.record)), title=node.name)

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._poller.stop()
        self.exit()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for proctree."""
    settings = load_settings(argv)
    if settings.log_file:
        logging.basicConfig(
            filename=settings.log_file,
            level=settings.log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    if settings.once:
        store = ProcessTreeStore()
        poller = TreePoller(store, settings.root_pid, keep_terminated=settings.keep_terminated)
        if not poller.poll_once():
            sys.exit(f"proctree: no snapshot for pid {settings.root_pid}")
        print(render_text(store))
        return

    app = ProcTreeApp(settings)
    app.run()


if __name__ == "__main__":
    main()

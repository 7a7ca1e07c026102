"""Verification Test: Chaos Monkey - process churn under the poller.

Children of the test process are spawned and killed at random while a
poller watches the test process. The poller must keep ticking, keep the
tree ordered by pid, keep node identity for survivors and drop the dead.
"""

import os
import random
import subprocess
import sys
import time
from queue import Empty, Queue

from proctree.poller import TreePoller
from proctree.store import ProcessTreeStore


def spawn_sleeper(duration: float = 60.0) -> subprocess.Popen:
    """Spawn a direct child that sleeps for a given duration."""
    return subprocess.Popen([sys.executable, "-c", f"import time; time.sleep({duration})"])


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


def child_pids(store: ProcessTreeStore) -> list[int]:
    return [node.pid for node in store.children()]


def make_poller(interval: float = 0.2) -> tuple[TreePoller, Queue]:
    store = ProcessTreeStore()
    updates: Queue[None] = Queue()
    store.changed.subscribe(lambda: updates.put(None))
    return TreePoller(store, os.getpid(), interval=interval), updates


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_poller_survives_process_termination(self):
        """Test killed children vanish and survivors keep their nodes."""
        processes = [spawn_sleeper() for _ in range(20)]
        poller, updates = make_poller()

        try:
            poller.start()
            store = poller.store
            pids = {p.pid for p in processes}
            assert wait_for(lambda: pids <= set(child_pids(store)))

            nodes_before = {node.pid: node for node in store.children()}
            victims = random.sample(processes, 10)
            for p in victims:
                p.terminate()
            for p in victims:
                p.wait(timeout=5.0)

            victim_pids = {p.pid for p in victims}
            assert wait_for(lambda: not victim_pids & set(child_pids(store)))

            survivors = pids - victim_pids
            for node in store.children():
                if node.pid in survivors:
                    assert node is nodes_before[node.pid]

            current = child_pids(store)
            assert current == sorted(current)
            assert poller.is_running
        finally:
            poller.stop()
            for p in processes:
                if p.poll() is None:
                    p.terminate()
            for p in processes:
                p.wait(timeout=5.0)

    def test_rapid_process_creation_and_termination(self):
        """Test the poller keeps notifying during rapid churn."""
        poller, updates = make_poller()
        processes = []

        try:
            poller.start()

            start_time = time.time()
            while time.time() - start_time < 3.0:
                for _ in range(3):
                    processes.append(spawn_sleeper(10.0))

                alive = [p for p in processes if p.poll() is None]
                if len(alive) > 10:
                    for p in random.sample(alive, 3):
                        p.terminate()

                time.sleep(0.1)

            assert poller.is_running, "Poller crashed during rapid churn"

            while True:
                try:
                    updates.get_nowait()
                except Empty:
                    break
            try:
                updates.get(timeout=3.0)
            except Empty:
                raise AssertionError("Poller stopped providing updates") from None
        finally:
            poller.stop()
            for p in processes:
                if p.poll() is None:
                    p.terminate()
            for p in processes:
                p.wait(timeout=5.0)

    def test_exited_child_removed(self):
        """Test a child exiting on its own disappears from the tree."""
        poller, updates = make_poller()
        p = spawn_sleeper(0.5)

        try:
            poller.start()
            store = poller.store
            assert wait_for(lambda: p.pid in child_pids(store))

            p.wait(timeout=5.0)
            assert wait_for(lambda: p.pid not in child_pids(store))
        finally:
            poller.stop()
            if p.poll() is None:
                p.kill()

"""Data models for proctree."""

from dataclasses import dataclass, field, replace


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable description of one process at snapshot time."""

    pid: int
    ppid: int
    command: str
    name: str
    cpu_load: float  # 0.0 - 100.0 * core_count
    memory: float  # Resident memory, percent of physical memory
    children: tuple["ProcessRecord", ...] = ()
    is_electron_host: bool = False


ROOT_RECORD = ProcessRecord(
    pid=0,
    ppid=0,
    command="root",
    name="root",
    cpu_load=0.0,
    memory=0.0,
)


@dataclass(slots=True, eq=False)
class TreeNode:
    """
    Durable wrapper around the latest known state of one process.

    Nodes compare by identity: the same object represents a pid for as long
    as the pid keeps showing up in consecutive snapshots. The backing record
    never carries children; ``children`` is authoritative.
    """

    record: ProcessRecord
    children: list["TreeNode"] = field(default_factory=list)
    marked_removed: bool = False

    @classmethod
    def from_record(cls, record: ProcessRecord) -> "TreeNode":
        """Wrap a record seen for the first time; children are left to the merge."""
        return cls(record=replace(record, children=()))

    @property
    def pid(self) -> int:
        return self.record.pid

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    @property
    def label(self) -> str:
        """Display label: name with load figures, bare name once terminated."""
        if self.marked_removed:
            return self.record.name
        return f"{self.record.name} ({self.record.cpu_load:.1f}%, {self.record.memory:.1f}%)"

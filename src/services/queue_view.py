"""
Queue Display Projection

Derives a renderable view from the queue: plain entries as rows, contiguous
runs of one playlist instance as collapsible groups. Pure functions, no
state of their own.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Union

from models.queue_entry import GroupId, QueueEntry
from models.track import format_duration, format_total_duration


@dataclass(frozen=True)
class QueueRow:
    """One queue entry as displayed"""
    index: int
    entry: QueueEntry
    is_current: bool = False

    @property
    def title(self) -> str:
        return self.entry.title

    @property
    def artist(self) -> str:
        return self.entry.metadata.artist

    @property
    def duration_str(self) -> str:
        return format_duration(self.entry.metadata.duration_seconds)


@dataclass(frozen=True)
class QueueGroup:
    """A contiguous run of entries from one playlist insertion"""
    group_id: GroupId
    label: str
    rows: List[QueueRow] = field(default_factory=list)
    collapsed: bool = True

    @property
    def visible_rows(self) -> List[QueueRow]:
        return [] if self.collapsed else list(self.rows)

    @property
    def contains_current(self) -> bool:
        return any(row.is_current for row in self.rows)

    @property
    def total_duration_seconds(self) -> float:
        return sum(row.entry.metadata.duration_seconds or 0.0 for row in self.rows)

    @property
    def total_duration_str(self) -> str:
        return format_total_duration(self.total_duration_seconds)


QueueItem = Union[QueueRow, QueueGroup]


@dataclass(frozen=True)
class QueueView:
    """Projection of the whole queue"""
    items: List[QueueItem] = field(default_factory=list)
    total_tracks: int = 0
    total_duration_seconds: float = 0.0

    @property
    def total_duration_str(self) -> str:
        return format_total_duration(self.total_duration_seconds)

    @property
    def visible_rows(self) -> List[QueueRow]:
        rows: List[QueueRow] = []
        for item in self.items:
            if isinstance(item, QueueGroup):
                rows.extend(item.visible_rows)
            else:
                rows.append(item)
        return rows

    @property
    def groups(self) -> List[QueueGroup]:
        return [item for item in self.items if isinstance(item, QueueGroup)]


def group_labels(entries: Iterable[QueueEntry]) -> Dict[GroupId, str]:
    """
    Header label for every group in the queue

    A playlist name that appears as more than one group gets the ordinal of
    each instance among the same-named groups: "X (1)", "X (2)".
    """
    order: Dict[str, List[GroupId]] = {}
    for entry in entries:
        group_id = entry.group_id
        if group_id is None:
            continue
        seen = order.setdefault(group_id.playlist_name, [])
        if group_id not in seen:
            seen.append(group_id)

    labels: Dict[GroupId, str] = {}
    for name, group_ids in order.items():
        for ordinal, group_id in enumerate(group_ids, start=1):
            labels[group_id] = f"{name} ({ordinal})" if len(group_ids) > 1 else name
    return labels


def project_queue(
    entries: List[QueueEntry],
    cursor: Optional[int],
    collapsed_groups: FrozenSet[GroupId] = frozenset(),
) -> QueueView:
    """
    Build the display view of a queue

    Args:
        entries: Queue entries in order
        cursor: Index of the current entry, or None
        collapsed_groups: Groups whose rows are hidden

    Returns:
        QueueView: Rows and groups in queue order. Collapsed groups still
        count toward the totals.
    """
    labels = group_labels(entries)
    items: List[QueueItem] = []
    group_rows: List[QueueRow] = []
    group_id: Optional[GroupId] = None

    def flush() -> None:
        if group_id is not None and group_rows:
            items.append(QueueGroup(
                group_id=group_id,
                label=labels[group_id],
                rows=list(group_rows),
                collapsed=group_id in collapsed_groups,
            ))

    for index, entry in enumerate(entries):
        row = QueueRow(index=index, entry=entry, is_current=index == cursor)
        if entry.group_id is not None and entry.group_id == group_id:
            group_rows.append(row)
            continue

        flush()
        group_rows = []
        group_id = entry.group_id
        if group_id is None:
            items.append(row)
        else:
            group_rows.append(row)
    flush()

    total = sum(entry.metadata.duration_seconds or 0.0 for entry in entries)
    return QueueView(items=items, total_tracks=len(entries), total_duration_seconds=total)


def build_queue_view(queue) -> QueueView:
    """Project a QueueManager's current state"""
    return project_queue(queue.get_queue(), queue.get_cursor(), queue.collapsed_groups)

"""Merge-base search over a possibly truncated (shallow) commit graph.

The walk keeps one history list per side, seeded with the side's tip.  The
sides take turns: each turn pops one commit from that side's queue and
appends its parents to the side's history.  Merge commits contribute their
parents in reverse order, so the second parent (the tip that was merged in)
is explored first.  After each extension the new entries are checked
against everything the other side has seen; the first hit is the merge
base.

A commit whose parents cannot be read marks the shallow-clone boundary.
That side simply stops growing there; if neither side finds a common id,
the result is ``None`` ("unrelated histories").
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

ParentReader = Callable[[str], Sequence[str] | None]


class _Side:
    def __init__(self, tip: str) -> None:
        self.history: list[str] = [tip]
        self.seen: set[str] = {tip}
        self.queue: deque[tuple[str, int]] = deque([(tip, 0)])

    def extend(
        self, read_parents: ParentReader, max_depth: int | None
    ) -> list[str]:
        """Expand one queued commit and return the newly seen parents."""
        commit, depth = self.queue.popleft()
        if max_depth is not None and depth >= max_depth:
            return []
        parents = read_parents(commit)
        if parents is None:
            return []
        added = []
        for parent in reversed(parents):
            if parent in self.seen:
                continue
            self.seen.add(parent)
            self.history.append(parent)
            self.queue.append((parent, depth + 1))
            added.append(parent)
        return added


def find_merge_base(
    read_parents: ParentReader,
    src_commit: str,
    target_commit: str,
    max_depth: int | None = None,
) -> str | None:
    """Find the nearest common ancestor of two commits.

    Args:
        read_parents: Returns the parent ids of a commit, or ``None`` when
            the commit object is not available locally.
        src_commit: Tip of the source side.
        target_commit: Tip of the target side; its history is extended
            first on every round.
        max_depth: Maximum number of generations walked per side.

    Returns:
        The merge base id, or ``None`` if no common ancestor is reachable
        within the available history.
    """
    if src_commit == target_commit:
        return src_commit

    target = _Side(target_commit)
    src = _Side(src_commit)
    base = None
    while base is None and (target.queue or src.queue):
        for side, other in ((target, src), (src, target)):
            if not side.queue:
                continue
            added = side.extend(read_parents, max_depth)
            base = next((oid for oid in added if oid in other.seen), None)
            if base is not None:
                break

    logger.info(
        "Merge base for source commit %s and target commit %s: %s",
        src_commit,
        target_commit,
        base,
    )
    return base

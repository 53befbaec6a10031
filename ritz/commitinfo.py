"""
Commit views: one commit, its first-parent diff and the per-file line counts.

Every page that shows commit data (commit detail, log, refs) goes through
``assemble``; nothing else computes diff statistics.
"""

from __future__ import annotations
import dataclasses
import logging
from typing import List, Tuple

from .errors import ResourceUnavailable
from .git import DEFAULT_CONTEXT, CommitRef, FileDelta, Patch, RawDiff, Repository

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class DeltaStats:
    added: int
    deleted: int

    @property
    def changed(self) -> int:
        return self.added + self.deleted


@dataclasses.dataclass(frozen=True)
class CollectedStats:
    deltas: Tuple[FileDelta, ...]
    patches: Tuple[Patch, ...]
    stats: Tuple[DeltaStats, ...]
    total_added: int
    total_deleted: int


@dataclasses.dataclass(frozen=True)
class CommitView:
    """
    A commit plus its diff against the first parent.

    ``deltas``, ``delta_stats`` and ``patches`` are parallel: index i in each
    describes the same file, and i is the file index used in patch anchors.
    Merge commits are diffed against their first parent only, so changes that
    came in through other parents are not shown.
    """

    commit: CommitRef
    deltas: Tuple[FileDelta, ...]
    delta_stats: Tuple[DeltaStats, ...]
    patches: Tuple[Patch, ...]
    add_count: int
    del_count: int

    def __post_init__(self) -> None:
        if not len(self.deltas) == len(self.delta_stats) == len(self.patches):
            raise ValueError(
                f"parallel lists differ: {len(self.deltas)} deltas, "
                f"{len(self.delta_stats)} stats, {len(self.patches)} patches"
            )

    @property
    def file_count(self) -> int:
        return len(self.deltas)


def collect_stats(diff: RawDiff) -> CollectedStats:
    """
    Classify renames/copies (exact matches only) and count added and deleted
    lines per delta. Any delta without a patch fails the whole collection.
    """
    classified = diff.find_similar(exact_match_only=True)
    patches: List[Patch] = []
    stats: List[DeltaStats] = []
    total_added = total_deleted = 0
    for idx in range(len(classified)):
        patch = classified.patch(idx)
        added, deleted = patch.line_stats()
        patches.append(patch)
        stats.append(DeltaStats(added, deleted))
        total_added += added
        total_deleted += deleted
    return CollectedStats(
        deltas=classified.deltas,
        patches=tuple(patches),
        stats=tuple(stats),
        total_added=total_added,
        total_deleted=total_deleted,
    )


def assemble(repo: Repository, commit_id: str, context_lines: int = DEFAULT_CONTEXT) -> CommitView:
    commit = repo.resolve_commit(commit_id)
    try:
        commit_tree = repo.tree_of(commit.oid)
        parent_tree = repo.tree_of(commit.parent_oid) if commit.parent_oid else None
        collected = collect_stats(repo.diff(parent_tree, commit_tree, context_lines))
    except ResourceUnavailable as e:
        logger.error("cannot assemble commit %s in %s: %s", commit.oid, repo.name, e)
        raise
    return CommitView(
        commit=commit,
        deltas=collected.deltas,
        delta_stats=collected.stats,
        patches=collected.patches,
        add_count=collected.total_added,
        del_count=collected.total_deleted,
    )

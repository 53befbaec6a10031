"""
Diffstat and anchored patch rendering for a ``CommitView``.

Anchors: file ``i`` is ``h{i}``, hunk ``j`` of that file is ``h{i}-{j}``, and
added or deleted line ``k`` of that hunk is ``h{i}-{j}-{k}``. Context lines
have no anchor but still count towards ``k``.
"""

from __future__ import annotations
import dataclasses
import urllib.parse
from typing import List, Protocol, Sequence, Tuple

from .commitinfo import CommitView, DeltaStats
from .git import FileDelta
from .util import decode_lossy, escape, escape_line, format_time

DIFFSTAT_WIDTH = 80


class Sink(Protocol):
    def write(self, s: str) -> object: ...


# ---- diffstat ----------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class DiffstatRow:
    code: str
    path: str
    changed: int
    plus: int
    minus: int


def scale(added: int, deleted: int, total_width: int = DIFFSTAT_WIDTH) -> Tuple[int, int]:
    """Bar lengths for one file; every nonzero side keeps at least one symbol."""
    changed = added + deleted
    if changed <= total_width:
        return added, deleted
    plus = added * total_width // changed + 1 if added else 0
    minus = deleted * total_width // changed + 1 if deleted else 0
    return plus, minus


def display_path(delta: FileDelta) -> str:
    if delta.old_path != delta.new_path:
        return f"{delta.old_path} -> {delta.new_path}"
    return delta.old_path


def diffstat_rows(deltas: Sequence[FileDelta], stats: Sequence[DeltaStats],
                  total_width: int = DIFFSTAT_WIDTH) -> List[DiffstatRow]:
    rows: List[DiffstatRow] = []
    for delta, st in zip(deltas, stats):
        plus, minus = scale(st.added, st.deleted, total_width)
        rows.append(DiffstatRow(delta.status.code, display_path(delta), st.changed, plus, minus))
    return rows


def _plural(n: int) -> str:
    return "" if n == 1 else "s"


def diffstat_summary(files: int, added: int, deleted: int) -> str:
    return (
        f"{files} file{_plural(files)} changed, "
        f"{added} insertion{_plural(added)}(+), "
        f"{deleted} deletion{_plural(deleted)}(-)"
    )


def write_diffstat(w: Sink, view: CommitView, total_width: int = DIFFSTAT_WIDTH) -> None:
    w.write("<b>Diffstat:</b>\n<table>")
    for i, row in enumerate(diffstat_rows(view.deltas, view.delta_stats, total_width)):
        if row.code == " ":
            w.write("<tr><td> ")
        else:
            w.write(f'<tr><td class="{row.code}">{row.code}')
        w.write(f'</td><td><a href="#h{i}">{escape(row.path)}</a>')
        w.write("</td><td> | </td>")
        w.write(f'<td class="num">{row.changed}</td>')
        w.write(f'<td><span class="i">{"+" * row.plus}</span>')
        w.write(f'<span class="d">{"-" * row.minus}</span></td></tr>\n')
    w.write("</table>")
    w.write(diffstat_summary(view.file_count, view.add_count, view.del_count))
    w.write("\n")


# ---- patch -------------------------------------------------------------------

def _tree_link(tree_base: str, path: str) -> str:
    href = escape(tree_base + urllib.parse.quote(path))
    return f'href="{href}"'


def write_patch(w: Sink, view: CommitView, tree_base: str = "../tree/") -> None:
    for i, patch in enumerate(view.patches):
        delta = patch.delta
        old, new = escape(delta.old_path), escape(delta.new_path)
        w.write(f'<b>diff --git a/<a id="h{i}" {_tree_link(tree_base, delta.old_path)}>{old}</a>')
        w.write(f' b/<a {_tree_link(tree_base, delta.new_path)}>{new}</a></b>\n')

        if delta.binary:
            w.write("Binary files differ\n")
            continue

        for j, hunk in enumerate(patch.hunks):
            w.write(f'<a href="#h{i}-{j}" id="h{i}-{j}" class="h">')
            w.write(escape(hunk.header))
            w.write("</a>")
            for k, line in enumerate(hunk.lines):
                origin = line.origin
                if origin == "+":
                    w.write(f'<a href="#h{i}-{j}-{k}" id="h{i}-{j}-{k}" class="i">+')
                elif origin == "-":
                    w.write(f'<a href="#h{i}-{j}-{k}" id="h{i}-{j}-{k}" class="d">-')
                else:
                    w.write(" ")
                w.write(escape_line(decode_lossy(line.content)))
                w.write("\n")
                if origin != " ":
                    w.write("</a>")


# ---- commit header -----------------------------------------------------------

def write_commit(w: Sink, view: CommitView, commit_base: str = "../commit/") -> None:
    c = view.commit
    w.write(f'<b>commit</b> <a href="{commit_base}{c.oid}">{c.oid}</a>\n')
    if c.parent_oid:
        w.write(f'<b>parent</b> <a href="{commit_base}{c.parent_oid}">{c.parent_oid}</a>\n')
    if c.is_merge:
        w.write("<b>Merge:</b> diff shown against the first parent\n")
    email = escape(c.author.email)
    w.write(f'<b>Author:</b> {escape(c.author.name)} &lt;<a href="mailto:{email}">{email}</a>&gt;\n')
    w.write(f"<b>Date:</b>   {format_time(c.author.time, c.author.offset_minutes)}\n")
    if c.message:
        w.write(f"\n{escape(c.message)}\n")

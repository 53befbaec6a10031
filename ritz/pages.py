"""
Page composition: chrome plus the listing, tree, blob and commit pages.
"""

from __future__ import annotations
import io
import urllib.parse
from typing import Iterable, List, Sequence, Tuple

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import TextLexer, get_lexer_for_filename
from pygments.util import ClassNotFound

from .commitinfo import CommitView
from .git import Blob, CommitRef, Reference, TreeEntry
from .render import write_commit, write_diffstat, write_patch
from .util import bytes_human, decode_lossy, escape, format_time_short

MAX_HIGHLIGHT_BYTES = 512 * 1024


def _q(s: str) -> str:
    return escape(urllib.parse.quote(s))


# ---- chrome ------------------------------------------------------------------

def header(title: str) -> str:
    formatter = HtmlFormatter(nowrap=False)
    pygments_css = formatter.get_style_defs(".highlight")
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>{escape(title)}</title>
<style>
  body {{ margin: 1rem; font-family: monospace; color: #222; }}
  a {{ color: #0366d6; text-decoration: none; }}
  a:hover {{ text-decoration: underline; }}
  a.h {{ color: #6f42c1; }}
  a.i, span.i {{ color: #0a7b34; }}
  a.d, span.d {{ color: #a01515; }}
  table td {{ padding: 0 .4rem; }}
  thead td {{ border-bottom: 1px solid #ddd; }}
  td.num {{ text-align: right; }}
  td.A {{ color: #0a7b34; }}
  td.D {{ color: #a01515; }}
  td.M, td.T {{ color: #0366d6; }}
  td.R, td.C {{ color: #8a6d3b; }}
  pre {{ overflow-x: auto; }}
  hr {{ border: 0; border-top: 1px solid #ddd; }}

  /* Pygments */
  {pygments_css}
</style>
</head>
<body>
"""


def footer() -> str:
    return "</body></html>\n"


def repo_nav(repo: str) -> str:
    r = _q(repo)
    return (
        f"<h1>{escape(repo)}</h1>"
        f"<span>git clone git://{escape(repo)}.git</span>\n"
        f'<span><a href="/{r}/log">Log</a> <a href="/{r}/tree">Tree</a> <a href="/{r}/refs">Refs</a></span>'
        "<hr/>\n"
    )


# ---- pages -------------------------------------------------------------------

def index_page(names: Sequence[str]) -> str:
    rows = "\n".join(f'<tr><td><a href="/{_q(n)}">{escape(n)}</a></td></tr>' for n in names)
    return (
        header("Repositories")
        + "<span>Repositories</span><hr/>\n"
        + "<table><thead><tr><td><b>Name</b></td></tr></thead>\n<tbody>\n"
        + rows
        + "\n</tbody></table>\n"
        + footer()
    )


def log_row(repo: str, view: CommitView) -> str:
    c = view.commit
    summary = ""
    if c.summary:
        summary = f'<a href="/{_q(repo)}/commit/{c.oid}">{escape(c.summary)}</a>'
    return (
        f"<tr><td>{format_time_short(c.author.time)}</td>"
        f"<td>{summary}</td>"
        f"<td>{escape(c.author.name)}</td>"
        f'<td class="num">{view.file_count}</td>'
        f'<td class="num">+{view.add_count}</td>'
        f'<td class="num">-{view.del_count}</td></tr>\n'
    )


def log_page(repo: str, views: Iterable[CommitView]) -> str:
    out = io.StringIO()
    out.write(header(f"{repo} - Log"))
    out.write(repo_nav(repo))
    out.write(
        '<table id="log"><thead><tr>'
        "<td><b>Date</b></td><td><b>Commit message</b></td><td><b>Author</b></td>"
        '<td class="num"><b>Files</b></td><td class="num"><b>+</b></td><td class="num"><b>-</b></td>'
        "</tr></thead>\n<tbody>\n"
    )
    for view in views:
        out.write(log_row(repo, view))
    out.write("</tbody></table>\n")
    out.write(footer())
    return out.getvalue()


def sort_refs(refs: Iterable[Tuple[Reference, CommitRef]]) -> List[Tuple[Reference, CommitRef]]:
    """Branches before tags, newest author time first, then by name."""
    return sorted(refs, key=lambda rc: (rc[0].is_tag, -rc[1].author.time, rc[0].shorthand))


def refs_page(repo: str, refs: Iterable[Tuple[Reference, CommitRef]]) -> str:
    ordered = sort_refs(refs)
    out = io.StringIO()
    out.write(header(f"{repo} - Refs"))
    out.write(repo_nav(repo))
    for title, table_id, is_tag in (("Branches", "branches", False), ("Tags", "tags", True)):
        group = [rc for rc in ordered if rc[0].is_tag == is_tag]
        if not group:
            continue
        out.write(
            f'<h2>{title}</h2><table id="{table_id}"><thead><tr>'
            "<td><b>Name</b></td><td><b>Last commit date</b></td><td><b>Author</b></td>"
            "</tr></thead>\n<tbody>\n"
        )
        for ref, commit in group:
            out.write(
                f'<tr><td><a href="/{_q(repo)}/commit/{commit.oid}">{escape(ref.shorthand)}</a></td>'
                f"<td>{format_time_short(commit.author.time)}</td>"
                f"<td>{escape(commit.author.name)}</td></tr>\n"
            )
        out.write("</tbody></table>\n")
    out.write(footer())
    return out.getvalue()


def tree_page(repo: str, path: str, entries: Sequence[TreeEntry]) -> str:
    base = f"/{_q(repo)}/tree/"
    prefix = f"{path.strip('/')}/" if path.strip("/") else ""
    out = io.StringIO()
    out.write(header(f"{repo} - {path or '/'}"))
    out.write(repo_nav(repo))
    if prefix:
        out.write(f"<p>{escape(prefix)}</p>\n")
    out.write(
        "<table><thead><tr><td><b>Mode</b></td><td><b>Name</b></td>"
        '<td class="num"><b>Size</b></td></tr></thead>\n<tbody>\n'
    )
    for e in entries:
        name = escape(e.name) + ("/" if e.kind == "tree" else "")
        out.write(
            f"<tr><td>{e.mode:06o}</td>"
            f'<td><a href="{base}{_q(prefix + e.name)}">{name}</a></td>'
            f'<td class="num">{e.size if e.size is not None else 0}</td></tr>\n'
        )
    out.write("</tbody></table>\n")
    out.write(footer())
    return out.getvalue()


def highlight_blob(blob: Blob) -> str:
    formatter = HtmlFormatter(nowrap=False)
    try:
        lexer = get_lexer_for_filename(blob.path, stripall=False)
    except ClassNotFound:
        lexer = TextLexer(stripall=False)
    return highlight(decode_lossy(blob.data), lexer, formatter)


def blob_page(repo: str, blob: Blob) -> str:
    name = blob.path.rsplit("/", 1)[-1]
    out = io.StringIO()
    out.write(header(f"{repo} - {blob.path}"))
    out.write(repo_nav(repo))
    out.write(f"<p>{escape(name)} ({blob.size}B, {bytes_human(blob.size)})</p><hr/>\n")
    if blob.binary:
        out.write("<p>Binary file.</p>\n")
    elif blob.size > MAX_HIGHLIGHT_BYTES:
        out.write(f"<pre>{escape(decode_lossy(blob.data))}</pre>\n")
    else:
        out.write(highlight_blob(blob))
    out.write(footer())
    return out.getvalue()


def commit_page(repo: str, view: CommitView) -> str:
    out = io.StringIO()
    out.write(header(f"{repo} - {view.commit.summary or view.commit.oid}"))
    out.write(repo_nav(repo))
    out.write("<pre>")
    write_commit(out, view, commit_base=f"/{_q(repo)}/commit/")
    out.write("<hr/>")
    write_diffstat(out, view)
    out.write("<hr/>")
    write_patch(out, view, tree_base=f"/{_q(repo)}/tree/")
    out.write("</pre>\n")
    out.write(footer())
    return out.getvalue()


def error_page(status: int, message: str) -> str:
    return header(f"{status}") + f"<h1>{status}</h1><p>{escape(message)}</p>\n" + footer()

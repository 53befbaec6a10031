"""
Thin layer over the git CLI: commits, trees, refs and tree-to-tree diffs.

A diff is read in two phases. ``Repository.diff`` returns a ``RawDiff`` whose
only operation is ``find_similar``; that runs rename/copy detection once and
returns a ``ClassifiedDiff``, which is the only object exposing deltas and
patches.
"""

from __future__ import annotations
import dataclasses
import enum
import io
import logging
import pathlib
from typing import List, Optional, Tuple

from unidiff import PatchedFile, PatchSet
from unidiff.constants import LINE_TYPE_NO_NEWLINE
from unidiff.errors import UnidiffParseError

from .errors import (
    CommitNotFound,
    GitError,
    PatchUnavailable,
    PathNotFound,
    RepositoryNotFound,
    TreeResolutionFailed,
)
from .util import decode_lossy, run

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT = 3
BINARY_SNIFF_BYTES = 8000

NO_NEWLINE_MARKER = b"\\ No newline at end of file\n"


# ---- data --------------------------------------------------------------------

class DeltaStatus(enum.Enum):
    ADDED = "A"
    COPIED = "C"
    DELETED = "D"
    MODIFIED = "M"
    RENAMED = "R"
    TYPECHANGE = "T"
    UNMERGED = "U"
    UNKNOWN = "X"

    @classmethod
    def from_raw(cls, field: str) -> "DeltaStatus":
        # e.g. "M", "R100", "C075"
        try:
            return cls(field[:1])
        except ValueError:
            return cls.UNKNOWN

    @property
    def code(self) -> str:
        return self.value if self.value in "ACDMRT" else " "


@dataclasses.dataclass(frozen=True)
class Signature:
    name: str
    email: str
    time: int
    offset_minutes: int


@dataclasses.dataclass(frozen=True)
class CommitRef:
    oid: str
    parent_oid: Optional[str]
    author: Signature
    summary: Optional[str]
    message: Optional[str]
    is_merge: bool = False


@dataclasses.dataclass(frozen=True)
class TreeSnapshot:
    oid: str


@dataclasses.dataclass(frozen=True)
class FileDelta:
    status: DeltaStatus
    old_path: str
    new_path: str
    binary: bool = False
    similarity: Optional[int] = None


@dataclasses.dataclass(frozen=True)
class Line:
    old_lineno: Optional[int]
    new_lineno: Optional[int]
    content: bytes
    # "\ No newline at end of file"; carries the numbers of the line before it
    marker: bool = False

    @property
    def origin(self) -> str:
        if self.old_lineno is None:
            return "+"
        if self.new_lineno is None:
            return "-"
        return " "


@dataclasses.dataclass(frozen=True)
class Hunk:
    header: str
    lines: Tuple[Line, ...]


@dataclasses.dataclass(frozen=True)
class Patch:
    delta: FileDelta
    hunks: Tuple[Hunk, ...]

    def line_stats(self) -> Tuple[int, int]:
        """Return (added, deleted) line counts."""
        added = deleted = 0
        for hunk in self.hunks:
            for line in hunk.lines:
                if line.marker:
                    continue
                if line.origin == "+":
                    added += 1
                elif line.origin == "-":
                    deleted += 1
        return added, deleted


@dataclasses.dataclass(frozen=True)
class Reference:
    name: str
    shorthand: str
    target: str

    @property
    def is_tag(self) -> bool:
        return self.name.startswith("refs/tags/")

    @property
    def is_branch(self) -> bool:
        return self.name.startswith("refs/heads/")


@dataclasses.dataclass(frozen=True)
class TreeEntry:
    mode: int
    kind: str  # blob, tree or commit (submodule)
    oid: str
    size: Optional[int]
    name: str


@dataclasses.dataclass(frozen=True)
class Blob:
    path: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def binary(self) -> bool:
        return b"\0" in self.data[:BINARY_SNIFF_BYTES]


# ---- patch parsing -----------------------------------------------------------

def _parse_patch(data: bytes) -> PatchSet:
    # surrogateescape keeps undecodable bytes recoverable from each line's value
    text = data.decode("utf-8", errors="surrogateescape")
    try:
        return PatchSet(io.StringIO(text))
    except UnidiffParseError as e:
        raise GitError(["diff-tree", "-p"], f"unparsable patch output: {e}") from e


def _raw(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def _span(start: int, length: int) -> str:
    # git leaves out a count of one
    return f"{start}" if length == 1 else f"{start},{length}"


def _hunk_header(hunk) -> str:
    header = f"@@ -{_span(hunk.source_start, hunk.source_length)} +{_span(hunk.target_start, hunk.target_length)} @@"
    if hunk.section_header:
        header += " " + decode_lossy(_raw(hunk.section_header))
    return header + "\n"


def _convert_hunk(hunk) -> Hunk:
    lines: List[Line] = []
    for line in hunk:
        if line.line_type == LINE_TYPE_NO_NEWLINE:
            # numbered like the line it annotates
            prev = lines[-1] if lines else None
            lines.append(Line(
                prev.old_lineno if prev else None,
                prev.new_lineno if prev else None,
                NO_NEWLINE_MARKER,
                marker=True,
            ))
        else:
            lines.append(Line(line.source_line_no, line.target_line_no, _raw(line.value)))
    return Hunk(_hunk_header(hunk), tuple(lines))


def _patched_path(patched_file: PatchedFile) -> str:
    name = patched_file.source_file if patched_file.target_file == "/dev/null" else patched_file.target_file
    return name[2:] if name[:2] in ("a/", "b/") else name


def _parse_offset(tz: str) -> int:
    """Minutes east of UTC for a "+hhmm" zone; 0 when malformed."""
    tz = tz.strip()
    if len(tz) != 5 or tz[0] not in "+-" or not tz[1:].isdigit():
        return 0
    sign = -1 if tz[0] == "-" else 1
    return sign * (int(tz[1:3]) * 60 + int(tz[3:5]))


def _parse_raw(data: bytes) -> List[Tuple[FileDelta, bytes]]:
    """Parse ``diff-tree --raw -z`` output into deltas plus raw new paths."""
    out: List[Tuple[FileDelta, bytes]] = []
    fields = data.split(b"\0")
    i = 0
    while i < len(fields):
        head = fields[i]
        if not head.startswith(b":"):
            i += 1
            continue
        # ":100644 100644 <old> <new> R100"
        status_field = head.decode("ascii", errors="replace").split()[-1]
        status = DeltaStatus.from_raw(status_field)
        similarity = None
        if status in (DeltaStatus.RENAMED, DeltaStatus.COPIED):
            if status_field[1:].isdigit():
                similarity = int(status_field[1:])
            old_raw, new_raw = fields[i + 1], fields[i + 2]
            i += 3
        else:
            old_raw = new_raw = fields[i + 1]
            i += 2
        delta = FileDelta(
            status=status,
            old_path=decode_lossy(old_raw),
            new_path=decode_lossy(new_raw),
            similarity=similarity,
        )
        out.append((delta, new_raw))
    return out


# ---- diffs -------------------------------------------------------------------

class ClassifiedDiff:
    """Deltas after similarity detection, each with its parsed patch."""

    def __init__(self, raw_deltas: List[Tuple[FileDelta, bytes]], patched_files: List[PatchedFile]) -> None:
        deltas: List[FileDelta] = []
        self._patches: List[Optional[Patch]] = []
        pos = 0
        aligned = True
        for delta, new_raw in raw_deltas:
            # a type change is printed as a deletion followed by an addition
            wanted = 2 if delta.status is DeltaStatus.TYPECHANGE else 1
            taken = patched_files[pos:pos + wanted]
            path = new_raw.decode("utf-8", errors="surrogateescape")
            if aligned and (len(taken) < wanted or any(_patched_path(pf) != path for pf in taken)):
                logger.warning("patch output out of step with deltas at %s", delta.new_path)
                aligned = False
            if not aligned:
                deltas.append(delta)
                self._patches.append(None)
                continue
            pos += wanted
            hunks = tuple(_convert_hunk(h) for pf in taken for h in pf)
            delta = dataclasses.replace(delta, binary=any(pf.is_binary_file for pf in taken))
            deltas.append(delta)
            self._patches.append(Patch(delta, hunks))
        self.deltas: Tuple[FileDelta, ...] = tuple(deltas)

    def __len__(self) -> int:
        return len(self.deltas)

    def patch(self, index: int) -> Patch:
        if not 0 <= index < len(self._patches):
            raise PatchUnavailable(index)
        p = self._patches[index]
        if p is None:
            raise PatchUnavailable(index)
        return p


class RawDiff:
    """A tree-to-tree diff that has not been through similarity detection."""

    def __init__(self, repo: "Repository", old_tree: Optional[TreeSnapshot], new_tree: TreeSnapshot,
                 context_lines: int = DEFAULT_CONTEXT) -> None:
        self._repo = repo
        self.old_tree = old_tree
        self.new_tree = new_tree
        self.context_lines = context_lines
        self._classified = False

    def find_similar(self, exact_match_only: bool = True) -> ClassifiedDiff:
        """Detect renames and copies and return the classified diff. Runs once."""
        if self._classified:
            raise RuntimeError("similarity detection already ran on this diff")
        self._classified = True
        find = ["-M100%", "-C100%"] if exact_match_only else ["-M", "-C"]
        old = self.old_tree.oid if self.old_tree is not None else self._repo.empty_tree()
        new = self.new_tree.oid
        raw = self._repo._git(["diff-tree", "-r", "-z", "--raw", "--no-abbrev", *find, old, new])
        patch = self._repo._git([
            "diff-tree", "-r", "-p", "--no-color", f"-U{self.context_lines}",
            "--src-prefix=a/", "--dst-prefix=b/", *find, old, new,
        ])
        return ClassifiedDiff(_parse_raw(raw), list(_parse_patch(patch)))


# ---- repository --------------------------------------------------------------

def is_repository(path: pathlib.Path) -> bool:
    if (path / ".git").exists():
        return True
    return (path / "HEAD").is_file() and (path / "objects").is_dir() and (path / "refs").is_dir()


def find_repositories(root: pathlib.Path) -> List[str]:
    """Names of the immediate subdirectories of ``root`` that are repositories."""
    if not root.is_dir():
        return []
    return sorted(p.name for p in root.iterdir() if p.is_dir() and is_repository(p))


class Repository:
    """A git repository opened for the duration of one request."""

    def __init__(self, path: pathlib.Path) -> None:
        self.path = path
        self._closed = False
        self._empty_tree: Optional[str] = None

    @classmethod
    def open(cls, path: str | pathlib.Path) -> "Repository":
        path = pathlib.Path(path)
        if not path.is_dir() or not is_repository(path):
            raise RepositoryNotFound(path.name)
        return cls(path)

    @classmethod
    def open_in(cls, root: pathlib.Path, name: str) -> "Repository":
        """Open the repository ``name`` directly below ``root``."""
        if not name or name.startswith(".") or "/" in name or "\\" in name:
            raise RepositoryNotFound(name)
        return cls.open(root / name)

    def __enter__(self) -> "Repository":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._closed = True

    @property
    def name(self) -> str:
        return self.path.name

    def _git(self, args: List[str], input: Optional[bytes] = None) -> bytes:
        if self._closed:
            raise RuntimeError(f"repository {self.path} is closed")
        cmd = ["git", "-c", "core.quotepath=off", *args]
        cp = run(cmd, cwd=str(self.path), check=False, text=False, input=input)
        if cp.returncode != 0:
            raise GitError(cmd, decode_lossy(cp.stderr).strip())
        return cp.stdout

    def _rev_parse(self, rev: str) -> Optional[str]:
        if not rev or rev.startswith("-"):
            return None
        try:
            return decode_lossy(self._git(["rev-parse", "--verify", "--quiet", rev])).strip()
        except GitError:
            return None

    def empty_tree(self) -> str:
        """Id of the empty tree in this repository's object format."""
        if self._empty_tree is None:
            self._empty_tree = decode_lossy(self._git(["hash-object", "-t", "tree", "--stdin"], input=b"")).strip()
        return self._empty_tree

    # -- commits --

    def resolve_commit(self, rev: str) -> CommitRef:
        oid = self._rev_parse(f"{rev}^{{commit}}")
        if oid is None:
            raise CommitNotFound(rev)
        out = self._git(["show", "-s", "--no-show-signature", "--date=raw", "--format=%P%x1f%an%x1f%ae%x1f%ad%x1f%s%x1f%B", oid])
        parents, name, email, date, subject, body = decode_lossy(out).split("\x1f", 5)
        parent_list = parents.split()
        seconds, _, tz = date.partition(" ")
        message = body.rstrip("\n")
        return CommitRef(
            oid=oid,
            parent_oid=parent_list[0] if parent_list else None,
            author=Signature(name=name, email=email, time=int(seconds), offset_minutes=_parse_offset(tz)),
            summary=subject.strip() or None,
            message=message or None,
            is_merge=len(parent_list) > 1,
        )

    def tree_of(self, oid: str) -> TreeSnapshot:
        tree = self._rev_parse(f"{oid}^{{tree}}")
        if tree is None:
            raise TreeResolutionFailed(oid)
        return TreeSnapshot(tree)

    def diff(self, old_tree: Optional[TreeSnapshot], new_tree: TreeSnapshot,
             context_lines: int = DEFAULT_CONTEXT) -> RawDiff:
        return RawDiff(self, old_tree, new_tree, context_lines)

    def head(self) -> str:
        oid = self._rev_parse("HEAD^{commit}")
        if oid is None:
            raise CommitNotFound("HEAD")
        return oid

    def walk(self, start: str, limit: Optional[int] = None) -> List[str]:
        """Commit ids reachable from ``start`` in topological order."""
        args = ["rev-list", "--topo-order"]
        if limit is not None and limit > 0:
            args.append(f"--max-count={limit}")
        args.append(start)
        return decode_lossy(self._git(args)).split()

    # -- refs --

    def references(self) -> List[Reference]:
        """Branches and tags that peel to a commit."""
        fmt = "%(refname)%1f%(refname:short)%1f%(objecttype)%1f%(objectname)%1f%(*objecttype)%1f%(*objectname)"
        out = decode_lossy(self._git(["for-each-ref", f"--format={fmt}", "refs/heads", "refs/tags"]))
        refs: List[Reference] = []
        for line in out.splitlines():
            if not line:
                continue
            name, short, otype, oid, ptype, poid = line.split("\x1f")
            if otype == "commit":
                target = oid
            elif ptype == "commit":
                target = poid
            else:
                continue
            refs.append(Reference(name=name, shorthand=short, target=target))
        return refs

    # -- trees --

    def _treeish(self, rev: str, path: str) -> str:
        if not rev or rev.startswith("-"):
            raise PathNotFound(rev, path)
        return f"{rev}:{path}" if path else f"{rev}^{{tree}}"

    def object_kind(self, rev: str, path: str = "") -> str:
        path = path.strip("/")
        try:
            return decode_lossy(self._git(["cat-file", "-t", self._treeish(rev, path)])).strip()
        except GitError:
            raise PathNotFound(rev, path) from None

    def list_tree(self, rev: str, path: str = "") -> List[TreeEntry]:
        path = path.strip("/")
        try:
            out = self._git(["ls-tree", "-z", "-l", self._treeish(rev, path)])
        except GitError:
            raise PathNotFound(rev, path) from None
        entries: List[TreeEntry] = []
        for rec in out.split(b"\0"):
            if not rec:
                continue
            # "<mode> <type> <oid> <size>\t<name>"
            meta, _, name = rec.partition(b"\t")
            mode, kind, oid, size = meta.decode("ascii", errors="replace").split()
            entries.append(
                TreeEntry(
                    mode=int(mode, 8),
                    kind=kind,
                    oid=oid,
                    size=int(size) if size.isdigit() else None,
                    name=decode_lossy(name),
                )
            )
        return entries

    def read_blob(self, rev: str, path: str) -> Blob:
        path = path.strip("/")
        try:
            data = self._git(["cat-file", "blob", self._treeish(rev, path)])
        except GitError:
            raise PathNotFound(rev, path) from None
        return Blob(path=path, data=data)

from __future__ import annotations
import datetime
import html
import pathlib
import subprocess
import tempfile
from typing import List

# ---- constants & utilities ---------------------------------------------------


def run(cmd: List[str], cwd: str | None = None, check: bool = True, text: bool = True,
        input: bytes | str | None = None) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, cwd=cwd, check=check, text=text, capture_output=True, input=input)


def bytes_human(n: int) -> str:
    units = ["B", "KiB", "MiB", "GiB", "TiB"]
    f = float(n)
    i = 0
    while f >= 1024.0 and i < len(units) - 1:
        f /= 1024.0
        i += 1
    return f"{int(f)} {units[i]}" if i == 0 else f"{f:.1f} {units[i]}"


def derive_temp_output_path(repo_name: str, oid: str) -> pathlib.Path:
    name = repo_name.rstrip("/").split("/")[-1] or "repo"
    if name.endswith(".git"):
        name = name[:-4]
    return pathlib.Path(tempfile.gettempdir()) / f"{name}-{oid[:8]}.html"


# ---- text --------------------------------------------------------------------

def escape(s: str) -> str:
    """Escape markup characters; newlines are kept."""
    return html.escape(s, quote=True)


def escape_line(s: str) -> str:
    """Escape markup characters and drop CR/LF, for single-line contexts."""
    return html.escape(s.replace("\r", "").replace("\n", ""), quote=True)


def decode_lossy(b: bytes) -> str:
    return b.decode("utf-8", errors="replace")


# ---- time --------------------------------------------------------------------

def _tz(offset_minutes: int) -> datetime.timezone:
    # a timezone must stay strictly within a day of UTC
    if abs(offset_minutes) >= 24 * 60:
        return datetime.timezone.utc
    return datetime.timezone(datetime.timedelta(minutes=offset_minutes))


def format_time(seconds: int, offset_minutes: int) -> str:
    """Long form in the author's offset, e.g. ``Mon, 2024 Jan 5 14:03:22 +0000``."""
    dt = datetime.datetime.fromtimestamp(seconds, tz=_tz(offset_minutes))
    return f"{dt:%a, %Y %b} {dt.day} {dt:%H:%M:%S %z}"


def format_time_short(seconds: int) -> str:
    """Short sortable form in UTC, e.g. ``2024-01-05 14:03``."""
    dt = datetime.datetime.fromtimestamp(seconds, tz=datetime.timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M")

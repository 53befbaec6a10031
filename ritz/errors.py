"""
Error taxonomy shared by the git layer, the assembler and the HTTP layer.

NotFound errors become 404 pages. ResourceUnavailable errors abort the page
being built and become a generic 500 page.
"""

from __future__ import annotations


class RitzError(Exception):
    pass


# ---- not found ---------------------------------------------------------------

class NotFound(RitzError):
    pass


class RepositoryNotFound(NotFound):
    def __init__(self, name: str) -> None:
        super().__init__(f"repository not found: {name}")
        self.name = name


class CommitNotFound(NotFound):
    def __init__(self, rev: str) -> None:
        super().__init__(f"commit not found: {rev}")
        self.rev = rev


class PathNotFound(NotFound):
    def __init__(self, rev: str, path: str) -> None:
        super().__init__(f"path not found: {rev}:{path}")
        self.rev = rev
        self.path = path


# ---- unavailable -------------------------------------------------------------

class ResourceUnavailable(RitzError):
    pass


class GitError(ResourceUnavailable):
    """Raised when a git command fails."""

    def __init__(self, cmd: list, stderr: str) -> None:
        super().__init__(f"{' '.join(cmd)}: {stderr or 'git command failed'}")
        self.cmd = cmd
        self.stderr = stderr


class TreeResolutionFailed(ResourceUnavailable):
    def __init__(self, oid: str) -> None:
        super().__init__(f"cannot resolve tree of {oid}")
        self.oid = oid


class PatchUnavailable(ResourceUnavailable):
    def __init__(self, delta_index: int) -> None:
        super().__init__(f"no patch for delta {delta_index}")
        self.delta_index = delta_index

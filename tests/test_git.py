"""Tests for the git layer: output parsing and a real repository."""

import subprocess

import pytest

from conftest import BASE_TIME, GitRepo, requires_git

import ritz.git
from ritz.errors import CommitNotFound, PatchUnavailable, PathNotFound, RepositoryNotFound, TreeResolutionFailed
from ritz.git import (
    NO_NEWLINE_MARKER,
    ClassifiedDiff,
    DeltaStatus,
    Repository,
    _parse_offset,
    _parse_patch,
    _parse_raw,
    find_repositories,
)

RAW = (
    b":000000 100644 0000000000000000000000000000000000000000 " + b"1" * 40 + b" A\0new.txt\0"
    b":100644 100644 " + b"2" * 40 + b" " + b"2" * 40 + b" R100\0old name.txt\0renamed.txt\0"
    b":100644 000000 " + b"3" * 40 + b" 0000000000000000000000000000000000000000 D\0gone.txt\0"
)

PATCH = (
    b"diff --git a/new.txt b/new.txt\n"
    b"new file mode 100644\n"
    b"index 0000000..1111111\n"
    b"--- /dev/null\n"
    b"+++ b/new.txt\n"
    b"@@ -0,0 +1,2 @@\n"
    b"+one\n"
    b"+two\r\n"
    b"diff --git a/old name.txt b/renamed.txt\n"
    b"similarity index 100%\n"
    b"rename from old name.txt\n"
    b"rename to renamed.txt\n"
    b"diff --git a/gone.txt b/gone.txt\n"
    b"deleted file mode 100644\n"
    b"index 3333333..0000000\n"
    b"Binary files a/gone.txt and /dev/null differ\n"
)

TWO_HUNKS = (
    b"diff --git a/f b/f\n"
    b"index 1111111..2222222 100644\n"
    b"--- a/f\n"
    b"+++ b/f\n"
    b"@@ -10,3 +10,3 @@ ctx\n"
    b" a\n"
    b"-b\xff\n"
    b"+c\n"
    b" d\n"
    b"@@ -20 +20,2 @@\n"
    b" e\n"
    b"+f\n"
)

NO_NEWLINE = (
    b"diff --git a/f b/f\n"
    b"index 1111111..2222222 100644\n"
    b"--- a/f\n"
    b"+++ b/f\n"
    b"@@ -1,2 +1,2 @@\n"
    b" a\n"
    b"-old\n"
    b"\\ No newline at end of file\n"
    b"+new\n"
    b"\\ No newline at end of file\n"
)


def modified(path=b"f"):
    return _parse_raw(b":100644 100644 " + b"1" * 40 + b" " + b"2" * 40 + b" M\0" + path + b"\0")


class TestParsing:
    def test_parse_raw(self):
        deltas = [d for d, _ in _parse_raw(RAW)]
        assert [d.status for d in deltas] == [DeltaStatus.ADDED, DeltaStatus.RENAMED, DeltaStatus.DELETED]
        assert deltas[0].old_path == deltas[0].new_path == "new.txt"
        assert (deltas[1].old_path, deltas[1].new_path, deltas[1].similarity) == ("old name.txt", "renamed.txt", 100)

    def test_one_patched_file_per_header(self):
        files = list(_parse_patch(PATCH))
        assert len(files) == 3
        assert files[1].target_file == "b/renamed.txt"

    def test_hunk_headers_and_line_numbers(self):
        diff = ClassifiedDiff(modified(), list(_parse_patch(TWO_HUNKS)))
        hunks = diff.patch(0).hunks
        assert [h.header for h in hunks] == ["@@ -10,3 +10,3 @@ ctx\n", "@@ -20 +20,2 @@\n"]
        first = hunks[0].lines
        assert [(l.old_lineno, l.new_lineno, l.origin) for l in first] == [
            (10, 10, " "),
            (11, None, "-"),
            (None, 11, "+"),
            (12, 12, " "),
        ]
        # undecodable bytes come back unchanged
        assert first[1].content == b"b\xff\n"
        assert [(l.old_lineno, l.new_lineno) for l in hunks[1].lines] == [(20, 20), (None, 21)]

    def test_no_newline_markers_are_kept(self):
        diff = ClassifiedDiff(modified(), list(_parse_patch(NO_NEWLINE)))
        patch = diff.patch(0)
        lines = patch.hunks[0].lines
        assert [(l.old_lineno, l.new_lineno, l.marker) for l in lines] == [
            (1, 1, False),
            (2, None, False),
            (2, None, True),
            (None, 2, False),
            (None, 2, True),
        ]
        assert lines[2].content == NO_NEWLINE_MARKER
        assert patch.line_stats() == (1, 1)

    def test_classified_diff(self):
        diff = ClassifiedDiff(_parse_raw(RAW), list(_parse_patch(PATCH)))
        assert len(diff) == 3
        assert diff.patch(0).line_stats() == (2, 0)
        assert diff.patch(0).hunks[0].lines[1].content == b"two\r\n"
        assert diff.patch(1).hunks == ()
        assert diff.deltas[2].binary is True
        assert diff.deltas[0].binary is False

    def test_missing_patch_is_unavailable(self):
        diff = ClassifiedDiff(_parse_raw(RAW), list(_parse_patch(PATCH))[:1])
        diff.patch(0)
        with pytest.raises(PatchUnavailable) as exc:
            diff.patch(1)
        assert exc.value.delta_index == 1
        with pytest.raises(PatchUnavailable):
            diff.patch(7)

    def test_out_of_step_patch_is_unavailable(self):
        diff = ClassifiedDiff(_parse_raw(RAW), list(_parse_patch(PATCH))[1:])
        for i in range(3):
            with pytest.raises(PatchUnavailable):
                diff.patch(i)

    @pytest.mark.parametrize(
        "tz, minutes",
        [("+0000", 0), ("+0200", 120), ("-0530", -330), ("+9959", 5999), ("bogus", 0), ("", 0)],
    )
    def test_parse_offset(self, tz, minutes):
        assert _parse_offset(tz) == minutes


class TestOpen:
    def test_not_a_repository(self, tmp_path):
        with pytest.raises(RepositoryNotFound):
            Repository.open(tmp_path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(RepositoryNotFound):
            Repository.open(tmp_path / "nope")

    @pytest.mark.parametrize("name", ["", "..", ".git", "a/b", "../etc"])
    def test_open_in_rejects_traversal(self, tmp_path, name):
        with pytest.raises(RepositoryNotFound):
            Repository.open_in(tmp_path, name)


@requires_git
class TestRepository:
    def test_find_repositories(self, repos_dir, git_repo):
        (repos_dir / "plain").mkdir()
        assert find_repositories(repos_dir) == ["demo"]

    def test_resolve_commit(self, git_repo):
        git_repo.write("a.txt", "one\n")
        first = git_repo.commit("first\n\nbody text")
        git_repo.write("a.txt", "two\n")
        second = git_repo.commit("second", offset="+0200")
        with Repository.open(git_repo.path) as repo:
            c1 = repo.resolve_commit(first)
            c2 = repo.resolve_commit("HEAD")
        assert c1.parent_oid is None
        assert c1.summary == "first"
        assert c1.message == "first\n\nbody text"
        assert c1.author.name == "Ada Lovelace"
        assert c1.author.email == "ada@example.com"
        assert c1.author.time == BASE_TIME
        assert c2.oid == second
        assert c2.parent_oid == first
        assert c2.author.offset_minutes == 120
        assert not c2.is_merge

    @pytest.mark.parametrize("rev", ["deadbeef", "--all", "no-such-branch"])
    def test_unknown_commit(self, git_repo, rev):
        git_repo.write("a.txt", "x\n")
        git_repo.commit("c")
        with Repository.open(git_repo.path) as repo:
            with pytest.raises(CommitNotFound):
                repo.resolve_commit(rev)

    def test_tree_of_unknown(self, git_repo):
        git_repo.write("a.txt", "x\n")
        git_repo.commit("c")
        with Repository.open(git_repo.path) as repo:
            with pytest.raises(TreeResolutionFailed):
                repo.tree_of("f" * 40)

    def test_find_similar_runs_once(self, git_repo):
        git_repo.write("a.txt", "x\n")
        oid = git_repo.commit("c")
        with Repository.open(git_repo.path) as repo:
            raw = repo.diff(None, repo.tree_of(oid))
            raw.find_similar()
            with pytest.raises(RuntimeError):
                raw.find_similar()

    def test_closed_repository(self, git_repo):
        git_repo.write("a.txt", "x\n")
        git_repo.commit("c")
        with Repository.open(git_repo.path) as repo:
            pass
        with pytest.raises(RuntimeError):
            repo.head()

    def test_walk_is_topological(self, git_repo):
        ids = []
        for n in range(3):
            git_repo.write("a.txt", f"{n}\n")
            ids.append(git_repo.commit(f"c{n}"))
        with Repository.open(git_repo.path) as repo:
            assert repo.walk(repo.head()) == ids[::-1]
            assert repo.walk(repo.head(), limit=2) == ids[:0:-1]

    def test_references(self, git_repo):
        git_repo.write("a.txt", "x\n")
        oid = git_repo.commit("c")
        git_repo.git("branch", "feature")
        git_repo.git("tag", "v1")
        git_repo.git("tag", "-a", "v2", "-m", "annotated")
        with Repository.open(git_repo.path) as repo:
            refs = {r.shorthand: r for r in repo.references()}
        assert set(refs) == {"main", "feature", "v1", "v2"}
        assert refs["v2"].target == oid
        assert refs["v2"].is_tag and refs["main"].is_branch

    def test_tree_and_blob(self, git_repo):
        git_repo.write("src/main.py", "print('hi')\n")
        git_repo.write("data.bin", b"\x00\x01\x02")
        git_repo.commit("c")
        with Repository.open(git_repo.path) as repo:
            head = repo.head()
            root = {e.name: e for e in repo.list_tree(head)}
            assert root["src"].kind == "tree" and root["src"].size is None
            assert root["data.bin"].size == 3
            assert repo.object_kind(head, "src") == "tree"
            assert [e.name for e in repo.list_tree(head, "src/")] == ["main.py"]
            blob = repo.read_blob(head, "/src/main.py")
            assert blob.data == b"print('hi')\n" and not blob.binary
            assert repo.read_blob(head, "data.bin").binary
            with pytest.raises(PathNotFound):
                repo.read_blob(head, "missing.txt")
            with pytest.raises(PathNotFound):
                repo.object_kind(head, "missing")

    def test_empty_tree_sha1(self, git_repo):
        with Repository.open(git_repo.path) as repo:
            assert repo.empty_tree() == "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
            assert repo.empty_tree() is repo.empty_tree()

    def test_initial_commit_in_sha256_repository(self, repos_dir):
        try:
            sha256 = GitRepo(repos_dir / "sha256", object_format="sha256")
        except subprocess.CalledProcessError:
            pytest.skip("git without sha256 object format support")
        sha256.write("a.txt", "one\n")
        oid = sha256.commit("init")
        assert len(oid) == 64
        with Repository.open(sha256.path) as repo:
            assert len(repo.empty_tree()) == 64
            diff = repo.diff(None, repo.tree_of(oid)).find_similar()
            assert [(d.status, d.new_path) for d in diff.deltas] == [(DeltaStatus.ADDED, "a.txt")]
            assert diff.patch(0).line_stats() == (1, 0)

    def test_show_ignores_signature_config(self, git_repo, monkeypatch):
        git_repo.write("a.txt", "x\n")
        oid = git_repo.commit("c")
        git_repo.git("config", "log.showSignature", "true")
        calls = []
        real_run = ritz.git.run

        def recording_run(cmd, **kwargs):
            calls.append(cmd)
            return real_run(cmd, **kwargs)

        monkeypatch.setattr(ritz.git, "run", recording_run)
        with Repository.open(git_repo.path) as repo:
            assert repo.resolve_commit(oid).summary == "c"
        shows = [c for c in calls if "show" in c]
        assert shows and "--no-show-signature" in shows[0]

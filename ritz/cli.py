"""
Command line entry point.

- ``ritz serve``: run the web front end over a directory of repositories
- ``ritz commit``: render a single commit page to a static HTML file
"""

from __future__ import annotations
import argparse
import pathlib
import sys
import webbrowser
from typing import List, Optional

from .commitinfo import assemble
from .config import Config, setup_logging
from .errors import RitzError
from .git import Repository
from .pages import commit_page
from .render import diffstat_summary
from .util import derive_temp_output_path


def cmd_serve(args: argparse.Namespace, config: Config) -> int:
    import uvicorn

    from .app import create_app

    if args.dir:
        config.dir = pathlib.Path(args.dir)
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    print(f"📁 Serving repositories under {config.dir.resolve()}", file=sys.stderr)
    uvicorn.run(create_app(config), host=config.host, port=config.port)
    return 0


def cmd_commit(args: argparse.Namespace, config: Config) -> int:
    repo_path = pathlib.Path(args.repo)
    context = args.context if args.context is not None else config.context_lines
    with Repository.open(repo_path) as repo:
        print(f"🧮 Assembling {args.rev} with -U {context}", file=sys.stderr)
        view = assemble(repo, args.rev, context_lines=context)
    print(f"✓ {diffstat_summary(view.file_count, view.add_count, view.del_count)}", file=sys.stderr)

    out_path = pathlib.Path(args.out) if args.out else derive_temp_output_path(repo_path.resolve().name, view.commit.oid)
    print(f"💾 Writing: {out_path.resolve()}", file=sys.stderr)
    out_path.write_text(commit_page(repo_path.resolve().name, view), encoding="utf-8")

    if not args.no_open:
        print("🌐 Opening in browser...", file=sys.stderr)
        webbrowser.open(f"file://{out_path.resolve()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="ritz", description="Read-only web front end for git repositories")
    ap.add_argument("--log-level", default=None, help="Logging level (default: INFO, or $LOG_LEVEL)")
    sub = ap.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("serve", help="Serve the repositories under a directory")
    sp.add_argument("--dir", "-d", help="Directory holding the repositories (default: $RITZ_DIR or ./)")
    sp.add_argument("--host", help="Bind address (default: $RITZ_HOST or 127.0.0.1)")
    sp.add_argument("--port", "-p", type=int, help="Port (default: $RITZ_PORT or 3000)")
    sp.set_defaults(func=cmd_serve)

    cp = sub.add_parser("commit", help="Render one commit page to an HTML file")
    cp.add_argument("repo", help="Path to the repository")
    cp.add_argument("rev", nargs="?", default="HEAD", help="Commit to render (default: HEAD)")
    cp.add_argument("--out", "-o", help="Output HTML file path (default: <repo>-<sha>.html in temp dir)")
    cp.add_argument("-U", "--context", type=int, default=None, help="Diff context lines")
    cp.add_argument("--no-open", action="store_true", help="Don't open the HTML file after generation")
    cp.set_defaults(func=cmd_commit)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        config = Config.load()
        return args.func(args, config)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except RitzError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

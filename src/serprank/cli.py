# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""serprank CLI: check, serve, terms commands.

Usage:
    python -m serprank.cli check [--domain D] [--terms FILE] [--db PATH] [--max-pages N]
                                 [--headless] [--seed N] [--json-logs] [-v]
    python -m serprank.cli serve [--host H] [--port P] [--db PATH] [--keywords FILE] [--terms FILE]
    python -m serprank.cli terms [--terms FILE]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random
import signal
import sys
from collections.abc import Sequence
from contextlib import suppress
from pathlib import Path

from . import RunSummary
from .config import DEFAULT_DB_PATH, DEFAULT_KEYWORDS_FILE, DEFAULT_TERMS_FILE, TrackerConfig
from .errors import BrowserError, TermSourceError
from .keywords import load_terms
from .logging_config import configure as configure_logging
from .problem_details import from_exception
from .progress import ProgressStream

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM request a stop between page visits instead of killing the run."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops
        with suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_event.set)


async def run_check(
    config: TrackerConfig,
    terms: Sequence[str],
    *,
    progress: ProgressStream | None = None,
    stop_event: asyncio.Event | None = None,
) -> RunSummary:
    """Launch the browser, check every term, persist one run."""
    from .browser_session import BrowserSession
    from .driver import PaginationDriver
    from .orchestrator import RunOrchestrator
    from .pacing import Pacer
    from .repository_sqlite import SqliteResultStore

    progress = progress or ProgressStream()
    if stop_event is None:
        stop_event = asyncio.Event()
        _install_stop_handlers(stop_event)

    rng = random.Random(config.seed)
    pacer = Pacer(config.pacing, rng=rng)

    progress.info(f"Starting rank check for: {config.domain}")
    progress.info(f"Terms: {len(terms)} | Max pages: {config.max_pages}")
    progress.info(f"Using persistent profile: {config.browser.user_data_dir}")

    store = await SqliteResultStore.create(config.db_path)
    try:
        async with BrowserSession(config.browser, rng=rng) as session:
            driver = PaginationDriver(
                config,
                session.open_surface,
                pacer=pacer,
                progress=progress,
                stop_event=stop_event,
            )
            orchestrator = RunOrchestrator(driver, store, pacer=pacer, progress=progress, stop_event=stop_event)
            return await orchestrator.run(terms)
    finally:
        await store.close()


def cmd_check(args: argparse.Namespace) -> None:
    """Run one rank check over the term file."""
    config = TrackerConfig.from_env(
        domain=args.domain,
        terms_file=Path(args.terms) if args.terms else None,
        db_path=Path(args.db) if args.db else None,
        max_pages=args.max_pages,
        seed=args.seed,
        headless=args.headless,
    )

    # Term-source failures are fatal before any browser starts.
    terms = load_terms(config.terms_file)
    if not terms:
        print(f"No search terms in {config.terms_file}; nothing to check.", file=sys.stderr)
        return

    summary = asyncio.run(run_check(config, terms))
    if summary.cancelled:
        sys.exit(EXIT_INTERRUPTED)


def _serve_settings(args: argparse.Namespace) -> dict:
    """Resolve serve options: flag, then ``SERPRANK_*`` env var, then default."""
    from .server import DEFAULT_HOST, DEFAULT_PORT

    port = args.port
    if port is None:
        port = DEFAULT_PORT
        env_port = os.environ.get("SERPRANK_PORT", "").strip()
        if env_port:
            with suppress(ValueError):
                port = int(env_port)

    def pick(flag: str | None, env: str, default) -> str:
        return flag or os.environ.get(env, "").strip() or str(default)

    return {
        "host": pick(args.host, "SERPRANK_HOST", DEFAULT_HOST),
        "port": port,
        "db_path": Path(pick(args.db, "SERPRANK_DB_PATH", DEFAULT_DB_PATH)).resolve(),
        "keywords_file": Path(pick(args.keywords, "SERPRANK_KEYWORDS_FILE", DEFAULT_KEYWORDS_FILE)).resolve(),
        "terms_file": Path(pick(args.terms, "SERPRANK_TERMS_FILE", DEFAULT_TERMS_FILE)).resolve(),
    }


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the dashboard server."""
    from .check_runner import CheckRunner
    from .keywords import KeywordStore
    from .server import create_app, serve

    settings = _serve_settings(args)
    keywords = KeywordStore(settings["keywords_file"], settings["terms_file"])
    # The check process must read the terms and write the database the dashboard shows.
    runner = CheckRunner(
        env={
            "SERPRANK_TERMS_FILE": str(settings["terms_file"]),
            "SERPRANK_DB_PATH": str(settings["db_path"]),
        }
    )
    app = create_app(keywords=keywords, runner=runner, db_path=settings["db_path"])
    asyncio.run(serve(app, settings["host"], settings["port"]))


def cmd_terms(args: argparse.Namespace) -> None:
    """Print the terms the next check would use, one per line."""
    terms_file = Path(args.terms) if args.terms else TrackerConfig.from_env().terms_file
    for term in load_terms(terms_file):
        print(term)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Search ranking tracker",
        prog="python -m serprank.cli",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    common.add_argument("--json-logs", action="store_true", help="Log JSON lines to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_check = subparsers.add_parser(
        "check",
        parents=[common],
        help="Check rankings for every term and save one run",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s                                   Check search-terms.json for the default domain
  %(prog)s --domain example.com --max-pages 2
  %(prog)s --seed 42                         Reproducible pacing""",
    )
    p_check.add_argument("--domain", type=str, metavar="DOMAIN", help="Domain to track")
    p_check.add_argument("--terms", type=str, metavar="FILE", help="JSON array of search terms")
    p_check.add_argument("--db", type=str, metavar="PATH", help="SQLite results database")
    p_check.add_argument("--max-pages", type=int, metavar="N", help="Result pages per term (default: 3)")
    p_check.add_argument("--headless", action="store_true", help="Run without a visible window")
    p_check.add_argument("--seed", type=int, metavar="N", help="Random seed for pacing")

    p_serve = subparsers.add_parser("serve", parents=[common], help="Start the dashboard")
    p_serve.add_argument("--host", type=str, help="Bind address (default: 127.0.0.1)")
    p_serve.add_argument("--port", type=int, help="Port (default: 3001)")
    p_serve.add_argument("--db", type=str, metavar="PATH", help="SQLite results database")
    p_serve.add_argument("--keywords", type=str, metavar="FILE", help="Keyword config file")
    p_serve.add_argument("--terms", type=str, metavar="FILE", help="Term file written for the checker")

    p_terms = subparsers.add_parser("terms", parents=[common], help="List the selected search terms")
    p_terms.add_argument("--terms", type=str, metavar="FILE", help="JSON array of search terms")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(json_output=args.json_logs, level="DEBUG" if args.verbose else "INFO")

    commands = {"check": cmd_check, "serve": cmd_serve, "terms": cmd_terms}
    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except SystemExit:
        raise
    except (TermSourceError, BrowserError) as e:
        print(from_exception(e).to_cli_text(), file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(from_exception(e).to_cli_text(), file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

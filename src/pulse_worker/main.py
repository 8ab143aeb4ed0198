"""
Command line entry point for the Pulse news ingestion worker.

Commands:
    serve     API plus the timer loop (default)
    run       One pipeline run, then exit (cron-style deployments)
    setup-db  Create the articles and run_state tables

Examples:
    pulse-worker serve --port 8080
    pulse-worker run
    python -m pulse_worker.main setup-db
"""

# Load .env into os.environ BEFORE importing LangChain modules
from dotenv import load_dotenv

load_dotenv()

import argparse
import asyncio
import logging
import sys

import httpx
import structlog
import uvicorn

from pulse_worker.config import Settings, get_settings
from pulse_worker.run_state import RunStats

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Route structlog through stdlib logging, rendered for humans or as JSON lines."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())

    renderer = structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def format_run_summary(stats: RunStats) -> str:
    lines = ["Pipeline run complete", "=" * 40]
    lines += [f"{kind} candidates: {count}" for kind, count in sorted(stats.source_articles.items())]
    lines += [
        f"Unique: {stats.unique_articles}",
        f"AI processed: {stats.ai_processed}",
        f"Saved: {stats.saved_articles}  Skipped: {stats.skipped_articles}",
        f"Errors: {stats.errors} ({stats.source_errors} from sources)",
        f"Took {stats.execution_time_ms}ms",
    ]
    return "\n".join(lines)


# ========================================
# COMMANDS
# ========================================


async def cmd_serve(settings: Settings, host: str, port: int) -> int:
    logger.info("Starting API server", host=host, port=port)
    server = uvicorn.Server(
        uvicorn.Config("pulse_worker.api:app", host=host, port=port, log_level=settings.log_level.lower())
    )
    await server.serve()
    return 0


async def cmd_run(settings: Settings) -> int:
    from pulse_worker.db import close_db_pool
    from pulse_worker.graph.orchestrator import build_default_deps, run_once

    try:
        async with httpx.AsyncClient(follow_redirects=True) as http_client:
            deps = await build_default_deps(settings, http_client)
            stats = await run_once(deps, trigger="manual")
    except Exception as e:
        logger.error("Pipeline failed", error=str(e), error_type=type(e).__name__)
        return 1
    finally:
        await close_db_pool()

    print(format_run_summary(stats))
    return 0


async def cmd_setup_db(settings: Settings) -> int:
    from pulse_worker.db import close_db_pool
    from pulse_worker.db.setup_db import get_table_stats, setup_database

    try:
        await setup_database()
        counts = await get_table_stats()
    except Exception as e:
        logger.error("Database setup failed", error=str(e), hint="check that PostgreSQL is up and DATABASE_URL")
        return 1
    finally:
        await close_db_pool()

    print(f"Database ready: {counts['articles']} articles, {counts['run_state']} run_state rows")
    return 0


# ========================================
# CLI ENTRY POINT
# ========================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pulse-worker",
        description="Ingest, enrich and store Kenyan news",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Start the API server and timer loop")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    subparsers.add_parser("run", help="Run the pipeline once")
    subparsers.add_parser("setup-db", help="Initialize the database schema")
    parser.set_defaults(command="serve", host="0.0.0.0", port=8000)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(settings.log_level, settings.log_format)
    logger.debug(
        "Settings loaded",
        command=args.command,
        ai_provider=settings.ai_provider,
        search_api_enabled=settings.search_api_configured,
        feed_count=len(settings.rss_feeds),
    )

    if args.command == "serve":
        code = asyncio.run(cmd_serve(settings, args.host, args.port))
    elif args.command == "run":
        code = asyncio.run(cmd_run(settings))
    else:
        code = asyncio.run(cmd_setup_db(settings))
    sys.exit(code)


if __name__ == "__main__":
    main()

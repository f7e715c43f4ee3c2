"""Command line entry point.

    cozyvillage serve --port 8000     # run the HTTP API
    cozyvillage tick                  # run one tick against DATABASE_URL
    cozyvillage init-db               # create the village tables
    cozyvillage config                # show resolved configuration
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .config import Config, TickSettings
from .llm_utils import build_gateway
from .store import PostgresStore
from .tick import AgentListingError, run_tick


async def _tick_once() -> int:
    store = PostgresStore()
    await store.initialize()
    try:
        summary = await run_tick(store, build_gateway(), TickSettings.from_config())
    except AgentListingError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        await store.close()
    print(json.dumps(summary.model_dump(), indent=2))
    return 0


async def _init_db() -> int:
    store = PostgresStore()
    await store.initialize()
    try:
        await store.ensure_schema()
    finally:
        await store.close()
    print("Village tables ready.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cozyvillage", description="Cozy Village tick service")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    sub.add_parser("tick", help="Run one tick pass and print the summary")
    sub.add_parser("init-db", help="Create the village tables if missing")
    sub.add_parser("config", help="Print the resolved configuration")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "config":
        print(Config.display())
        return 0

    Config.validate()

    if args.command == "serve":
        import uvicorn

        from .app import create_app

        uvicorn.run(create_app(), host=args.host, port=args.port)
        return 0
    if args.command == "tick":
        return asyncio.run(_tick_once())
    if args.command == "init-db":
        return asyncio.run(_init_db())
    return 2


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
# services/pulse/main.py
"""
Pulse Service - alerts and insights over personal records.

Commands:
  run    evaluate a records JSON file once and print the result
  serve  start the HTTP API (config from Truth)
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

# ------------------------------------------------------------
# 1) Ensure repository root is on sys.path
# ------------------------------------------------------------
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# ------------------------------------------------------------
# 2) Imports
# ------------------------------------------------------------
from aiohttp import web

from shared.logutil import LogUtil
from shared.setup_base import SetupBase

from services.pulse.intel.api import PulseAPIHandler
from services.pulse.intel.config import PulseConfig
from services.pulse.intel.engine import PulseEngine
from services.pulse.intel.kv_store import MemoryKVStore, RedisKVStore
from services.pulse.intel.lifecycle import AlertLifecycleStore
from services.pulse.intel.models import RecordBundle

SERVICE_NAME = "pulse"


def build_engine(config: PulseConfig, logger: LogUtil, memory: bool = False) -> PulseEngine:
    if memory:
        kv = MemoryKVStore()
    else:
        kv = RedisKVStore(url=config.redis_url, ttl_seconds=config.store_ttl_seconds)
    store = AlertLifecycleStore(
        kv,
        namespace=config.namespace,
        cooldown_days=config.dismiss_cooldown_days,
        max_age_days=config.alert_max_age_days,
        logger=logger.child("lifecycle"),
    )
    return PulseEngine(store, config, logger=logger.child("engine"))


# ------------------------------------------------------------
# One-shot run
# ------------------------------------------------------------
def run_once(args, logger: LogUtil) -> int:
    try:
        document = json.loads(Path(args.records).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"cannot read records file {args.records}: {e}")
        return 2
    if not isinstance(document, dict):
        logger.error(f"records file {args.records} must hold a JSON object")
        return 2

    try:
        now = datetime.fromisoformat(args.now) if args.now else None
    except ValueError:
        logger.error(f"invalid --now value: {args.now}")
        return 2
    config = PulseConfig.from_config({})
    if args.redis_url:
        config.redis_url = args.redis_url

    engine = build_engine(config, logger, memory=not args.redis_url)
    bundle = RecordBundle.from_dict(document, logger=logger)
    result = engine.run(bundle, now=now)

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0


# ------------------------------------------------------------
# API server
# ------------------------------------------------------------
async def serve(logger: LogUtil) -> None:
    logger.info("starting setup()", emoji="⚙️")

    setup = SetupBase(SERVICE_NAME, logger)
    raw_config = await setup.load()

    # Promote logger (config-driven)
    logger.configure_from_config(raw_config)
    logger.ok("configuration loaded", emoji="📄")

    config = PulseConfig.from_config(raw_config)
    engine = build_engine(config, logger)

    app = web.Application()
    PulseAPIHandler(engine, logger.child("api")).register_routes(app)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)
    await site.start()
    logger.ok(f"listening on http://{config.host}:{config.port}", emoji="🚀")

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="pulse", description=__doc__.strip().splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="evaluate a records file once")
    run_p.add_argument("records", help="path to a records JSON document")
    run_p.add_argument("--now", help="reference time (ISO-8601), default: current time")
    run_p.add_argument("--redis-url", help="persist alert state in Redis instead of memory")

    sub.add_parser("serve", help="start the HTTP API")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    # Keep stdout clean for the JSON result in one-shot mode
    logger = LogUtil(SERVICE_NAME, stream=sys.stderr if args.command == "run" else None)

    if args.command == "run":
        return run_once(args, logger)

    try:
        asyncio.run(serve(logger))
    except KeyboardInterrupt:
        logger.info("shutdown requested", emoji="🛑")
    return 0


# ------------------------------------------------------------
# Runtime wrapper: ensures clean Ctrl-C handling
# ------------------------------------------------------------
if __name__ == "__main__":
    sys.exit(main())

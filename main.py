#!/usr/bin/env python3
"""
Vox smoke-test service entry point.

Commands:
    serve  Run the HTTP service (call, batch, webhook and stats endpoints).
    stats  Print statistics from the finalized call summaries log.
"""

import argparse
import os
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from loguru import logger

from vox_smoke.config import ConfigError, load_config
from vox_smoke.log import configure_logging
from vox_smoke.server import create_app
from vox_smoke.sink import SUMMARIES_FILE
from vox_smoke.stats import compute_stats, format_stats, load_summaries

load_dotenv(".env.local")
load_dotenv(".env")


def serve(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    app = create_app(config)
    logger.info(f"Vox smoke service listening on {args.host}:{args.port}")
    logger.info(f"Webhook URL: {config.event_url}")
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def stats(args: argparse.Namespace) -> int:
    path = Path(args.file) if args.file else Path(args.out_dir) / SUMMARIES_FILE
    print(format_stats(compute_stats(load_summaries(path))))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Voximplant outbound call smoke tests")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        help="Log level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP service")
    p_serve.add_argument(
        "--config",
        default=os.environ.get("VOX_SMOKE_CONFIG", "config.yaml"),
        help="Path to the YAML config",
    )
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument(
        "--port", type=int, default=int(os.environ.get("VOX_SMOKE_PORT", os.environ.get("PORT", "3001")))
    )
    p_serve.set_defaults(func=serve)

    p_stats = sub.add_parser("stats", help="Print call statistics")
    p_stats.add_argument("--file", help="Summaries JSONL file")
    p_stats.add_argument("--out-dir", default="./out", help="Output directory (default: ./out)")
    p_stats.set_defaults(func=stats)

    args = parser.parse_args()
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

"""
Command-line entrypoint for the reaper sidecar agent.

Runs inside the sidecar container with the Docker socket mounted:

    python -m testharbor.reaper --port 8080
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

import docker
from testharbor.config.logging_config import configure_logging, get_logger
from testharbor.reaper.agent import DEFAULT_PORT, ReaperAgent
from testharbor.reaper.sweeper import sweep


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sweep test containers once their session disconnects.")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to listen on.")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("REAPER_PORT", DEFAULT_PORT)),
        help=f"Port to listen on (default {DEFAULT_PORT}).",
    )
    parser.add_argument(
        "--connection-timeout",
        type=float,
        default=60.0,
        help="Exit if no session connects within this many seconds.",
    )
    parser.add_argument(
        "--reconnection-timeout",
        type=float,
        default=10.0,
        help="Grace period after the last session disconnects.",
    )
    parser.add_argument("--log-level", default=os.environ.get("TESTHARBOR_LOG_LEVEL", "INFO"))
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entrypoint used by `python -m testharbor.reaper`."""
    args = parse_args(argv if argv is not None else sys.argv[1:])
    configure_logging(args.log_level)
    log = get_logger("testharbor.reaper")

    client = docker.from_env()
    agent = ReaperAgent(
        lambda filters: sweep(client, filters),
        host=args.host,
        port=args.port,
        connection_timeout=args.connection_timeout,
        reconnection_timeout=args.reconnection_timeout,
    )

    try:
        report = asyncio.run(agent.serve())
    except KeyboardInterrupt:  # pragma: no cover - runtime signal
        log.info("Reaper shutdown requested")
        return 0
    finally:
        client.close()

    if report is not None and not report.ok:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

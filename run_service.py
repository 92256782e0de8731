"""Run the compaction service."""
from __future__ import annotations

import argparse
import logging
import os

from compactflow.config import load_config
from compactflow.server.host import ServiceHost
from compactflow.service import create_service


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the disk compaction service")
    parser.add_argument(
        "--host",
        default=os.getenv("COMPACTFLOW_HOST", "0.0.0.0"),
        help="Interface to listen on (env: COMPACTFLOW_HOST).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("COMPACTFLOW_PORT", "8080")),
        help="Port to listen on (env: COMPACTFLOW_PORT).",
    )
    parser.add_argument(
        "--data-dir",
        default=os.getenv("COMPACTFLOW_DATA_DIR", "data"),
        help="Directory for logs and job history (env: COMPACTFLOW_DATA_DIR).",
    )
    parser.add_argument("--log-level", default="info")
    return parser


def main() -> None:
    args = build_arg_parser().parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(threadName)s] %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(host=args.host, port=args.port, data_dir=args.data_dir)
    ServiceHost(create_service(config), log_level=args.log_level).run()


if __name__ == "__main__":
    main()

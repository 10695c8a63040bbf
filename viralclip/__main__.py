from __future__ import annotations

import argparse

import uvicorn

from . import config
from .helpers.logging import configure_logging


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the viral clip HTTP service")
    parser.add_argument("--host", default=config.SERVICE.host, help="Interface to bind")
    parser.add_argument("--port", type=int, default=config.SERVICE.port, help="Port to listen on")
    parser.add_argument("--log-level", default="info", help="Logging level")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = create_parser().parse_args(argv)
    configure_logging(args.log_level.upper())
    from .app import app

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":  # pragma: no cover
    main()

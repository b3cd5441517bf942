from __future__ import annotations

import argparse
import json

import uvicorn

from windserver.config import settings
from windserver.logging_config import configure_logging
from windserver.services.pipeline import UpdatePipeline


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="windserver", description="GFS wind tile server.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP server and update scheduler.")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)

    subparsers.add_parser("update", help="Run one update cycle and exit.")
    return parser.parse_args(argv)


def _serve(args: argparse.Namespace) -> int:
    uvicorn.run(
        "windserver.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level,
    )
    return 0


def _update() -> int:
    result = UpdatePipeline(settings).run_cycle()
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(settings.log_level, settings.log_file)
    if args.command == "serve":
        return _serve(args)
    return _update()


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import argparse
import os
import sys

import uvicorn


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pnodewatch", add_help=True)
    parser.add_argument("--host", default=os.environ.get("PNODE_HOST", "127.0.0.1"))
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PNODE_PORT", "8000")),
        help="Port to bind the HTTP API on.",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("PNODE_LOG_LEVEL", "info"),
        choices=["critical", "error", "warning", "info", "debug"],
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(list(sys.argv[1:] if argv is None else argv))
    if args.port < 0 or args.port > 65535:
        raise SystemExit("--port must be in range 0..65535")

    os.environ["PNODE_LOG_LEVEL"] = args.log_level.upper()
    uvicorn.run(
        "pnodewatch.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        access_log=False,
    )


if __name__ == "__main__":
    main()

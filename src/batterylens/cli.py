#!/usr/bin/env python3
"""
BatteryLens CLI tool

Command line interface for starting the dashboard API and working with
exported session files
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import socket
import sys
from pathlib import Path

import uvicorn

from batterylens.config import get_chart_info_url, get_extraction_url
from batterylens.exceptions import SessionImportError
from batterylens.logger import logger


def find_available_port(start_port: int = 3151, max_attempts: int = 100) -> int | None:
    """
    Find an available port number

    Args:
        start_port: Starting port number
        max_attempts: Maximum number of attempts

    Returns:
        Available port number, None if not found
    """
    for port in range(start_port, start_port + max_attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            # If connection fails, that port is available
            result = sock.connect_ex(("127.0.0.1", port))
            if result != 0:
                return port
    return None


def run_serve(host: str = "127.0.0.1", port: int | None = None, dev: bool = False) -> None:
    """
    Start the dashboard API server

    Args:
        host: Host name
        port: Port number (first free port from 3151 if None)
        dev: Enable development mode with auto-reload
    """
    if dev:
        os.environ["BATTERYLENS_DEV_MODE"] = "1"

    if port is None:
        port = find_available_port()
        if port is None:
            print("Error: No available port found!")
            sys.exit(1)

    print("Starting BatteryLens dashboard server...")
    print(f"API: http://{host}:{port}/api")
    print(f"Extraction service: {get_extraction_url() or 'not configured'}")
    print(f"Chart-info service: {get_chart_info_url() or 'not configured'}")
    if dev:
        print("Development mode: auto-reload enabled")

    uvicorn.run("batterylens.dashboard.main:app", host=host, port=port, reload=dev)


async def merge_session_files(inputs: list[Path]) -> dict:
    """Merge exported session files through the regular import path.

    Args:
        inputs: Session export files, merged in order

    Returns:
        The combined session export

    Raises:
        SessionImportError: If any input is malformed
    """
    from batterylens.session import SessionState

    session = SessionState()
    for path in inputs:
        try:
            payload = path.read_bytes()
        except OSError as e:
            raise SessionImportError(str(path), str(e)) from e
        batteries = await session.import_session(payload, source=str(path))
        logger.info(f"Merged {path}: {len(batteries)} batteries")
    return session.export_session()


def run_merge_sessions(output: str, inputs: list[str]) -> None:
    """
    Merge session exports into one file

    Args:
        output: Output file path
        inputs: Input session export paths
    """
    try:
        merged = asyncio.run(merge_session_files([Path(p) for p in inputs]))
    except SessionImportError as e:
        print(f"Error: {e}")
        sys.exit(1)

    Path(output).write_text(json.dumps(merged, indent=2))
    print(f"Wrote {len(merged)} batteries to {output}")


def main(argv: list[str] | None = None) -> None:
    """
    CLI main entry point
    """
    parser = argparse.ArgumentParser(description="BatteryLens management tool")
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    serve_parser = subparsers.add_parser("serve", help="Start the dashboard API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host name (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port number (default: first free port from 3151)")
    serve_parser.add_argument("--dev", action="store_true", help="Enable development mode with auto-reload")

    merge_parser = subparsers.add_parser("merge-sessions", help="Merge exported session files")
    merge_parser.add_argument("output", help="Output session file")
    merge_parser.add_argument("inputs", nargs="+", help="Session files to merge, in order")

    args = parser.parse_args(argv)

    if args.command == "serve":
        run_serve(host=args.host, port=args.port, dev=args.dev)
    elif args.command == "merge-sessions":
        run_merge_sessions(args.output, args.inputs)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()

"""CLI entry point for the emulator-shell package."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import shutil
import subprocess
import sys
from typing import List, Optional

MIN_PYTHON = (3, 10)

logger = logging.getLogger("emulator-shell")


def _configure_logging(level: str) -> None:
    # stderr only: in stdio mode stdout carries bridge frames.
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _print_setup_banner(port: int, db_path: str, scheme: str, *, for_startup: bool = True) -> None:
    """Print configuration guidance. If for_startup, show the 'host started' line; else the 'Setup' header."""
    base = f"http://localhost:{port}"
    print()
    if for_startup:
        print("Emulator shell host started")
    else:
        print("Emulator Shell — Setup")
    print()
    print("Bridge:   ws://localhost:{}/bridge".format(port))
    print("Commands: {}/commands".format(base))
    print("Health:   {}/health".format(base))
    print()
    print("────────────────────────────────────────────")
    print("Configuration is read from the environment or a .env file in this folder:")
    print()
    print("   DB_PATH={}".format(db_path))
    print("   PORT={}".format(port))
    print("   PROTOCOL_SCHEME={}".format(scheme))
    print("   REMOTE_CALL_TIMEOUT=        (seconds; empty waits forever)")
    print("   LOG_LEVEL=INFO")
    print()
    print("Open a protocol URL on start with:  emulator-shell {}://<domain>.<action>?<params>".format(scheme))
    print()


def _python_version_str() -> str:
    return ".".join(str(part) for part in sys.version_info[:3])


def _ensure_supported_python() -> None:
    if sys.version_info < MIN_PYTHON:
        print(
            "Error: Python {} detected. emulator-shell requires Python {}.{}+.".format(
                _python_version_str(),
                MIN_PYTHON[0],
                MIN_PYTHON[1],
            ),
            file=sys.stderr,
        )
        sys.exit(2)


def _print_help() -> None:
    print("Emulator Shell CLI")
    print()
    print("Usage:")
    print("  emulator-shell               Start the host (HTTP + WebSocket bridge)")
    print("  emulator-shell stdio         Serve the host bridge over stdin/stdout")
    print("  emulator-shell setup         Print configuration guidance")
    print("  emulator-shell doctor        Print install/environment diagnostics")
    print("  emulator-shell <scheme>://…  Start and replay the protocol URL once the client loads")
    print()


def _print_doctor(db_path: str) -> None:
    print("Emulator Shell Doctor")
    print()
    print(f"Platform: {platform.platform()}")
    print(f"Python:   {_python_version_str()}")
    print(f"Exe:      {sys.executable}")
    print(f"In venv:  {'yes' if sys.prefix != sys.base_prefix else 'no'}")
    print(f"PATH bin: {shutil.which('emulator-shell') or 'not found'}")

    try:
        pip_version = subprocess.check_output(
            [sys.executable, "-m", "pip", "--version"],
            text=True,
            stderr=subprocess.STDOUT,
        ).strip()
    except Exception as exc:  # pragma: no cover - diagnostics fallback
        pip_version = f"unavailable ({exc})"
    print(f"Pip:      {pip_version}")

    db_dir = os.path.dirname(os.path.abspath(db_path))
    print(f"DB path:  {db_path}")
    print(f"DB dir:   {'writable' if os.access(db_dir, os.W_OK) else 'missing or not writable'}")
    if sys.version_info < MIN_PYTHON:
        print(f"Issue: Python is below required minimum {MIN_PYTHON[0]}.{MIN_PYTHON[1]}.")
    print()
    print("Recommended install flow:")
    print("  pipx install emulator-shell")
    print("Fallback (venv):")
    print("  python3 -m venv .venv")
    if os.name == "nt":
        print(r"  .\.venv\Scripts\activate")
    else:
        print("  source .venv/bin/activate")
    print("  python -m pip install emulator-shell")


async def _serve_stdio(argv: List[str]) -> None:
    from .bridge.transport import stdio_transport
    from .host.app import HostApp

    host = HostApp(argv=argv)
    service = host.connect(await stdio_transport())
    logger.info("Serving host bridge over stdio")
    try:
        await service.run()
    finally:
        await service.close()
        host.disconnect(service)


def main(argv: Optional[List[str]] = None) -> None:
    """Run the host or handle setup/doctor/stdio commands."""
    from .config import get_settings

    args = list(sys.argv[1:] if argv is None else argv)
    settings = get_settings()
    _configure_logging(settings.log_level)

    if args:
        subcommand = args[0].strip().lower()
        if subcommand in {"-h", "--help", "help"}:
            _print_help()
            sys.exit(0)
        if subcommand == "setup":
            _print_setup_banner(
                port=settings.http_port,
                db_path=settings.db_path,
                scheme=settings.protocol_scheme,
                for_startup=False,
            )
            sys.exit(0)
        if subcommand == "doctor":
            _print_doctor(settings.db_path)
            sys.exit(0)
        if subcommand == "stdio":
            _ensure_supported_python()
            asyncio.run(_serve_stdio(args[1:]))
            sys.exit(0)

    _ensure_supported_python()

    import uvicorn

    _print_setup_banner(
        port=settings.http_port,
        db_path=settings.db_path,
        scheme=settings.protocol_scheme,
        for_startup=True,
    )

    uvicorn.run(
        "emulator_shell.server:app",
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
        factory=False,
    )


if __name__ == "__main__":
    main()
    sys.exit(0)

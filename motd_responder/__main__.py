"""Entry point for MOTD Responder.

Run with:  python -m motd_responder [--config /path/to/config.yaml]

Every setting can also be given through environment variables
(LISTEN_PORT, MOTD, FAVICON, ...), which override the YAML file.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from . import __version__
from .config import ConfigError, load_config
from .logger import setup_logging

log = logging.getLogger("motd_responder")

# Will be set by _run() so signal handlers can request shutdown.
_shutdown_event: asyncio.Event | None = None


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="motd-responder",
        description="Answer Minecraft server-list pings with a custom MOTD and kick joining players.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to YAML config file (optional; environment variables override it)",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


async def _run(config_path: str | None) -> None:
    """Main async entry point — load config, build components, serve until shutdown."""
    global _shutdown_event

    # -- Load config ----------------------------------------------------------
    try:
        cfg = load_config(config_path)
    except ConfigError as exc:
        log.critical(f"Configuration error: {exc}")
        sys.exit(1)

    setup_logging(cfg.logging)
    log.info(f"MOTD Responder v{__version__} starting")

    # -- Events ---------------------------------------------------------------
    _shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_shutdown, sig)
    else:
        # Windows: add_signal_handler is not supported.
        # KeyboardInterrupt (Ctrl+C) is caught in main() instead.
        pass

    # -- Build components -----------------------------------------------------
    from .responder import ResponderServer
    from .status import ResponsePackets

    packets = ResponsePackets.from_config(cfg.status)
    server = ResponderServer(packets, cfg.listen)

    # -- Run ------------------------------------------------------------------
    try:
        await server.run(_shutdown_event)
    except OSError as exc:
        log.critical(f"Cannot listen on {cfg.listen.host or '*'}:{cfg.listen.port}: {exc}")
        sys.exit(1)

    log.info("Shutdown complete.")


def _request_shutdown(sig: signal.Signals) -> None:
    """Signal handler — set the shutdown event."""
    log.info(f"Received {sig.name}, shutting down…")
    if _shutdown_event is not None:
        _shutdown_event.set()


def main(argv: list[str] | None = None) -> None:
    """Synchronous wrapper that sets up minimal logging, then runs the async loop."""
    # Minimal logging before config is loaded so early errors are visible.
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(message)s",
        stream=sys.stderr,
    )
    args = _parse_args(argv)

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run(args.config))


if __name__ == "__main__":
    main()

# fpl_mcp/__main__.py
"""`python -m fpl_mcp`: configure logging, then hand over to the server CLI."""

import logging
import sys

from fpl_mcp.config import is_dev_mode

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging():
    # Redis and httpx are chatty at DEBUG
    logging.basicConfig(
        level=logging.DEBUG if is_dev_mode() else logging.INFO, format=LOG_FORMAT
    )
    for name in ("httpx", "httpcore", "redis"):
        logging.getLogger(name).setLevel(logging.WARNING)


def run() -> int:
    configure_logging()
    logger = logging.getLogger("fpl_mcp")

    from fpl_mcp.fpl_server import main as server_main

    try:
        server_main()
    except KeyboardInterrupt:
        logger.info("FPL MCP server interrupted")
    except Exception:
        logger.exception("FPL MCP server exited with an error")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())

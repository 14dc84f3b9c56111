"""``blockgate-server``: programmatic uvicorn entry point.

Reads host and port from the loaded config (127.0.0.1:5000 by default) and
starts uvicorn with hardened connection limits.
"""

from __future__ import annotations

import uvicorn

from blockgate.config import load_config

# Max concurrent connections; uvicorn answers 503 beyond this.
UVICORN_LIMIT_CONCURRENCY: int = 100

# OS-level TCP backlog.
UVICORN_BACKLOG: int = 50

# Keep-alive timeout (seconds); short to limit slow-client exposure.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the account status service.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()

    uvicorn.run(
        "blockgate.server.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()

"""Programmatic uvicorn entry point for keygate.

Usage:
    python -m keygate.run
    keygate                    # via pyproject.toml [project.scripts]

Host and port come from the loaded config (127.0.0.1:8420 by default).
"""

from __future__ import annotations

import uvicorn

from keygate.config import load_config

# Maximum concurrent connections; uvicorn answers 503 beyond this.
UVICORN_LIMIT_CONCURRENCY: int = 200

UVICORN_BACKLOG: int = 100

UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the keygate server.

    Raises:
        SystemExit: Propagated from load_config() on config parse errors.
    """
    config = load_config()

    uvicorn.run(
        "keygate.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()

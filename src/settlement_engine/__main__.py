"""``python -m settlement_engine`` serves the API; ``python -m settlement_engine <command>`` runs the CLI."""

import sys

import uvicorn

from settlement_engine.cli import main as cli_main
from settlement_engine.config import get_settings


def main() -> None:
    if len(sys.argv) > 1:
        sys.exit(cli_main())

    settings = get_settings()
    uvicorn.run(
        "settlement_engine.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

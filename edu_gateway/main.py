"""Server entry point for edu-gateway."""

from __future__ import annotations

import sys
from typing import NoReturn


def main() -> NoReturn:
    """Run the gateway under uvicorn with host and port from configuration."""
    import uvicorn

    from edu_gateway.core.settings import get_logging_settings, get_service_settings

    settings = get_service_settings()
    log_settings = get_logging_settings()

    uvicorn.run(
        "edu_gateway.app.main:app",
        host=settings.host,
        port=settings.port,
        access_log=log_settings.level == "DEBUG",
        log_level=log_settings.level.lower(),
    )
    sys.exit(0)


if __name__ == "__main__":
    main()

"""Run the fleet API with uvicorn: ``python -m fleet_api``."""

from __future__ import annotations

import uvicorn

from fleet_api.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "fleet_api.main:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.logging_level.lower(),
    )


if __name__ == "__main__":
    main()

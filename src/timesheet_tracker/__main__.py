"""Run the API server: ``python -m timesheet_tracker``."""

import uvicorn

from timesheet_tracker.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "timesheet_tracker.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

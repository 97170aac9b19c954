from __future__ import annotations

import os

import uvicorn

from tradelog.utils.config import get_settings
from tradelog.utils.logger import get_logger, setup_logging


def _prepare_storage() -> None:
    """Create the data directories the store and screenshot uploads write into."""
    settings = get_settings()
    for path in (os.path.dirname(settings.database_path), settings.screenshot_dir,
                 os.path.dirname(settings.preferences_file)):
        if path:
            os.makedirs(path, exist_ok=True)


def main() -> None:
    setup_logging()
    _prepare_storage()

    port = int(os.environ.get("PORT", 5000))
    host = "0.0.0.0"
    get_logger(__name__).info("server_starting", host=host, port=port)

    uvicorn.run(
        "tradelog.api.webapp:app",
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()

# main.py
"""
Entry point for the AuthentiQC image pipeline edge service.

Settings are read from the environment once here and handed to the app;
nothing changes them afterwards.
"""
import logging
import os

import config
from app import create_app
from infra.logging import configure_logging


def main():
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    settings = config.load_settings()
    app = create_app(settings)

    logging.getLogger(__name__).info(
        f"[Edge] Starting {settings.name} v{settings.version} on {config.HOST}:{config.PORT}..."
    )
    app.run(host=config.HOST, port=config.PORT, debug=False)


if __name__ == "__main__":
    main()

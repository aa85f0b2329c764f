"""Main entry point for the conversation core service."""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from .api import create_fastapi_app
from .app import Application
from .config import PROJECT_ROOT, Settings
from .logging_config import setup_logging


def main():
    """Run the application."""
    load_dotenv(PROJECT_ROOT / ".env")
    load_dotenv(Path.cwd() / ".env")

    settings = Settings.from_env()
    setup_logging(settings.log_level)

    app = create_fastapi_app(Application(settings))

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

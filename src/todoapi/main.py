"""Console entry point serving the API with uvicorn."""

import logging

import uvicorn

from .config import settings


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="[%(asctime)s] %(levelname)s in %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Quiet noisy libraries
    logging.getLogger("passlib").setLevel(logging.ERROR)
    logging.getLogger("urllib3").setLevel(logging.ERROR)


def run() -> None:
    configure_logging()
    uvicorn.run(
        "todoapi.api:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()

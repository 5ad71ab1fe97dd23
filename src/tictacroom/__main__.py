"""Entry point for running TicTacRoom via ``python -m tictacroom``."""

from __future__ import annotations

import logging

import uvicorn

from .config import Config


def main() -> None:
    """Start the FastAPI-powered TicTacRoom web server."""

    logging.basicConfig(level=Config.LOG_LEVEL)
    uvicorn.run("tictacroom.server:app", host=Config.HOST, port=Config.PORT, reload=False)


if __name__ == "__main__":
    main()

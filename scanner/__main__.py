"""Run the scanner API with uvicorn."""

from __future__ import annotations

import os

import uvicorn

from .logging_config import configure_logging


def main() -> None:
    configure_logging()
    uvicorn.run(
        "scanner.main:app",
        host=os.getenv("SCANNER_HOST", "0.0.0.0"),
        port=int(os.getenv("SCANNER_PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()

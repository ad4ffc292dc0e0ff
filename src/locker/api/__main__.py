# src/locker/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from locker.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so LOCKER_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load so config is not read before env is populated.
    from locker.api.app import create_app

    host = os.getenv("LOCKER_API_HOST", "127.0.0.1")
    port = int(os.getenv("LOCKER_API_PORT", "8080"))

    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()

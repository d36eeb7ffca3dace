"""Run the board under uvicorn: ``python -m retro``."""

import uvicorn

from retro.config import load_env_file_fallback, load_settings


def main() -> None:
    load_env_file_fallback()
    settings = load_settings()
    uvicorn.run("retro.main:app", host=settings.host, port=settings.port, log_level="debug" if settings.debug else "info")


if __name__ == "__main__":
    main()

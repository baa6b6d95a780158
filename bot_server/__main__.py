"""
Entry point for running the bot server.

Usage:
    python -m bot_server

This starts the FastAPI app on http://0.0.0.0:3978 (BOT_HOST / BOT_PORT).
"""
import uvicorn

from logging_setup import setup_logging
from speech_services.config import load_env_files

from .config import ServerConfig

if __name__ == "__main__":
    load_env_files()
    config = ServerConfig.from_env()

    # Initialize logging
    setup_logging(level=config.log_level, use_json=config.log_json)

    uvicorn.run(
        "bot_server.server:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )

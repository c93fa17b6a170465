"""Entry point to run the timezone bot."""
import argparse
import asyncio
import logging
import os

from . import bot_config as cfg
from .bot import TimezoneBot
from .infra.config import get_config
from .infra.logging import configure_logging
from .version import get_version

logger = logging.getLogger("tzbot")


async def main() -> None:
    config = get_config()
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    file_handler = configure_logging(level_name, config.storage.log_dir)
    logger.info(
        "Starting timezone bot %s in %s environment with level %s",
        get_version(),
        getattr(cfg, "env", "PROD"),
        level_name,
    )

    bot = TimezoneBot(config)
    try:
        async with bot:
            await bot.start(cfg.TOKEN)
    finally:
        if file_handler:
            file_handler.close()


def run() -> None:
    parser = argparse.ArgumentParser(description="Run the timezone role bot")
    parser.add_argument("--version", action="version", version=get_version())
    parser.parse_args()
    asyncio.run(main())


if __name__ == "__main__":
    run()

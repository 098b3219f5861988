"""Main entry point for provenance-bot."""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv
from pydantic import SecretStr

from provenance_bot.config import Config, load_config
from provenance_bot.orchestrator import Orchestrator


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def load_secrets_from_env(config: Config) -> Config:
    """Back-fill secrets from well-known bare environment variables."""
    # pydantic-settings only reads the PROVENANCE_-prefixed names
    if not config.llm.anthropic_api_key:
        key = os.getenv("ANTHROPIC_API_KEY")
        if key:
            config.llm.anthropic_api_key = SecretStr(key)

    if not config.discord.token:
        token = os.getenv("DISCORD_TOKEN")
        if token:
            config.discord.token = SecretStr(token)

    if not config.traces.token:
        token = os.getenv("TRACE_API_TOKEN")
        if token:
            config.traces.token = SecretStr(token)

    return config


async def async_main(
    config_path: str | None = None,
    debug: bool = False,
    debug_ai: bool = False,
    api_only: bool = False,
) -> None:
    """Async main entry point."""
    setup_logging(debug)
    logger = logging.getLogger(__name__)

    # Load .env file if present
    load_dotenv()

    config = load_config(config_path)
    config = load_secrets_from_env(config)

    if debug_ai:
        from provenance_bot.core.logging import set_ai_debug
        set_ai_debug(True)
        logger.info("AI debug logging enabled - full LLM inputs and outputs will be logged")

    logger.info("Starting provenance-bot...")
    logger.info(f"Trace database: {config.traces.db_path}")
    if not config.traces.token:
        logger.warning("TRACE_API_TOKEN not set; POST /traces will answer 503")

    try:
        orchestrator = Orchestrator(config, api_only=api_only)
        await orchestrator.start()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


def main() -> None:
    """Main entry point (sync wrapper)."""
    import argparse

    parser = argparse.ArgumentParser(
        description="provenance-bot: trace API and Discord provenance controls",
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--debug-ai",
        action="store_true",
        help="Log full inputs and outputs for all LLM calls",
    )
    parser.add_argument(
        "--api-only",
        action="store_true",
        help="Serve the trace API without connecting to Discord",
    )

    args = parser.parse_args()

    asyncio.run(async_main(
        config_path=args.config,
        debug=args.debug,
        debug_ai=args.debug_ai,
        api_only=args.api_only,
    ))


if __name__ == "__main__":
    main()

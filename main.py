"""
Main entry point for the validator bot registry.

Connects to the configured database, creates the collections if needed and
reports what the registry currently holds.
"""

import asyncio

from dotenv import load_dotenv
from ksmbot.config import load_database_config
from ksmbot.database import get_async_db_manager
from ksmbot.logging_config import setup_logging

# Load environment variables
load_dotenv()

# Setup logging
logger = setup_logging()


async def main() -> None:
    """
    Initialize the registry storage.

    ## Steps
    1. Load connection configuration from environment
    2. Initialize async database manager and create tables
    3. Log registry statistics

    ## Environment Variables
    See `ksmbot.config.load_database_config`.
    """
    logger.info("=== KSM Bot Registry Starting ===")

    config = load_database_config()
    db_manager = await get_async_db_manager(database_url=config.url, echo=config.echo)

    try:
        stats = await db_manager.get_statistics()
        logger.info(
            f"Database ready: {stats['total_subscriptions']} subscriptions, "
            f"{stats['watched_validators']} watched validators, "
            f"{stats['watched_telemetry_nodes']} watched telemetry nodes, "
            f"{stats['validator_snapshots']} validator snapshots"
        )
    except Exception as e:
        logger.error(f"Failed to read registry statistics: {e}", exc_info=True)
        raise
    finally:
        await db_manager.close()
        logger.info("=== KSM Bot Registry Stopped ===")


if __name__ == "__main__":
    asyncio.run(main())

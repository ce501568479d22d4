import asyncio
import logging
import traceback

from footsquad.config import Config
from footsquad.coordinator import MatchCoordinator
from footsquad.database.database import Database
from footsquad.utils.logger import setup_logger

logger = setup_logger(__name__)

async def run_housekeeping_loop(coordinator: MatchCoordinator):
    """Run the sweeps on a fixed tick until cancelled"""
    interval = Config.HOUSEKEEPING_INTERVAL_MINUTES * 60
    while True:
        try:
            await coordinator.run_housekeeping()
        except Exception as e:
            logger.error(f"Error in housekeeping task: {e}", exc_info=True)
        await asyncio.sleep(interval)

async def main():
    """Main entry point"""
    Config.validate()
    
    db = Database()
    await db.initialize()
    coordinator = MatchCoordinator(db)
    logger.info(f"Housekeeping every {Config.HOUSEKEEPING_INTERVAL_MINUTES} minute(s)")
    
    try:
        await run_housekeeping_loop(coordinator)
    except asyncio.CancelledError:
        logger.info("Housekeeping stopped")
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
    finally:
        await db.close()

if __name__ == "__main__":
    asyncio.run(main())

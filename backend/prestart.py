import asyncio
import logging
from app.core.database import init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("prestart")

async def main():
    logger.info("Running database initialization...")
    await init_db()
    logger.info("Database tables checked/created successfully.")

if __name__ == "__main__":
    asyncio.run(main())

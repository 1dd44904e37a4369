# app/db/database.py
import motor.motor_asyncio
from beanie import init_beanie
from app.core.config import MONGODB_URL, DATABASE_NAME
from app.models.nft import NFT
from app.models.collection import Collection
from app.models.auction import Auction
from app.models.transaction import Transaction
import logging

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [NFT, Collection, Auction, Transaction]

async def init_db(database=None):
    """Inisialisasi koneksi database dan Beanie. Returns the database object in use."""
    if database is None:
        logger.info("Connecting to MongoDB...")
        client = motor.motor_asyncio.AsyncIOMotorClient(MONGODB_URL, tz_aware=True)
        database = client[DATABASE_NAME]
    logger.info(f"Using database: {getattr(database, 'name', DATABASE_NAME)}")

    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    logger.info("Beanie initialization complete for all models.")
    return database


async def ping_database() -> None:
    """Raises if MongoDB does not answer a ping."""
    await NFT.get_motor_collection().database.command("ping")

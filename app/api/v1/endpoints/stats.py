# app/api/v1/endpoints/stats.py
from fastapi import APIRouter, HTTPException
from loguru import logger

from app.core.marketplace import summarize_marketplace
from app.models.collection import Collection
from app.models.nft import NFT

router = APIRouter(
    tags=["Stats"]
)

STATS_PROJECTION = {"creator": 1, "owner": 1, "minted": 1, "last_sale": 1, "price": 1, "listed": 1}


@router.get("/")
async def read_stats():
    """Marketplace-wide totals for the stats page."""
    try:
        cursor = NFT.get_motor_collection().find({}, projection=STATS_PROJECTION)
        nft_rows = [doc async for doc in cursor]
        total_collections = await Collection.find_all().count()
    except Exception as e:
        logger.error(f"Error fetching stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch stats") from e

    return {"stats": summarize_marketplace(nft_rows, total_collections)}

# app/api/v1/endpoints/auctions.py
from typing import Optional
from fastapi import APIRouter, HTTPException, status, Path, Body, Query, Request
from bson import ObjectId
from loguru import logger
from datetime import datetime, timedelta, timezone
from pymongo import DESCENDING

from app.core.marketplace import BidRejected, auction_to_response, page_info, validate_bid
from app.core.rate_limiter import limiter
from app.models.auction import Auction, Bid
from app.api.v1.endpoints.nfts import get_nft_or_404

router = APIRouter(
    tags=["Auctions"]
)

# --- Helper get_auction_or_404 ---
async def get_auction_or_404(auction_id: str) -> Auction:
    if not ObjectId.is_valid(auction_id):
        raise HTTPException(status_code=400, detail="Invalid auction ID format.")
    try:
        auction = await Auction.find_one({"_id": ObjectId(auction_id)})
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error retrieving auction '{auction_id}'.") from e
    if not auction:
        raise HTTPException(status_code=404, detail="Auction not found")
    return auction


# --- POST /auctions/ ---
@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_auction(
    request: Request,
    auction_in: Auction.Create = Body(...),
):
    """Put an NFT up for auction. Only the current owner may do so."""
    if not auction_in.nft_id or not auction_in.starting_price or not auction_in.duration or not auction_in.seller:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if auction_in.starting_price < 0 or auction_in.duration < 0:
        raise HTTPException(status_code=400, detail="Starting price and duration must be positive")

    nft = await get_nft_or_404(auction_in.nft_id, include_token_ids=False)
    if nft.owner.lower() != auction_in.seller.lower():
        logger.warning(f"Auction rejected: {auction_in.seller} does not own NFT {nft.id}.")
        raise HTTPException(status_code=403, detail="Only owner can create auction")

    now_utc = datetime.now(timezone.utc)
    auction_obj = Auction(
        nft_id=nft.id,
        seller=auction_in.seller,
        starting_price=auction_in.starting_price,
        reserve_price=auction_in.reserve_price,
        start_time=now_utc,
        end_time=now_utc + timedelta(hours=auction_in.duration),
        created_at=now_utc,
        updated_at=now_utc,
    )
    try:
        await auction_obj.insert()
        # Tarik NFT dari listing biasa selama lelang
        nft.in_auction = True
        nft.auction_id = str(auction_obj.id)
        nft.listed = False
        nft.updated_at = now_utc
        await nft.save()
    except Exception as e:
        logger.error(f"Error creating auction for NFT {nft.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create auction") from e

    logger.info(f"Auction {auction_obj.id} created for NFT {nft.id} by {auction_in.seller}, ends {auction_obj.end_time}.")
    return {"success": True, "auction": auction_to_response(auction_obj)}


# --- GET /auctions/ ---
@router.get("/")
async def read_auctions(
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    active: Optional[bool] = Query(None, description="true = only running auctions that have not ended"),
):
    query_filters = {}
    if active is not None:
        query_filters["active"] = active
        if active:
            # Naive UTC: cocok dengan cara BSON menyimpan datetime
            query_filters["end_time"] = {"$gt": datetime.now(timezone.utc).replace(tzinfo=None)}

    try:
        total = await Auction.find(query_filters).count()
        auction_docs = await Auction.find(
            query_filters, skip=skip, limit=limit, sort=[("created_at", DESCENDING)]
        ).to_list()
    except Exception as e:
        logger.error(f"Error fetching auctions: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch auctions") from e

    return {
        "auctions": [auction_to_response(doc) for doc in auction_docs],
        "total": total,
        **page_info(skip, limit, total),
    }


# --- POST /auctions/{auction_id}/bid ---
@router.post("/{auction_id}/bid")
@limiter.limit("60/minute")
async def place_bid(
    request: Request,
    auction_id: str = Path(...),
    bid_in: Auction.PlaceBid = Body(...),
):
    """Record a bid. Bids are only stored; nothing settles the auction."""
    if not bid_in.bid_amount or not bid_in.bidder or not bid_in.tx_hash:
        raise HTTPException(status_code=400, detail="Missing required fields")

    auction = await get_auction_or_404(auction_id)
    now_utc = datetime.now(timezone.utc)
    try:
        validate_bid(auction, bid_in.bid_amount, now_utc)
    except BidRejected as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    bid = Bid(bidder=bid_in.bidder, amount=bid_in.bid_amount, tx_hash=bid_in.tx_hash, timestamp=now_utc)
    try:
        # Update bersyarat: bid lain yang lebih tinggi bisa masuk di antara baca dan tulis
        result = await Auction.get_motor_collection().update_one(
            {"_id": auction.id, "active": True, "current_bid": {"$lt": bid.amount}},
            {
                "$set": {"current_bid": bid.amount, "highest_bidder": bid.bidder, "updated_at": now_utc},
                "$push": {"bids": bid.model_dump()},
            },
        )
    except Exception as e:
        logger.error(f"Error placing bid on auction {auction_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to place bid") from e
    if result.matched_count == 0:
        raise HTTPException(status_code=409, detail="A higher bid was placed first. Please retry.")

    logger.info(f"Bid {bid.amount} by {bid.bidder} on auction {auction_id}.")
    return {"success": True, "message": "Bid placed successfully", "bid": bid}

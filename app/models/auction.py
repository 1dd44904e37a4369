# app/models/auction.py
from typing import List, Optional
from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field
from pymongo import IndexModel, ASCENDING, DESCENDING
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Bid(BaseModel):
    bidder: str
    amount: float
    tx_hash: str
    timestamp: datetime = Field(default_factory=_utcnow)


class Auction(Document):
    nft_id: PydanticObjectId
    seller: str
    starting_price: float = Field(..., gt=0)
    reserve_price: Optional[float] = None
    current_bid: float = 0.0
    highest_bidder: Optional[str] = None
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: datetime
    active: bool = True
    bids: List[Bid] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "auctions"
        indexes = [
            IndexModel([("nft_id", ASCENDING)], name="auction_nft_index"),
            IndexModel([("active", ASCENDING), ("end_time", ASCENDING)], name="auction_active_end_index"),
            IndexModel([("created_at", DESCENDING)], name="auction_created_at_index"),
        ]

    # --- Pydantic Schemas ---
    class Create(BaseModel):
        nft_id: Optional[str] = None
        starting_price: Optional[float] = None
        reserve_price: Optional[float] = None
        duration: Optional[float] = Field(None, description="Auction length in hours")
        seller: Optional[str] = None

    class PlaceBid(BaseModel):
        bid_amount: Optional[float] = None
        bidder: Optional[str] = None
        tx_hash: Optional[str] = None

    class Response(BaseModel):
        id: str
        nft_id: str
        seller: str
        starting_price: float
        reserve_price: Optional[float] = None
        current_bid: float
        highest_bidder: Optional[str] = None
        start_time: datetime
        end_time: datetime
        active: bool
        bids: List[Bid]
        created_at: datetime
        class Config: from_attributes=True

# app/core/marketplace.py
"""Marketplace helpers shared by the endpoints: response shaping, minting, bids and stats."""
import math
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from app.core.config import NFT_CONTRACT_ADDRESS
from app.core.utils import as_utc
from app.models.auction import Auction
from app.models.collection import Collection
from app.models.nft import NFT


class BidRejected(ValueError):
    """A bid that the auction cannot accept."""


# --- Response helpers ---
def nft_to_response(nft: NFT) -> NFT.Response:
    data = nft.model_dump(mode="python")
    data["id"] = str(nft.id)
    data["collection"] = nft.collection_name
    data["image"] = nft.assets.preview_url
    # Token id tampil: final, lalu reserved, lalu "0"
    data["token_id"] = nft.token_id or nft.reserved_token_id or "0"
    data["contract_address"] = nft.contract_address or ""
    data["last_sale"] = nft.last_sale or nft.price
    return NFT.Response.model_validate(data)


def collection_to_response(collection: Collection) -> Collection.Response:
    data = collection.model_dump(mode="python")
    data["id"] = str(collection.id)
    return Collection.Response.model_validate(data)


def auction_to_response(auction: Auction) -> Auction.Response:
    data = auction.model_dump(mode="python")
    data["id"] = str(auction.id)
    data["nft_id"] = str(auction.nft_id)
    return Auction.Response.model_validate(data)


def page_info(skip: int, limit: int, total: int) -> Dict[str, int]:
    """Page number and page count for skip/limit pagination."""
    return {
        "page": skip // limit + 1,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def build_asset_bundle(nft_in: NFT.Create) -> Dict[str, Any]:
    """Asset URLs plus the wallet metadata for a new NFT."""
    files = list(nft_in.files) if nft_in.files else ([nft_in.asset_file] if nft_in.asset_file else [])
    preview_url = nft_in.preview_image_url or (files[0] if files else None)
    return {
        "files": files,
        "preview_url": preview_url,
        "metadata": {
            "name": nft_in.name,
            "description": nft_in.description,
            "image": preview_url,
            "attributes": [attr.model_dump() for attr in nft_in.attributes],
            "collection": nft_in.collection,
        },
    }


# --- Minting ---
def resolve_contract_address() -> str:
    """Configured contract address, or a fabricated one while minting is simulated."""
    if NFT_CONTRACT_ADDRESS:
        return NFT_CONTRACT_ADDRESS
    return "0x" + secrets.token_hex(20)


def parse_price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(amount) or math.isinf(amount):
        return None
    return amount


# --- Bidding ---
def auction_is_open(auction: Auction, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return auction.active and now < as_utc(auction.end_time)


def validate_bid(auction: Auction, amount: float, now: Optional[datetime] = None) -> None:
    """Raises BidRejected when the auction cannot take ``amount``."""
    if not auction_is_open(auction, now):
        raise BidRejected("Auction is not active")
    if amount <= auction.current_bid:
        raise BidRejected("Bid must be higher than current bid")
    if amount < auction.starting_price:
        raise BidRejected("Bid must be at least the starting price")


# --- Stats ---
class MarketplaceStats(BaseModel):
    total_volume: str
    total_sales: int
    total_users: int
    avg_price: str
    market_cap: str
    floor_price: str
    total_nfts: int
    total_collections: int


def summarize_marketplace(nfts: Iterable[Dict[str, Any]], total_collections: int) -> MarketplaceStats:
    """
    Aggregate raw NFT documents into marketplace stats.

    Volume sums last_sale over minted NFTs; average and floor use listed prices.
    Prices that are not numbers are left out.
    """
    total_nfts = 0
    total_sales = 0
    volume = 0.0
    listed_prices: List[float] = []
    users = set()

    for doc in nfts:
        total_nfts += 1
        for field in ("creator", "owner"):
            if doc.get(field):
                users.add(doc[field])
        if doc.get("minted"):
            total_sales += 1
            sale = parse_price(doc.get("last_sale"))
            if sale is not None:
                volume += sale
        if doc.get("listed", True):
            price = parse_price(doc.get("price"))
            if price is not None:
                listed_prices.append(price)

    avg_price = f"{sum(listed_prices) / len(listed_prices):.2f}" if listed_prices else "0"
    floor_price = f"{min(listed_prices):.2f}" if listed_prices else "0"
    total_volume = f"{volume:.2f}" if total_sales else "0"

    return MarketplaceStats(
        total_volume=total_volume,
        total_sales=total_sales,
        total_users=len(users),
        avg_price=avg_price,
        market_cap=f"{float(total_volume) * 10:.1f}M",
        floor_price=floor_price,
        total_nfts=total_nfts,
        total_collections=total_collections,
    )

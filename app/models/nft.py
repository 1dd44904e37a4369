# app/models/nft.py
from typing import Any, Dict, List, Optional
from beanie import Document
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel, ASCENDING, DESCENDING
from datetime import datetime, timezone

from .enum import NFTType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_price(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValueError("price must be a decimal number")
    if amount < 0:
        raise ValueError("price must not be negative")
    return str(value).strip()


class NFTAttribute(BaseModel):
    trait_type: str
    value: str

class NFTAssets(BaseModel):
    """URLs of already-uploaded files plus the metadata blob shown to wallets."""
    files: List[str] = Field(default_factory=list)
    preview_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class NFT(Document):
    """Model Dokumen Beanie untuk NFT (lazy-minted sampai pembelian pertama)."""
    name: str = Field(..., max_length=200)
    description: str
    type: NFTType = NFTType.IMAGE
    price: str
    usd_price: str = "0"
    collection_name: str = "Uncategorized"
    creator: str
    owner: str

    # --- Token ids ---
    # reserved_token_id diisi TokenManager saat create; token_id diisi saat mint.
    token_id: Optional[str] = None
    reserved_token_id: Optional[str] = None
    contract_address: Optional[str] = None

    attributes: List[NFTAttribute] = Field(default_factory=list)
    royalties: str = "5"
    blockchain: str = "0g"
    listed: bool = True
    verified: bool = False
    is_lazy_minted: bool = True
    minted: bool = False
    is_collection: bool = False
    assets: NFTAssets = Field(default_factory=NFTAssets)
    model3d: Optional[str] = None
    rarity: Optional[str] = None
    views: int = 0
    likes: int = 0
    last_sale: Optional[str] = None
    mint_tx_hash: Optional[str] = None
    minted_at: Optional[datetime] = None

    # --- Auction ---
    in_auction: bool = False
    auction_id: Optional[str] = None

    # --- Timestamps ---
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "nfts"
        indexes = [
            IndexModel([("creator", ASCENDING)], name="nft_creator_index"),
            IndexModel([("owner", ASCENDING)], name="nft_owner_index"),
            IndexModel([("collection_name", ASCENDING)], name="nft_collection_index"),
            IndexModel([("type", ASCENDING)], name="nft_type_index"),
            IndexModel([("price", ASCENDING)], name="nft_price_index"),
            IndexModel([("created_at", DESCENDING)], name="nft_created_at_index"),
            IndexModel([("is_collection", ASCENDING)], name="nft_is_collection_index"),
            IndexModel([("token_id", ASCENDING)], name="nft_token_id_index", sparse=True),
            IndexModel([("reserved_token_id", ASCENDING)], name="nft_reserved_token_id_index", sparse=True),
        ]

    # --- Pydantic Schemas for API ---
    class Create(BaseModel):
        """Lazy-mint request. Files are uploaded to storage beforehand; only their URLs arrive here."""
        name: str = Field(..., min_length=1, max_length=200)
        description: str = Field(..., min_length=1)
        price: str
        collection: str = "Uncategorized"
        royalties: str = "5"
        type: NFTType = NFTType.IMAGE
        creator: str = Field(..., min_length=1)
        is_collection: bool = False
        attributes: List[NFTAttribute] = Field(default_factory=list)
        files: List[str] = Field(default_factory=list)
        asset_file: Optional[str] = None
        preview_image_url: Optional[str] = None
        model3d: Optional[str] = None

        @field_validator("price")
        @classmethod
        def check_price(cls, v: str) -> str:
            return _validate_price(v)

        @field_validator("attributes")
        @classmethod
        def drop_empty_attributes(cls, v: List[NFTAttribute]) -> List[NFTAttribute]:
            return [attr for attr in v if attr.trait_type and attr.value]

    class Update(BaseModel):
        name: Optional[str] = Field(None, min_length=1, max_length=200)
        description: Optional[str] = None
        price: Optional[str] = None
        usd_price: Optional[str] = None
        collection: Optional[str] = None
        royalties: Optional[str] = None
        listed: Optional[bool] = None
        verified: Optional[bool] = None
        rarity: Optional[str] = None
        model3d: Optional[str] = None
        attributes: Optional[List[NFTAttribute]] = None
        # Diterima hanya untuk ditolak dengan pesan yang jelas
        assets: Optional[Any] = None

        @field_validator("price")
        @classmethod
        def check_price(cls, v: Optional[str]) -> Optional[str]:
            return _validate_price(v)

        # None di sini berarti "tidak diubah"; null eksplisit ditolak
        @field_validator(
            "name", "description", "price", "usd_price", "collection",
            "royalties", "listed", "verified", "attributes",
        )
        @classmethod
        def reject_null(cls, v: Any) -> Any:
            if v is None:
                raise ValueError("Field cannot be null")
            return v

        class Config:
            extra = "forbid"

    class Purchase(BaseModel):
        nft_id: Optional[str] = None
        buyer_address: Optional[str] = None
        tx_hash: Optional[str] = None
        price: Optional[str] = None

    class Response(BaseModel):
        id: str
        name: str
        description: str
        image: Optional[str] = None
        type: NFTType
        price: str
        usd_price: str
        collection: str
        creator: str
        owner: str
        token_id: str
        reserved_token_id: Optional[str] = None
        contract_address: str
        attributes: List[NFTAttribute]
        rarity: Optional[str] = None
        views: int
        likes: int
        last_sale: Optional[str] = None
        created_at: datetime
        updated_at: datetime
        minted_at: Optional[datetime] = None
        blockchain: str
        listed: bool
        verified: bool
        model3d: Optional[str] = None
        is_lazy_minted: bool
        minted: bool
        mint_tx_hash: Optional[str] = None
        is_collection: bool
        in_auction: bool
        auction_id: Optional[str] = None
        assets: NFTAssets

        class Config:
            from_attributes = True
            use_enum_values = True

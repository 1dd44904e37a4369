# app/models/collection.py
from typing import Optional
from beanie import Document
from pydantic import BaseModel, Field
from pymongo import IndexModel, ASCENDING, DESCENDING
from datetime import datetime, timezone

class Collection(Document):
    name: str
    description: str
    creator: str
    contract_address: str
    image: Optional[str] = None
    banner: Optional[str] = None
    total_supply: int = 0
    floor_price: float = 0.0
    volume: float = 0.0
    owners: int = 0
    verified: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "collections"
        indexes = [
            IndexModel([("contract_address", ASCENDING)], name="collection_contract_unique_index", unique=True),
            IndexModel([("name", ASCENDING)], name="collection_name_index"),
            IndexModel([("volume", DESCENDING)], name="collection_volume_index"),
        ]

    # --- Pydantic Schemas ---
    class Create(BaseModel):
        """Skema untuk membuat koleksi baru. Field wajib dicek di endpoint agar pesan error sama dengan API lama."""
        name: Optional[str] = None
        description: Optional[str] = None
        creator: Optional[str] = None
        contract_address: Optional[str] = None
        image: Optional[str] = None
        banner: Optional[str] = None
        total_supply: int = Field(default=0, ge=0)
        floor_price: float = Field(default=0.0, ge=0)
        volume: float = Field(default=0.0, ge=0)
        owners: int = Field(default=0, ge=0)

    class Response(BaseModel):
        id: str
        name: str
        description: str
        creator: str
        contract_address: str
        image: Optional[str] = None
        banner: Optional[str] = None
        total_supply: int
        floor_price: float
        volume: float
        owners: int
        verified: bool
        created_at: datetime
        class Config: from_attributes=True

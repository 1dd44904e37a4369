# app/models/transaction.py
from typing import Optional
from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import IndexModel, ASCENDING, DESCENDING
from datetime import datetime, timezone

from .enum import TransactionType

class Transaction(Document):
    """Catatan jual-beli NFT (tx_hash berasal dari wallet pembeli)."""
    nft_id: PydanticObjectId
    type: TransactionType
    from_address: str
    to_address: str
    price: Optional[float] = None
    tx_hash: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    blockchain: str = "0g"

    class Settings:
        name = "transactions"
        indexes = [
            IndexModel([("nft_id", ASCENDING)], name="transaction_nft_index"),
            IndexModel([("timestamp", DESCENDING)], name="transaction_timestamp_index"),
        ]

# app/db/token_store.py
import logging
from datetime import datetime, timezone
from typing import Optional
from bson import ObjectId

from app.core.token_manager import TokenReservationError, parse_token_id
from app.models.nft import NFT

logger = logging.getLogger(__name__)

TOKEN_FIELDS = ("token_id", "reserved_token_id")


class BeanieTokenStore:
    """Reads and writes the token-id fields of the nfts collection for TokenManager."""

    async def find_highest_token_id(self) -> Optional[int]:
        """
        Highest numeric id across token_id and reserved_token_id.

        The ids are stored as strings, so a server-side sort would be lexical
        ("9" > "10"). Records are scanned and parsed here instead; values that
        do not parse as integers are skipped.
        """
        collection = NFT.get_motor_collection()
        query = {"$or": [{field: {"$exists": True, "$ne": None}} for field in TOKEN_FIELDS]}
        projection = {field: 1 for field in TOKEN_FIELDS}

        highest: Optional[int] = None
        scanned = 0; skipped = 0
        async for doc in collection.find(query, projection=projection):
            scanned += 1
            for field in TOKEN_FIELDS:
                raw = doc.get(field)
                if raw is None:
                    continue
                value = parse_token_id(raw)
                if value is None:
                    skipped += 1
                    logger.warning(f"Skipping malformed {field} {raw!r} on NFT {doc.get('_id')}")
                    continue
                if highest is None or value > highest:
                    highest = value

        logger.debug(f"Token id scan: {scanned} records, {skipped} malformed values, highest={highest}")
        return highest

    async def set_reserved_token_id(self, entity_id: str, token_id: int) -> None:
        if not ObjectId.is_valid(entity_id):
            raise TokenReservationError(f"Invalid NFT id '{entity_id}'")
        try:
            result = await NFT.get_motor_collection().update_one(
                {"_id": ObjectId(entity_id)},
                {"$set": {"reserved_token_id": str(token_id), "updated_at": datetime.now(timezone.utc)}},
            )
        except Exception as e:
            raise TokenReservationError(f"Database error reserving token id {token_id} for NFT '{entity_id}'") from e
        if result.matched_count == 0:
            raise TokenReservationError(f"NFT '{entity_id}' not found while reserving token id {token_id}")

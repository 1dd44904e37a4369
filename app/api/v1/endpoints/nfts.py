# app/api/v1/endpoints/nfts.py
import re
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Path, Body, Query, Request
from bson import ObjectId
from loguru import logger
from datetime import datetime, timezone
from pymongo import ASCENDING, DESCENDING

from app.core.config import DEFAULT_BLOCKCHAIN
from app.core.marketplace import (
    build_asset_bundle,
    nft_to_response,
    page_info,
    parse_price,
    resolve_contract_address,
)
from app.core.rate_limiter import limiter
from app.core.token_manager import TokenManager, TokenManagerError, get_token_manager, parse_token_id
from app.models.enum import NFTType, TransactionType
from app.models.nft import NFT, NFTAssets
from app.models.transaction import Transaction

router = APIRouter(
    tags=["NFTs"]
)

SORTABLE_FIELDS = {"created_at", "updated_at", "price", "name", "views", "likes", "minted_at"}


async def get_nft_or_404(nft_id: str, include_token_ids: bool = True) -> NFT:
    """
    Looks an NFT up by ObjectId, then (optionally) by token_id and reserved_token_id.
    Raises 404 if nothing matches.
    """
    conditions = []
    if ObjectId.is_valid(nft_id):
        conditions.append({"_id": ObjectId(nft_id)})
    if include_token_ids:
        conditions.append({"token_id": nft_id})
        conditions.append({"reserved_token_id": nft_id})

    try:
        for condition in conditions:
            nft = await NFT.find_one(condition)
            if nft:
                return nft
    except Exception as e:
        logger.error(f"Error finding NFT '{nft_id}': {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error retrieving NFT '{nft_id}'.") from e

    logger.info(f"NFT lookup failed for '{nft_id}'.")
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="NFT not found")


def _ci_regex(value: str) -> dict:
    return {"$regex": re.escape(value), "$options": "i"}


# --- POST /nfts/ --- (Lazy mint)
@router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
async def create_nft(
    request: Request,
    nft_in: NFT.Create = Body(...),
    token_manager: TokenManager = Depends(get_token_manager),
):
    """Create a lazy-minted NFT. A token id is reserved now; the record is minted on first purchase."""
    try:
        reserved_token_id = await token_manager.get_next_token_id()
    except TokenManagerError as e:
        logger.error(f"Token allocation failed while creating NFT '{nft_in.name}': {e}")
        raise HTTPException(status_code=500, detail="Failed to create NFT") from e

    assets = build_asset_bundle(nft_in)
    nft_obj = NFT(
        name=nft_in.name,
        description=nft_in.description,
        type=nft_in.type,
        price=nft_in.price,
        collection_name=nft_in.collection,
        creator=nft_in.creator,
        owner=nft_in.creator,
        reserved_token_id=str(reserved_token_id),
        attributes=nft_in.attributes,
        royalties=nft_in.royalties,
        blockchain=DEFAULT_BLOCKCHAIN,
        is_collection=nft_in.is_collection,
        model3d=nft_in.model3d,
        assets=NFTAssets(**assets),
        # listed/verified/is_lazy_minted/minted pakai default model
    )

    try:
        await nft_obj.insert()
    except Exception as e:
        # Token id yang sudah dialokasikan tidak dikembalikan
        logger.error(f"Error saving NFT '{nft_in.name}' (reserved token {reserved_token_id}): {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create NFT") from e

    logger.info(f"NFT '{nft_obj.name}' ({nft_obj.id}) lazy-minted by {nft_obj.creator} with reserved token {reserved_token_id}.")
    return {
        "success": True,
        "nft_id": str(nft_obj.id),
        "reserved_token_id": str(reserved_token_id),
        "asset_urls": assets["files"],
        "preview_image_url": nft_in.preview_image_url,
        "is_collection": nft_in.is_collection,
    }


# --- GET /nfts/ --- (List)
@router.get("/")
async def read_nfts(
    limit: int = Query(20, ge=1, le=100),
    skip: int = Query(0, ge=0),
    sort_by: str = Query("created_at", description="Field to sort by"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    owner: Optional[str] = Query(None, description="Owner address (case-insensitive)"),
    creator: Optional[str] = Query(None, description="Creator address (case-insensitive)"),
    collection: Optional[str] = Query(None, description="Collection name (case-insensitive partial match)"),
    type: Optional[NFTType] = Query(None),
    is_collection: Optional[bool] = Query(None),
):
    """Browse NFTs with filters and skip/limit pagination."""
    if sort_by not in SORTABLE_FIELDS:
        raise HTTPException(status_code=400, detail=f"Cannot sort by '{sort_by}'.")

    query_filters = {}
    if owner: query_filters["owner"] = _ci_regex(owner)
    if creator: query_filters["creator"] = _ci_regex(creator)
    if collection: query_filters["collection_name"] = _ci_regex(collection)
    if type: query_filters["type"] = type.value
    if is_collection is not None: query_filters["is_collection"] = is_collection

    direction = ASCENDING if sort_order == "asc" else DESCENDING
    try:
        total = await NFT.find(query_filters).count()
        nft_docs = await NFT.find(
            query_filters,
            skip=skip,
            limit=limit,
            sort=[(sort_by, direction)],
        ).to_list()
    except Exception as e:
        logger.error(f"Error retrieving NFT list: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch NFTs") from e

    response_list = []
    for nft_doc in nft_docs:
        try:
            response_list.append(nft_to_response(nft_doc))
        except Exception as val_err:
            logger.error(f"Skipping NFT {nft_doc.id} in list due to response prep error: {val_err}")
            continue

    return {"nfts": response_list, "total": total, **page_info(skip, limit, total)}


# --- POST /nfts/purchase --- (Buy; mints lazy NFTs)
@router.post("/purchase")
@limiter.limit("30/minute")
async def purchase_nft(
    request: Request,
    purchase: NFT.Purchase = Body(...),
    token_manager: TokenManager = Depends(get_token_manager),
):
    """
    Transfer an NFT to the buyer. A lazy-minted NFT is minted here, keeping
    the token id reserved for it at creation time.
    """
    if not purchase.nft_id or not purchase.buyer_address or not purchase.tx_hash:
        raise HTTPException(status_code=400, detail="Missing required fields")

    nft = await get_nft_or_404(purchase.nft_id, include_token_ids=False)
    now_utc = datetime.now(timezone.utc)
    previous_owner = nft.owner
    sale_price = purchase.price if purchase.price is not None else nft.price
    collection = NFT.get_motor_collection()

    if nft.is_lazy_minted and not nft.minted:
        token_id = nft.reserved_token_id
        if parse_token_id(token_id) is None:
            # Record lama tanpa reservasi: reservasi sekarang
            logger.warning(f"NFT {nft.id} has no usable reserved token id ({token_id!r}); reserving one before mint.")
            try:
                token_id = str(await token_manager.reserve_token_id(str(nft.id)))
            except TokenManagerError as e:
                raise HTTPException(status_code=500, detail="Failed to process purchase") from e

        contract_address = resolve_contract_address()
        try:
            result = await collection.update_one(
                {"_id": nft.id, "minted": False},
                {"$set": {
                    "minted": True,
                    "is_lazy_minted": False,
                    "owner": purchase.buyer_address,
                    "token_id": token_id,
                    "reserved_token_id": token_id,
                    "contract_address": contract_address,
                    "mint_tx_hash": purchase.tx_hash,
                    "minted_at": now_utc,
                    "last_sale": sale_price,
                    "updated_at": now_utc,
                }},
            )
        except Exception as e:
            logger.error(f"Database error minting NFT {nft.id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to process purchase") from e
        if result.matched_count == 0:
            raise HTTPException(status_code=409, detail="NFT was minted by another purchase. Please retry.")

        transaction_type = TransactionType.PURCHASE_AND_MINT
        response = {
            "success": True,
            "message": "NFT minted and transferred successfully",
            "token_id": token_id,
            "contract_address": contract_address,
            "tx_hash": purchase.tx_hash,
        }
    else:
        try:
            result = await collection.update_one(
                {"_id": nft.id, "owner": previous_owner},
                {"$set": {"owner": purchase.buyer_address, "last_sale": sale_price, "updated_at": now_utc}},
            )
        except Exception as e:
            logger.error(f"Database error transferring NFT {nft.id}: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to process purchase") from e
        if result.matched_count == 0:
            raise HTTPException(status_code=409, detail="NFT changed owner during purchase. Please retry.")

        transaction_type = TransactionType.PURCHASE
        response = {"success": True, "message": "NFT transferred successfully", "tx_hash": purchase.tx_hash}

    # --- Catat transaksi ---
    try:
        await Transaction(
            nft_id=nft.id,
            type=transaction_type,
            from_address=previous_owner,
            to_address=purchase.buyer_address,
            price=parse_price(sale_price),
            tx_hash=purchase.tx_hash,
            timestamp=now_utc,
            blockchain=nft.blockchain,
        ).insert()
    except Exception as e:
        # Kepemilikan sudah berubah; retry dari klien hanya akan dapat 409
        logger.error(f"NFT {nft.id} transferred but transaction record failed: {e}", exc_info=True)
        response["transaction_recorded"] = False
        response["warning"] = "Purchase completed but the transaction record could not be saved"
        return response

    response["transaction_recorded"] = True
    logger.info(f"NFT {nft.id} {transaction_type.value}: {previous_owner} -> {purchase.buyer_address} (tx {purchase.tx_hash}).")
    return response


# --- GET /nfts/{nft_id} ---
@router.get("/{nft_id}")
async def read_nft(
    nft_id: str = Path(..., description="ObjectId, token id or reserved token id"),
):
    nft = await get_nft_or_404(nft_id)
    return {"nft": nft_to_response(nft)}


# --- PUT /nfts/{nft_id} ---
@router.put("/{nft_id}")
async def update_nft(
    nft_id: str = Path(..., description="The ID of the NFT to update"),
    nft_in: NFT.Update = Body(...),
):
    """Update listing metadata. Asset references cannot be changed here."""
    if "assets" in nft_in.model_fields_set:
        raise HTTPException(status_code=400, detail="Cannot directly update asset storage references")
    updated_fields = sorted(nft_in.model_fields_set)
    if not updated_fields:
        raise HTTPException(status_code=400, detail="No update data provided.")

    nft = await get_nft_or_404(nft_id, include_token_ids=False)
    for field in updated_fields:
        target = "collection_name" if field == "collection" else field
        setattr(nft, target, getattr(nft_in, field))
    nft.updated_at = datetime.now(timezone.utc)

    try:
        await nft.save()
    except Exception as e:
        logger.error(f"Database error updating NFT '{nft_id}': {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update NFT") from e

    logger.info(f"NFT {nft.id} updated. Fields: {updated_fields}")
    return {
        "success": True,
        "message": "NFT updated successfully",
        "updated_fields": updated_fields,
        "nft": nft_to_response(nft),
    }


# --- DELETE /nfts/{nft_id} ---
@router.delete("/{nft_id}")
async def delete_nft(
    nft_id: str = Path(..., description="The ID of the NFT to delete"),
):
    nft = await get_nft_or_404(nft_id, include_token_ids=False)
    try:
        await nft.delete()
    except Exception as e:
        logger.error(f"Database error deleting NFT '{nft_id}': {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete NFT") from e

    logger.info(f"NFT {nft_id} deleted.")
    return {"success": True, "message": "NFT deleted successfully"}

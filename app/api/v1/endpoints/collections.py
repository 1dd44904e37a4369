# app/api/v1/endpoints/collections.py
import math
import re
from fastapi import APIRouter, HTTPException, status, Body, Query, Request
from loguru import logger
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from app.core.marketplace import collection_to_response
from app.core.rate_limiter import limiter
from app.models.collection import Collection

router = APIRouter(
    tags=["Collections"]
)

SORTABLE_FIELDS = {"volume", "floor_price", "created_at", "name", "owners", "total_supply"}
REQUIRED_FIELDS = ("name", "description", "creator", "contract_address")


# --- GET /collections/ ---
@router.get("/")
async def read_collections(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str = Query("", description="Case-insensitive match on name or description"),
    sort_by: str = Query("volume"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
):
    if sort_by not in SORTABLE_FIELDS:
        raise HTTPException(status_code=400, detail=f"Cannot sort by '{sort_by}'.")

    query_filters = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query_filters["$or"] = [{"name": pattern}, {"description": pattern}]

    direction = DESCENDING if sort_order == "desc" else ASCENDING
    try:
        collection_docs = await Collection.find(
            query_filters,
            skip=(page - 1) * limit,
            limit=limit,
            sort=[(sort_by, direction)],
        ).to_list()
        total = await Collection.find(query_filters).count()
    except Exception as e:
        logger.error(f"Error fetching collections: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch collections") from e

    return {
        "collections": [collection_to_response(doc) for doc in collection_docs],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }


# --- POST /collections/ ---
@router.post("/", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/hour")
async def create_collection(
    request: Request,
    collection_in: Collection.Create = Body(...),
):
    for field in REQUIRED_FIELDS:
        if not getattr(collection_in, field):
            raise HTTPException(status_code=400, detail=f"Missing required field: {field}")

    if await Collection.find_one({"contract_address": collection_in.contract_address}):
        raise HTTPException(status_code=409, detail="Collection already exists")

    collection_obj = Collection(**collection_in.model_dump())
    try:
        await collection_obj.insert()
    except DuplicateKeyError as e:
        raise HTTPException(status_code=409, detail="Collection already exists") from e
    except Exception as e:
        logger.error(f"Error creating collection '{collection_in.name}': {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create collection") from e

    logger.info(f"Collection '{collection_obj.name}' ({collection_obj.contract_address}) created by {collection_obj.creator}.")
    return {
        "success": True,
        "collection_id": str(collection_obj.id),
        "message": "Collection created successfully",
    }

# app/api/v1/api.py
from fastapi import APIRouter

from app.api.v1.endpoints import nfts, collections, auctions, stats

api_router_v1 = APIRouter(prefix="/api/v1")

api_router_v1.include_router(nfts.router, prefix="/nfts")
api_router_v1.include_router(collections.router, prefix="/collections")
api_router_v1.include_router(auctions.router, prefix="/auctions")
api_router_v1.include_router(stats.router, prefix="/stats")

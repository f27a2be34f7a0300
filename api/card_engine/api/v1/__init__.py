"""
API v1 router aggregation.
"""
from fastapi import APIRouter
from card_engine.api.v1.endpoints import cards

api_router = APIRouter()

# Each router defines its own prefix
api_router.include_router(cards.router)

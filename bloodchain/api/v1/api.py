from fastapi import APIRouter
from bloodchain.api.v1.endpoints import donors, inventory, requests

api_router = APIRouter()

api_router.include_router(donors.router, prefix="/donors", tags=["donors"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(requests.router, prefix="/requests", tags=["requests"])

from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Daily vehicle transactions
    transactions,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(
    transactions.router,
    prefix="/transactions",
    tags=["Transactions"]
)

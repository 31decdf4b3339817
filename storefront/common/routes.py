from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.errors import AppError
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session

home_router = APIRouter()


@home_router.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    try:
        await session.execute(select(1))
    except SQLAlchemyError:
        raise AppError("DATABASE_UNAVAILABLE", "Database connection error", status_code=503)

    return success_response({"status": "healthy"})

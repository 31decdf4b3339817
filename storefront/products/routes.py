from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.dependencies import require_admin
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.products.constants import logger
from storefront.products.models import ProductCreateIn, StockCheckIn
from storefront.products.repository import get_product_or_404
from storefront.products.services import create_product, product_details
from storefront.products.stock import validate_stock_availability

prods_public_router = APIRouter()
prods_admin_router = APIRouter()
stock_router = APIRouter()


@prods_admin_router.post("", dependencies=[Depends(require_admin)])
async def create_product_route(payload: ProductCreateIn, session: AsyncSession = Depends(get_session)):

    logger.info("product.create.attempt", extra={"product_name": payload.name})

    product = await create_product(session, payload)
    await session.commit()

    return success_response({"product": await product_details(session, product)}, status_code=status.HTTP_201_CREATED)


@prods_public_router.get("/{product_id}")
async def get_product(product_id: str, session: AsyncSession = Depends(get_session)):
    product = await get_product_or_404(session, product_id)
    return success_response({"product": await product_details(session, product)})


# pre-check used by the storefront before it offers checkout , nothing is reserved here
@stock_router.post("/validate")
async def validate_stock(payload: StockCheckIn, session: AsyncSession = Depends(get_session)):
    lines = [line.model_dump() for line in payload.items]
    result = await validate_stock_availability(session, lines)
    return success_response(result)

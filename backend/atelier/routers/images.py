"""
Images API Router.

Serves product images stored during sync, so the dashboard never hits the
shop's CDN directly.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.database import get_db
from atelier.models import ProductImage

router = APIRouter()


@router.get("/{product_id}")
async def get_product_image(product_id: int, db: AsyncSession = Depends(get_db)):
    image = await db.scalar(select(ProductImage).where(ProductImage.product_id == product_id))
    if image is None or not image.data:
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(
        content=image.data,
        media_type=image.content_type or "image/jpeg",
        headers={"Cache-Control": "public, max-age=604800, immutable"},
    )

# routers/storefront_router.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.cache import TTLCache
from app.services.catalog import CatalogStore, get_catalog

router = APIRouter(prefix="/storefront", tags=["Storefront"])
logger = logging.getLogger("storefront.catalog")

CACHE_TTL_SECONDS = 15 * 60
CACHE_CONTROL = "public, s-maxage=900, stale-while-revalidate=1800"

storefront_cache = TTLCache(default_ttl=CACHE_TTL_SECONDS)


def get_storefront_cache() -> TTLCache:
    return storefront_cache


@router.get("/products")
async def list_products(
    featured: bool = False,
    limit: int = Query(50, ge=1, le=200),
    category: Optional[str] = None,
    catalog: CatalogStore = Depends(get_catalog),
    cache: TTLCache = Depends(get_storefront_cache),
):
    async def load():
        return await catalog.list_products(featured=featured, limit=limit, category=category)

    try:
        # Only home-page (featured) lists are cached; the shop grid stays live
        if featured:
            key = f"products:{featured}-{limit}-{category or 'all'}"
            products, hit = await cache.get_or_set(key, load)
        else:
            products, hit = await load(), False
    except Exception as e:
        logger.error(f"[Storefront] Products error: {e}")
        return JSONResponse({"error": "Failed to fetch products"}, status_code=500)

    return JSONResponse(
        jsonable_encoder(products),
        headers={"Cache-Control": CACHE_CONTROL, "X-Cache": "HIT" if hit else "MISS"},
    )


@router.get("/categories")
async def list_categories(
    catalog: CatalogStore = Depends(get_catalog),
    cache: TTLCache = Depends(get_storefront_cache),
):
    try:
        categories, hit = await cache.get_or_set("categories:all", catalog.list_categories)
    except Exception as e:
        logger.error(f"[Storefront] Categories error: {e}")
        return JSONResponse({"error": "Failed to fetch categories"}, status_code=500)

    return JSONResponse(
        jsonable_encoder(categories),
        headers={"Cache-Control": CACHE_CONTROL, "X-Cache": "HIT" if hit else "MISS"},
    )

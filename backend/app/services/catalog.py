# services/catalog.py - read-only storefront queries
import asyncio
import logging
from typing import Any, Dict, List, Optional

from google.cloud import firestore

logger = logging.getLogger("storefront.catalog")


class CatalogStore:
    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        if self._db is None:
            from app.core.firebase import get_db
            self._db = get_db()
        return self._db

    def _products_sync(self, featured: bool, limit: int, category: Optional[str]) -> List[Dict[str, Any]]:
        query = self.db.collection("products").where("status", "==", "active")
        if featured:
            query = query.where("featured", "==", True)
        if category:
            query = query.where("category_slug", "==", category)
        query = query.order_by("created_at", direction=firestore.Query.DESCENDING).limit(limit)
        return [{**doc.to_dict(), "id": doc.id} for doc in query.stream()]

    async def list_products(self, featured: bool = False, limit: int = 50, category: Optional[str] = None) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._products_sync, featured, limit, category)

    def _categories_sync(self) -> List[Dict[str, Any]]:
        docs = self.db.collection("categories").where("status", "==", "active").order_by("position").stream()
        return [{**doc.to_dict(), "id": doc.id} for doc in docs]

    async def list_categories(self) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._categories_sync)


_default_catalog: Optional[CatalogStore] = None


def get_catalog() -> CatalogStore:
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = CatalogStore()
    return _default_catalog

# components/collection_indexer.py

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from tqdm import tqdm

from visual_catalog.components.similarity_search import SimilaritySearchEngine

logger = logging.getLogger(__name__)


@dataclass
class CatalogItem:
    """
    A collection item as supplied by the metadata store

    Only item_id and image_ref matter for visual search; the rest is
    carried through so search results can be shown without a second lookup.
    """
    item_id: str
    image_ref: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    scale: Optional[str] = None
    year: Optional[str] = None
    condition: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class ItemMatch:
    """Container for an item search result"""
    item: CatalogItem
    similarity: float


class CollectionIndexer:
    """
    Keeps stored embeddings in step with the collection's items
    """

    def __init__(self, engine: SimilaritySearchEngine):
        self.engine = engine

    async def index_item(self, item: CatalogItem) -> bool:
        """Embed the item's photo and store it under the item id"""
        if not item.image_ref:
            return False

        vector = await self.engine.generate_embedding(item.image_ref)
        if vector is None:
            logger.info(f"No embedding for item {item.item_id}; skipping")
            return False

        return await self.engine.store_embedding(item.item_id, vector)

    async def on_item_added(self, item: CatalogItem) -> bool:
        return await self.index_item(item)

    async def on_item_updated(self, old: Optional[CatalogItem], new: CatalogItem) -> bool:
        """
        Re-embed when the photo changed

        Clearing the photo removes the stored embedding.
        """
        old_ref = old.image_ref if old else None

        if new.image_ref == old_ref:
            return True

        if not new.image_ref:
            return await self.engine.remove_embedding(new.item_id)

        return await self.index_item(new)

    async def on_item_removed(self, item_id: str) -> bool:
        return await self.engine.remove_embedding(item_id)

    async def find_similar_items(self, image_ref: str,
                                 items: Iterable[CatalogItem],
                                 k: Optional[int] = None) -> List[ItemMatch]:
        """
        Items whose photos look most like the given photo

        Matches for ids not present in items are dropped.
        """
        query = await self.engine.generate_embedding(image_ref)
        if query is None:
            return []

        matches = await self.engine.find_similar(query, k)
        by_id = {item.item_id: item for item in items}

        return [
            ItemMatch(by_id[m.entity_id], m.similarity)
            for m in matches
            if m.entity_id in by_id
        ]

    async def reindex(self, items: Iterable[CatalogItem], progress: bool = True) -> int:
        """
        Embed and store every item that has a photo

        Returns:
            Number of embeddings stored
        """
        pending = [self.index_item(item) for item in items if item.image_ref]
        stored = 0

        for future in tqdm(asyncio.as_completed(pending),
                           total=len(pending),
                           desc="Indexing photos",
                           disable=not progress):
            if await future:
                stored += 1

        logger.info(f"Indexed {stored} of {len(pending)} photos")
        return stored

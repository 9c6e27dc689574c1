"""
In-process document store standing in for the service database.

Every call pays a simulated round trip so that the number of queries a handler
issues shows up in its latency, which is what the N+1 list endpoints are meant
to expose.
"""

import asyncio
import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional


Document = Dict[str, Any]
Predicate = Callable[[Document], bool]

COLLECTIONS = ("users", "products", "orders")


def _match_all(document: Document) -> bool:
    return True


class InMemoryDatabase:
    """Async document collections keyed by generated ids."""

    def __init__(self, latency_ms: float = 0.0):
        self.latency_ms = latency_ms
        self.query_count = 0
        self._collections: Dict[str, Dict[str, Document]] = {name: {} for name in COLLECTIONS}

    async def _round_trip(self) -> None:
        self.query_count += 1
        # Always yield so concurrent requests interleave at query boundaries
        await asyncio.sleep(self.latency_ms / 1000 if self.latency_ms > 0 else 0)

    def _collection(self, name: str) -> Dict[str, Document]:
        try:
            return self._collections[name]
        except KeyError:
            raise KeyError(f"Unknown collection {name}") from None

    async def insert(self, collection: str, document: Document) -> Document:
        await self._round_trip()
        stored = copy.deepcopy(document)
        stored.setdefault("_id", uuid.uuid4().hex)
        stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self._collection(collection)[stored["_id"]] = stored
        return copy.deepcopy(stored)

    async def find(
        self,
        collection: str,
        predicate: Optional[Predicate] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Document]:
        await self._round_trip()
        matches = [doc for doc in self._collection(collection).values() if (predicate or _match_all)(doc)]
        end = None if limit is None else skip + limit
        return copy.deepcopy(matches[skip:end])

    async def count(self, collection: str, predicate: Optional[Predicate] = None) -> int:
        await self._round_trip()
        return sum(1 for doc in self._collection(collection).values() if (predicate or _match_all)(doc))

    async def find_by_id(self, collection: str, document_id: str) -> Optional[Document]:
        await self._round_trip()
        document = self._collection(collection).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def find_by_ids(self, collection: str, document_ids: Iterable[str]) -> Dict[str, Document]:
        """Batched lookup, one round trip for any number of ids."""
        await self._round_trip()
        docs = self._collection(collection)
        return {doc_id: copy.deepcopy(docs[doc_id]) for doc_id in set(document_ids) if doc_id in docs}

    async def update(self, collection: str, document_id: str, changes: Document) -> Optional[Document]:
        await self._round_trip()
        document = self._collection(collection).get(document_id)
        if document is None:
            return None
        document.update(copy.deepcopy(changes))
        return copy.deepcopy(document)

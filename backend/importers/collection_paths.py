"""
Collection Path Resolver

Resolves Zotero collection keys to their full "Root/Child/Leaf" paths.

Features:
- Per-resolver memo table: a collection is fetched at most once
- In-flight de-duplication: concurrent lookups of one key share a fetch
- Cycle-safe ascent: a parent chain that loops back on itself ends with the
  repeated key's identifier instead of looping
- Depth cap on the ascent for pathological hierarchies

One resolver is meant to live for a single import; the cache is never shared
across libraries.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from exceptions import CollectionResolutionError

logger = logging.getLogger(__name__)


CollectionFetcher = Callable[[str], Awaitable[Optional[Mapping[str, Any]]]]


@dataclass(frozen=True)
class CollectionInfo:
    """One node of a collection hierarchy."""

    key: str
    name: str
    parent_collection: Optional[str] = None

    @classmethod
    def from_api_response(
        cls,
        raw: Optional[Mapping[str, Any]],
        fallback_key: str,
    ) -> "CollectionInfo":
        """
        Create collection info from an API response.

        The API reports top-level collections with parentCollection=false;
        some transports nest the parent as {"key": ...}.
        """
        raw = raw or {}
        data = raw.get("data") if isinstance(raw.get("data"), Mapping) else {}
        raw_data = {}
        if isinstance(raw.get("raw"), Mapping) and isinstance(raw["raw"].get("data"), Mapping):
            raw_data = raw["raw"]["data"]

        key = raw.get("key") or data.get("key") or raw_data.get("key") or fallback_key
        name = data.get("name") or raw_data.get("name") or key

        parent = data.get("parentCollection") or raw_data.get("parentCollection")
        if isinstance(parent, Mapping):
            parent = parent.get("key")
        if not isinstance(parent, str) or not parent:
            parent = None

        return cls(key=key, name=name, parent_collection=parent)


@dataclass(frozen=True)
class CollectionWithPath:
    """A collection with its resolved root-to-leaf path."""

    key: str
    name: str
    full_path: str

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "name": self.name, "fullPath": self.full_path}


class CollectionPathResolver:
    """
    Memoized, cycle-safe resolver for collection paths.

    Example:
        resolver = CollectionPathResolver(client.get_collection)
        paths = await resolver.resolve_paths(record.collections)
    """

    MAX_DEPTH = 64
    PATH_SEPARATOR = "/"

    def __init__(
        self,
        fetch_collection: CollectionFetcher,
        max_depth: int = MAX_DEPTH,
    ):
        self._fetch_collection = fetch_collection
        self.max_depth = max_depth

        self._cache: Dict[str, CollectionInfo] = {}
        self._in_flight: Dict[str, "asyncio.Task[CollectionInfo]"] = {}

        # Statistics
        self.stats = {
            "fetches": 0,
            "cache_hits": 0,
            "shared_fetches": 0,
        }

    @property
    def cached_keys(self) -> List[str]:
        return list(self._cache)

    async def _load(self, key: str) -> CollectionInfo:
        self.stats["fetches"] += 1
        try:
            raw = await self._fetch_collection(key)
        except CollectionResolutionError:
            raise
        except Exception as e:
            raise CollectionResolutionError(key, str(e) or e.__class__.__name__) from e
        finally:
            self._in_flight.pop(key, None)

        if raw is None:
            logger.warning(f"Collection {key} not found; using its key as the name")

        info = CollectionInfo.from_api_response(raw, key)
        self._cache[key] = info
        return info

    async def get_info(self, key: str) -> CollectionInfo:
        """
        Get collection info, fetching it at most once per resolver.

        A lookup arriving while a fetch for the same key is outstanding
        waits on that fetch instead of issuing another.
        """
        cached = self._cache.get(key)
        if cached is not None:
            self.stats["cache_hits"] += 1
            return cached

        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._load(key))
            self._in_flight[key] = pending
        else:
            self.stats["shared_fetches"] += 1

        # Shielded so one cancelled waiter does not cancel the shared fetch
        return await asyncio.shield(pending)

    async def build_path(self, key: str) -> str:
        """
        Walk parent links upward and join names from root to leaf.

        When the walk reaches a key already visited on this path (or the
        depth cap), that key itself becomes the root-most segment.
        """
        visiting = set()
        segments: List[str] = []
        current: Optional[str] = key

        while current:
            if current in visiting or len(visiting) >= self.max_depth:
                if current in visiting:
                    logger.warning(f"Collection cycle detected at {current} while resolving {key}")
                else:
                    logger.warning(f"Collection path for {key} exceeds {self.max_depth} levels")
                segments.append(current)
                break

            visiting.add(current)
            info = await self.get_info(current)
            segments.append(info.name)
            current = info.parent_collection

        return self.PATH_SEPARATOR.join(reversed(segments))

    async def _resolve_one(self, key: str) -> CollectionWithPath:
        info = await self.get_info(key)
        full_path = await self.build_path(key)
        return CollectionWithPath(key=info.key, name=info.name, full_path=full_path)

    async def resolve_paths(self, collection_keys: Iterable[str]) -> List[CollectionWithPath]:
        """
        Resolve full paths for a set of collection keys.

        Empty keys are dropped and duplicates resolved once; results follow
        the order of the remaining keys.

        Raises:
            CollectionResolutionError: if any collection fetch fails
        """
        unique_keys: List[str] = []
        for key in collection_keys:
            if key and key not in unique_keys:
                unique_keys.append(key)

        if not unique_keys:
            return []

        return list(await asyncio.gather(*(self._resolve_one(key) for key in unique_keys)))

"""
Collection source interfaces for dataset exports.

A collection source exposes an ordered, append-only item collection by id:
its total item count and paginated retrieval by offset/limit. Concrete
sources (remote API, local storage) implement the CollectionSource protocol
or subclass AbstractCollectionSource.
"""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class CollectionSource(Protocol):
    """
    Common interface all collection sources must implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    """

    name: str

    async def item_count(self, collection_id: str) -> int:
        """
        Return the number of items currently stored in the collection.

        Raises
        ------
        FetchError
            If the collection does not exist or cannot be read.
        """
        ...

    async def get_items(
        self,
        collection_id: str,
        offset: int,
        limit: int,
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Return up to `limit` items starting at `offset`, in stored order.

        Parameters
        ----------
        fields : sequence of str, optional
            Restrict each item to these fields.
        """
        ...


class AbstractCollectionSource(abc.ABC):
    """
    Optional ABC helper for class-based implementations.

    Subclasses should set `name` and implement both coroutines.
    """

    name: str

    @abc.abstractmethod
    async def item_count(self, collection_id: str) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def get_items(
        self,
        collection_id: str,
        offset: int,
        limit: int,
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:  # pragma: no cover - interface only
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release resources held by the source (no-op by default)."""


__all__ = ["AbstractCollectionSource", "CollectionSource"]

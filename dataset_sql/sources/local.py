"""
Local dataset source reading the platform's local storage layout.

Each dataset is a directory `<storage>/datasets/<id>/` holding one JSON file
per item, named so that lexical order is insertion order
(`000000001.json`, `000000002.json`, ...). File reads run in a worker thread
so concurrent windows do not block the event loop.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from dataset_sql.errors import FetchError
from dataset_sql.sources.abstract import AbstractCollectionSource


class LocalDatasetSource(AbstractCollectionSource):
    """
    Read dataset items from local JSON files.
    """

    name: str = "local"

    def __init__(self, storage_dir: Path | str) -> None:
        self.storage_dir = Path(storage_dir)

    def _dataset_dir(self, collection_id: str) -> Path:
        path = self.storage_dir / "datasets" / collection_id
        if not path.is_dir():
            raise FetchError(
                f"Dataset {collection_id} was not found at {path}", collection_id=collection_id
            )
        return path

    def _item_files(self, collection_id: str) -> List[Path]:
        return sorted(self._dataset_dir(collection_id).glob("*.json"))

    def _read_items(
        self,
        collection_id: str,
        offset: int,
        limit: int,
        fields: Optional[Sequence[str]],
    ) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for path in self._item_files(collection_id)[offset : offset + limit]:
            try:
                with path.open("r", encoding="utf-8") as f:
                    item = json.load(f)
            except (OSError, ValueError) as exc:
                raise FetchError(
                    f"Could not read item file {path}: {exc}",
                    collection_id=collection_id,
                    offset=offset,
                ) from exc
            if fields:
                item = {key: item[key] for key in fields if key in item}
            items.append(item)
        return items

    async def item_count(self, collection_id: str) -> int:
        files = await asyncio.to_thread(self._item_files, collection_id)
        return len(files)

    async def get_items(
        self,
        collection_id: str,
        offset: int,
        limit: int,
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._read_items, collection_id, offset, limit, fields)


__all__ = ["LocalDatasetSource"]

# admin_api/repositories/collections.py
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from admin_api.core.errors import AdminApiError, ErrorKind, format_issues
from admin_api.services.audit import audit_log
from admin_api.services.storage import CollectionRef, CollectionStore

Record = Dict[str, Any]


def _index_of(items: List[Record], item_id: str) -> int:
    for idx, item in enumerate(items):
        if isinstance(item, dict) and item.get("id") == item_id:
            return idx
    return -1


class CollectionRepository:
    """
    Generic list/create/update/delete over one stored collection.

    Each mutation reads the whole array, changes it and writes it back; there
    is no locking, so concurrent writers are last-writer-wins.
    """

    def __init__(
        self,
        store: CollectionStore,
        ref: CollectionRef,
        schema: Type[BaseModel],
        unique_fields: Sequence[str] = (),
        reader: Optional[Callable[[], Awaitable[List[Record]]]] = None,
    ):
        self.store = store
        self.ref = ref
        self.schema = schema
        self.unique_fields = tuple(unique_fields)
        self._reader = reader

    @property
    def resource(self) -> str:
        return self.ref.name

    async def list(self) -> List[Record]:
        if self._reader is not None:
            return await self._reader()
        return await self.store.read(self.ref)

    def validate(self, candidate: Any) -> Record:
        try:
            return self.schema.model_validate(candidate).model_dump()
        except ValidationError as exc:
            raise AdminApiError(ErrorKind.VALIDATION, format_issues(exc)) from exc

    async def create(self, candidate: Any, actor: str) -> Record:
        item = self.validate(candidate)
        items = await self.list()

        if _index_of(items, item["id"]) != -1:
            raise AdminApiError(ErrorKind.CONFLICT, f"Item with id={item['id']} already exists")
        for field in self.unique_fields:
            if any(isinstance(other, dict) and other.get(field) == item[field] for other in items):
                raise AdminApiError(ErrorKind.CONFLICT, f"Field {field} must be unique")

        await self.store.write(self.ref, [*items, item])
        audit_log("create", self.resource, item["id"], actor)
        return item

    async def update(self, item_id: str, candidate: Any, actor: str) -> Record:
        item = self.validate(candidate)
        if item["id"] != item_id:
            raise AdminApiError(ErrorKind.VALIDATION, "ID in the URL and in the payload must match")

        items = await self.list()
        index = _index_of(items, item_id)
        if index == -1:
            raise AdminApiError(ErrorKind.NOT_FOUND)

        for field in self.unique_fields:
            for other_index, other in enumerate(items):
                if other_index != index and isinstance(other, dict) and other.get(field) == item[field]:
                    raise AdminApiError(ErrorKind.CONFLICT, f"Field {field} must be unique")

        next_items = list(items)
        next_items[index] = item
        await self.store.write(self.ref, next_items)
        audit_log("update", self.resource, item_id, actor)
        return item

    async def delete(self, item_id: str, actor: str) -> Record:
        items = await self.list()
        index = _index_of(items, item_id)
        if index == -1:
            raise AdminApiError(ErrorKind.NOT_FOUND)

        next_items = list(items)
        removed = next_items.pop(index)
        await self.store.write(self.ref, next_items)
        audit_log("delete", self.resource, item_id, actor)
        return removed

"""Sibling order assignment for stages, tasks, steps and elements."""

from typing import Any

from unified_workflow.db.repository import Collection, EntityRepository
from unified_workflow.services.locks import KeyedLocks

# Order column for each orderable collection
ORDER_FIELDS: dict[Collection, str] = {
    Collection.STAGES: "stage_order",
    Collection.TASKS: "task_order",
    Collection.STEPS: "step_order",
    Collection.ELEMENTS: "element_order",
}


class OrderingAssigner:
    """Computes ``max(order) + 1`` within a parent.

    ``insert_ordered`` holds a per-parent lock across the read and the insert,
    so concurrent sibling creations in this process get distinct orders.
    """

    def __init__(self, repository: EntityRepository, locks: KeyedLocks) -> None:
        self._repo = repository
        self._locks = locks

    async def next_order(
        self, collection: Collection, parent_field: str, parent_id: str
    ) -> int:
        """Return the next order value for a new child of ``parent_id``.

        Store errors propagate to the caller unchanged.
        """
        order_field = ORDER_FIELDS[collection]
        rows = await self._repo.list(
            collection,
            {parent_field: parent_id},
            order_by=order_field,
            descending=True,
            limit=1,
        )
        if not rows:
            return 1
        return (rows[0].get(order_field) or 0) + 1

    async def insert_ordered(
        self,
        collection: Collection,
        parent_field: str,
        parent_id: str,
        row: dict[str, Any],
    ) -> dict[str, Any]:
        """Insert ``row``, filling its order column unless one was supplied."""
        order_field = ORDER_FIELDS[collection]
        async with self._locks.hold((collection.value, parent_id)):
            if row.get(order_field) is None:
                row = {
                    **row,
                    order_field: await self.next_order(collection, parent_field, parent_id),
                }
            return await self._repo.insert(collection, row)

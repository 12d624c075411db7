"""
Batch lineage selector.

Walks ``parent_batch_id`` links up to the receipt batch and down through
every slitting generation, and assembles a trace bundle for one batch.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass

from rollstock_kernel.domain.batch import Batch
from rollstock_kernel.domain.records import TransformationRecord
from rollstock_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LineageTrace:
    """Everything known about where a batch came from and what it became."""

    batch: Batch
    ancestors: tuple[Batch, ...]
    descendants: tuple[Batch, ...]
    origin_document_id: str
    produced_by: TransformationRecord | None
    consumed_by: tuple[TransformationRecord, ...]


class TraceSelector(BaseSelector):
    """Lineage queries over the batch store's parent index."""

    def ancestors(self, batch_id: str) -> list[Batch]:
        """Parent, grandparent ... up to the receipt batch (nearest first)."""
        chain: list[Batch] = []
        seen = {batch_id}
        current = self.batches.get_by_id(batch_id)
        while current.parent_batch_id is not None:
            if current.parent_batch_id in seen:
                break
            seen.add(current.parent_batch_id)
            current = self.batches.get_by_id(current.parent_batch_id)
            chain.append(current)
        return chain

    def descendants(self, batch_id: str) -> list[Batch]:
        """All batches derived from ``batch_id``, breadth first."""
        self.batches.get_by_id(batch_id)
        found: list[Batch] = []
        seen = {batch_id}
        queue = deque([batch_id])
        while queue:
            for child in self.batches.list_children(queue.popleft()):
                if child.id in seen:
                    continue
                seen.add(child.id)
                found.append(child)
                queue.append(child.id)
        return found

    def origin_document(self, batch_id: str) -> str:
        """Receipt document id of the root batch in the lineage."""
        chain = self.ancestors(batch_id)
        root = chain[-1] if chain else self.batches.get_by_id(batch_id)
        return root.source_document_id

    def trace(self, batch_id: str) -> LineageTrace:
        batch = self.batches.get_by_id(batch_id)
        ancestors = self.ancestors(batch_id)
        root = ancestors[-1] if ancestors else batch
        return LineageTrace(
            batch=batch,
            ancestors=tuple(ancestors),
            descendants=tuple(self.descendants(batch_id)),
            origin_document_id=root.source_document_id,
            produced_by=self.records.transformation_producing(batch_id),
            consumed_by=tuple(self.records.transformations_consuming(batch_id)),
        )

"""
Weight reconciliation and commit of an embedded-forms instance.

Turns the registry entry of an instance into the ordered reference list
handed to the parent record: apply submitted weights, sort, save what
needs saving, delete what was queued for deletion.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import PersistenceError
from .records import Record, RecordRef, RecordStore
from .registry import NestedReferences, RegistryEntry, RowState

logger = logging.getLogger(__name__)


class WeightReconciler:
    """Persists one registry entry inside a store transaction."""

    def __init__(self, store: RecordStore):
        self.store = store

    def apply_weights(self, entry: RegistryEntry, submitted_weights: Optional[Dict[Any, Any]]) -> int:
        """
        Copy submitted row weights onto the entry.

        Returns:
            Number of rows whose weight changed
        """
        changed = 0
        for key, weight in (submitted_weights or {}).items():
            row = entry.row(_row_key(key))
            if row is None:
                continue
            weight = int(weight)
            if row.weight != weight:
                row.weight = weight
                changed += 1
        return changed

    def order(self, entry: RegistryEntry) -> List[RowState]:
        return entry.ordered_rows()

    def reconcile(self, entry: RegistryEntry, submitted_weights: Optional[Dict[Any, Any]] = None,
                  field_name: str = '') -> List[RecordRef]:
        """
        Save, delete and order the rows of an instance.

        On failure the entry is left unchanged and PersistenceError is
        raised. On success ``needs_save`` flags and pending deletions are
        cleared, so a repeated call makes no store calls.

        Args:
            entry: Registry entry of the instance
            submitted_weights: Row key to weight, from the row weight inputs
            field_name: Owning field name recorded on the returned refs

        Returns:
            RecordRefs ordered by weight
        """
        field_name = field_name or entry.field_name
        original_weights = {key: row.weight for key, row in entry.entities.items()}
        self.apply_weights(entry, submitted_weights)
        rows = self.order(entry)
        undo: List[Tuple[Record, Optional[int], Dict[str, Any]]] = []

        try:
            with self.store.transaction():
                for row in rows:
                    if row.needs_save:
                        self._persist(row.record, undo)
                for record_id in entry.pending_deletions:
                    self._delete(entry.settings.target_type, record_id)
        except PersistenceError:
            _rollback(undo)
            for key, weight in original_weights.items():
                entry.entities[key].weight = weight
            raise

        for row in rows:
            row.needs_save = False
        deleted_ids = list(entry.pending_deletions)
        deleted = len(deleted_ids)
        entry.pending_deletions.clear()

        # A deleted record is never a surviving reference.
        refs = [RecordRef(record_id=row.record.id, weight=row.weight,
                          field_name=field_name, record=row.record)
                for row in rows
                if row.record.id is not None and row.record.id not in deleted_ids]
        logger.info(f"Reconciled {field_name or entry.form_id[:10]}: "
                    f"{len(refs)} reference(s), {deleted} deletion(s)")
        return refs

    def _persist(self, record: Record, undo: List[Tuple[Record, Optional[int], Dict[str, Any]]]):
        """Save a record, saving folded nested references first."""
        undo.append((record, record.id, dict(record.fields)))
        for name, value in list(record.fields.items()):
            if isinstance(value, NestedReferences):
                record.fields[name] = self._persist_nested(value, undo)
        self._save(record)

    def _persist_nested(self, nested: NestedReferences,
                        undo: List[Tuple[Record, Optional[int], Dict[str, Any]]]) -> List[Any]:
        ordered = nested.ordered_rows()
        for row in ordered:
            if row.needs_save:
                self._persist(row.record, undo)
        for record_id in nested.pending_deletions:
            self._delete(nested.kind, record_id)
        return [row.record.id for row in ordered
                if row.record.id is not None and row.record.id not in nested.pending_deletions]

    def _save(self, record: Record):
        try:
            self.store.save(record)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"Failed to save {record.kind} {record.id}: {e}")
            raise PersistenceError('save', e, record.id) from e

    def _delete(self, kind: str, record_id: Any):
        try:
            self.store.delete(kind, record_id)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"Failed to delete {kind} {record_id}: {e}")
            raise PersistenceError('delete', e, record_id) from e


def _rollback(undo: List[Tuple[Record, Optional[int], Dict[str, Any]]]):
    """Restore ids and field values of every record touched by a failed commit."""
    for record, record_id, fields in reversed(undo):
        record.id = record_id
        record.fields = fields


def _row_key(key: Any) -> Any:
    try:
        return int(key)
    except (TypeError, ValueError):
        return key

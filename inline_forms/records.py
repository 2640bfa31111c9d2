"""
Child records and the record store boundary.

The orchestrator never talks to a database directly. Everything it needs
from storage goes through the RecordStore interface; InMemoryRecordStore
is the implementation used by the demo app and the tests.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Set, Tuple

logger = logging.getLogger(__name__)

LABEL_FIELDS = ('title', 'name', 'label')


@dataclass
class Record:
    """An in-memory child record. ``id`` stays None until the store saves it."""

    kind: str
    bundle: str
    fields: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    def is_new(self) -> bool:
        return self.id is None

    def label(self) -> str:
        for name in LABEL_FIELDS:
            value = self.fields.get(name)
            if value not in (None, ''):
                return str(value)
        if self.is_new():
            return f"New {self.bundle}"
        return f"{self.kind} {self.id}"


@dataclass(frozen=True)
class RecordRef:
    """Reference handed back to the parent record after commit."""

    record_id: int
    weight: int
    field_name: str = ''
    record: Optional[Record] = field(default=None, compare=False, repr=False)


class RecordStore(ABC):
    """Storage operations the orchestrator depends on."""

    @abstractmethod
    def create(self, kind: str, bundle: str,
               initial_fields: Optional[Dict[str, Any]] = None) -> Record:
        """Create an unsaved draft record."""

    @abstractmethod
    def load(self, kind: str, record_id: Any) -> Optional[Record]:
        """Load a persisted record, None when it does not exist."""

    @abstractmethod
    def save(self, record: Record) -> Any:
        """Persist a record and return its id."""

    @abstractmethod
    def delete(self, kind: str, record_id: Any) -> None:
        """Delete a persisted record."""

    @abstractmethod
    def check_access(self, record: Record, operation: str) -> bool:
        """Capability check for 'view', 'update' or 'delete'."""

    @abstractmethod
    def list_bundles(self, kind: str) -> List[str]:
        """Bundles available for a record kind (empty for unknown kinds)."""

    @contextmanager
    def transaction(self):
        """Unit of work around commit. Stores without transactions do nothing."""
        yield self


class InMemoryRecordStore(RecordStore):
    """
    Dict backed record store.

    Records are copied on load and on save so callers never share state
    with the store. Every save and delete is logged in ``save_calls`` and
    ``delete_calls``. Access rules and failures can be injected with
    ``deny()`` and ``fail_on()``.
    """

    def __init__(self, bundles: Optional[Dict[str, List[str]]] = None,
                 defaults: Optional[Dict[Tuple[str, str], Dict[str, Any]]] = None):
        self.bundles: Dict[str, List[str]] = {kind: list(names) for kind, names in (bundles or {}).items()}
        self.defaults = defaults or {}
        self._records: Dict[str, Dict[int, Record]] = {}
        self._next_id = 1
        self._denied: Set[Tuple[str, Any]] = set()
        self._failures: Set[Tuple[str, Any]] = set()
        self._transaction_depth = 0
        self.save_calls: List[Tuple[str, int]] = []
        self.delete_calls: List[Tuple[str, Any]] = []

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'InMemoryRecordStore':
        """Build a store from the record_kinds configuration section."""
        bundles = {}
        defaults = {}
        for kind, definition in (config.get('record_kinds') or {}).items():
            kind_bundles = (definition or {}).get('bundles') or {}
            bundles[kind] = list(kind_bundles)
            for bundle, schema in kind_bundles.items():
                defaults[(kind, bundle)] = {
                    name: field_config['default']
                    for name, field_config in (schema.get('fields') or {}).items()
                    if isinstance(field_config, dict) and 'default' in field_config
                }
        logger.info(f"Record store configured with kinds: {sorted(bundles)}")
        return cls(bundles, defaults)

    def create(self, kind, bundle, initial_fields=None):
        fields = deepcopy(self.defaults.get((kind, bundle), {}))
        fields.update(deepcopy(initial_fields or {}))
        return Record(kind=kind, bundle=bundle, fields=fields)

    def add(self, kind: str, bundle: str, fields: Optional[Dict[str, Any]] = None,
            record_id: Optional[int] = None) -> Record:
        """Insert an already persisted record, bypassing the call log."""
        if record_id is None:
            record_id = self._allocate_id()
        else:
            self._next_id = max(self._next_id, int(record_id) + 1)
        record = Record(kind=kind, bundle=bundle, fields=deepcopy(fields or {}), id=record_id)
        self._records.setdefault(kind, {})[record_id] = deepcopy(record)
        if bundle not in self.bundles.setdefault(kind, []):
            self.bundles[kind].append(bundle)
        return record

    def load(self, kind, record_id):
        try:
            record_id = int(record_id)
        except (TypeError, ValueError):
            return None
        record = self._records.get(kind, {}).get(record_id)
        return deepcopy(record) if record is not None else None

    def exists(self, kind: str, record_id: Any) -> bool:
        return record_id in self._records.get(kind, {})

    def save(self, record):
        self._maybe_fail('save', record.id)
        if record.id is None:
            record.id = self._allocate_id()
        self._records.setdefault(record.kind, {})[record.id] = deepcopy(record)
        self.save_calls.append((record.kind, record.id))
        logger.debug(f"Saved {record.kind} {record.id}")
        return record.id

    def delete(self, kind, record_id):
        self._maybe_fail('delete', record_id)
        self._records.get(kind, {}).pop(record_id, None)
        self.delete_calls.append((kind, record_id))
        logger.debug(f"Deleted {kind} {record_id}")

    def check_access(self, record, operation):
        if (operation, None) in self._denied:
            return False
        return (operation, record.id) not in self._denied

    def list_bundles(self, kind):
        return list(self.bundles.get(kind, []))

    def deny(self, operation: str, record_id: Any = None):
        """Refuse ``operation`` for one record, or for every record when no id is given."""
        self._denied.add((operation, record_id))

    def fail_on(self, operation: str, record_id: Any = None):
        """Make ``operation`` raise for one record, or for every record."""
        self._failures.add((operation, record_id))

    @contextmanager
    def transaction(self):
        """
        Re-entrant unit of work.

        The outermost transaction snapshots the stored records and restores
        them if the block raises.
        """
        outermost = self._transaction_depth == 0
        if outermost:
            snapshot = (deepcopy(self._records), self._next_id)
        self._transaction_depth += 1
        try:
            yield self
        except Exception:
            if outermost:
                self._records, self._next_id = snapshot
                logger.warning("Record store transaction rolled back")
            raise
        finally:
            self._transaction_depth -= 1

    def _allocate_id(self) -> int:
        record_id = self._next_id
        self._next_id += 1
        return record_id

    def _maybe_fail(self, operation: str, record_id: Any):
        if (operation, None) in self._failures or (operation, record_id) in self._failures:
            raise IOError(f"Simulated {operation} failure for record {record_id}")

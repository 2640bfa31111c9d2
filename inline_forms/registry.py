"""
Form state registry.

Hierarchical, per-form-instance state that survives form rebuilds within
one editing session. Entries are addressed by form instance id; nested
values are addressed by tuple keys like ``(form_id, 'entities', 0)``.
The registry is an explicit object threaded through every call, backed by
any mutable mapping (a plain dict, or the streamlit session state).
"""

import logging
from collections.abc import Mapping, MutableMapping
from copy import deepcopy
from dataclasses import dataclass, field, asdict, is_dataclass
from enum import Enum
from typing import Dict, Any, Iterable, List, Optional, Tuple, Union

from .identity import FormPath, IdentityAllocator
from .records import Record

logger = logging.getLogger(__name__)

ROOT_KEY = 'inline_forms'


class _Absent:
    """Sentinel for missing registry values. Falsy, and never equal to a stored value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'ABSENT'

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


ABSENT = _Absent()


class RowMode(str, Enum):
    """Which kind of sub-form is open for an instance."""

    ADD = 'add'
    ADD_EXISTING = 'add_existing'
    EDIT = 'edit'
    REMOVE = 'remove'


@dataclass
class RowState:
    key: int
    record: Record
    weight: int = 0
    needs_save: bool = False


@dataclass
class OpenRow:
    """The single open sub-form of an instance. ``row_key`` is None for add forms."""

    mode: RowMode
    row_key: Optional[int] = None
    bundle: Optional[str] = None
    draft: Optional[Record] = None
    auto_opened: bool = False


@dataclass
class NestedReferences:
    """
    Rows of a nested embedded-forms instance folded into a child draft.

    Stored as a field value of the child record until commit, where the
    reconciler persists the rows and replaces the value with the ordered
    list of saved ids.
    """

    kind: str
    rows: List[RowState] = field(default_factory=list)
    pending_deletions: List[Any] = field(default_factory=list)

    def ordered_rows(self) -> List[RowState]:
        return sorted(self.rows, key=lambda row: row.weight)


@dataclass
class RegistryEntry:
    """State of one embedded-forms instance."""

    form_id: str
    settings: Any
    path: FormPath
    field_name: str = ''
    entities: Dict[int, RowState] = field(default_factory=dict)
    open_row: Optional[OpenRow] = None
    pending_deletions: List[Any] = field(default_factory=list)
    next_key: int = 0

    def add_row(self, record: Record, weight: Optional[int] = None,
                needs_save: bool = False) -> RowState:
        """Append a row. Row keys are insertion indexes and never reused."""
        key = self.next_key
        self.next_key += 1
        if weight is None:
            weight = self.next_weight()
        row = RowState(key=key, record=record, weight=weight, needs_save=needs_save)
        self.entities[key] = row
        return row

    def remove_row(self, key: int) -> Optional[RowState]:
        return self.entities.pop(key, None)

    def row(self, key: int) -> Optional[RowState]:
        return self.entities.get(key)

    def ordered_rows(self) -> List[RowState]:
        """Rows sorted by weight; equal weights keep insertion order."""
        return sorted(self.entities.values(), key=lambda row: row.weight)

    def max_weight(self) -> Optional[int]:
        if not self.entities:
            return None
        return max(row.weight for row in self.entities.values())

    def next_weight(self) -> int:
        current = self.max_weight()
        return 0 if current is None else current + 1

    def has_open_form(self) -> bool:
        return self.open_row is not None

    def add_pending_deletion(self, record_id: Any):
        if record_id not in self.pending_deletions:
            self.pending_deletions.append(record_id)

    def discard_pending_deletion(self, record_id: Any) -> bool:
        """Drop a queued deletion. Returns whether one was queued."""
        if record_id in self.pending_deletions:
            self.pending_deletions.remove(record_id)
            return True
        return False

    def row_count(self) -> int:
        return len(self.entities)

    def contains_record(self, kind: str, record_id: Any) -> bool:
        return any(
            row.record.kind == kind and row.record.id == record_id
            for row in self.entities.values()
        )


RegistryKey = Union[str, Tuple[Any, ...]]


def _key_parts(key: RegistryKey) -> Tuple[Any, ...]:
    if isinstance(key, tuple):
        if not key:
            raise KeyError('Registry key must not be empty')
        return key
    return (key,)


class FormStateRegistry:
    """
    Per-session store of RegistryEntry objects keyed by form instance id.

    Missing keys never raise on read: ``get`` returns ``ABSENT`` (or the
    given default). Writes create intermediate mappings as needed.
    """

    def __init__(self, storage: Optional[MutableMapping] = None, detect_collisions: bool = True):
        self._storage = storage if storage is not None else {}
        if ROOT_KEY not in self._storage:
            self._storage[ROOT_KEY] = {}
        self.identity = IdentityAllocator(detect_collisions)

    @property
    def bucket(self) -> MutableMapping:
        return self._storage[ROOT_KEY]

    def get(self, key: RegistryKey, default: Any = ABSENT) -> Any:
        node = self.bucket
        for part in _key_parts(key):
            if isinstance(node, Mapping):
                if part not in node:
                    return default
                node = node[part]
            elif is_dataclass(node) and isinstance(part, str) and hasattr(node, part):
                node = getattr(node, part)
            else:
                return default
        return node

    def set(self, key: RegistryKey, value: Any):
        parts = _key_parts(key)
        node = self.bucket
        for part in parts[:-1]:
            if isinstance(node, MutableMapping):
                if not isinstance(node.get(part), (Mapping,)) and not is_dataclass(node.get(part)):
                    node[part] = {}
                node = node[part]
            elif is_dataclass(node) and isinstance(part, str) and hasattr(node, part):
                node = getattr(node, part)
            else:
                raise KeyError(f"Cannot write registry key {parts}: '{part}' is not a container")

        last = parts[-1]
        if isinstance(node, MutableMapping):
            node[last] = value
        elif is_dataclass(node) and isinstance(last, str) and hasattr(node, last):
            setattr(node, last, value)
        else:
            raise KeyError(f"Cannot write registry key {parts}")

    def has(self, key: RegistryKey) -> bool:
        return self.get(key) is not ABSENT

    def unset(self, key: RegistryKey):
        parts = _key_parts(key)
        parent = self.get(parts[:-1]) if len(parts) > 1 else self.bucket
        if isinstance(parent, MutableMapping):
            parent.pop(parts[-1], None)
        elif is_dataclass(parent) and isinstance(parts[-1], str) and hasattr(parent, parts[-1]):
            setattr(parent, parts[-1], None)

    def entry(self, form_id: str) -> Optional[RegistryEntry]:
        value = self.bucket.get(form_id)
        return value if isinstance(value, RegistryEntry) else None

    def ensure_entry(self, form_id: str, path: FormPath, settings: Any,
                     seed: Iterable[Record] = (), field_name: str = '') -> RegistryEntry:
        """
        Return the entry for ``form_id``, creating and seeding it on first sight.

        Seed records become clean rows weighted by their position.
        """
        entry = self.entry(form_id)
        if entry is not None:
            entry.settings = settings
            return entry

        entry = RegistryEntry(form_id=form_id, settings=settings, path=path, field_name=field_name)
        for weight, record in enumerate(seed):
            entry.add_row(record, weight=weight)
        self.bucket[form_id] = entry
        logger.debug(f"Seeded form {form_id[:10]} at {path} with {entry.row_count()} rows")
        return entry

    def discard(self, form_id: str):
        self.bucket.pop(form_id, None)

    def discard_descendants(self, path: FormPath) -> List[str]:
        """Drop every entry nested strictly below ``path``."""
        dropped = [
            form_id for form_id, entry in self.entries()
            if entry.path != path and entry.path.startswith(path)
        ]
        for form_id in dropped:
            self.discard(form_id)
        if dropped:
            logger.debug(f"Discarded {len(dropped)} nested form(s) under {path}")
        return dropped

    def entries(self) -> List[Tuple[str, RegistryEntry]]:
        return [(form_id, value) for form_id, value in self.bucket.items()
                if isinstance(value, RegistryEntry)]

    def form_ids(self) -> List[str]:
        return [form_id for form_id, _ in self.entries()]

    def snapshot(self) -> Dict[str, Any]:
        """Isolated deep copy of the registry contents."""
        return deepcopy(dict(self.bucket))

    @classmethod
    def from_snapshot(cls, snapshot: Optional[Dict[str, Any]],
                      detect_collisions: bool = True) -> 'FormStateRegistry':
        return cls({ROOT_KEY: deepcopy(snapshot or {})}, detect_collisions=detect_collisions)

    def clear(self):
        self.bucket.clear()
        self.identity.reset()

    def describe(self) -> Dict[str, Any]:
        """Plain data view of every entry, for diffing and logging."""
        description = {}
        for form_id, entry in self.entries():
            open_row = None
            if entry.open_row is not None:
                open_row = {
                    'mode': entry.open_row.mode.value,
                    'row_key': entry.open_row.row_key,
                    'bundle': entry.open_row.bundle
                }
            description[form_id] = {
                'path': str(entry.path),
                'field_name': entry.field_name,
                'open_row': open_row,
                'rows': [
                    {
                        'key': row.key,
                        'record_id': row.record.id,
                        'bundle': row.record.bundle,
                        'weight': row.weight,
                        'needs_save': row.needs_save,
                        'fields': _plain(row.record.fields)
                    }
                    for row in entry.ordered_rows()
                ],
                'pending_deletions': list(entry.pending_deletions)
            }
        return description


def _plain(value: Any) -> Any:
    if is_dataclass(value):
        return _plain(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value

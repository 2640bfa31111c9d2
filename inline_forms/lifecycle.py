"""
Row lifecycle state machine.

Each embedded-forms instance has at most one open sub-form at a time,
stored in ``RegistryEntry.open_row``:

    Closed --open_add--> AddOpen --confirm_add--> Closed
    Closed --open_add_existing--> AddExistingOpen --confirm_add_existing--> Closed
    Closed --open_edit(r)--> EditOpen(r) --confirm_edit--> Closed
    Closed --open_remove(r)--> RemoveOpen(r) --confirm_remove--> Closed
    any --cancel--> Closed

Opening a row closes whichever row is currently open. Every transition
asks for the instance wrapper to be re-rendered. Nothing here writes to
the record store; drafts are created through it and access is checked
against it.
"""

import logging
from copy import deepcopy
from typing import Any, Callable, Optional

from .exceptions import AccessDenied, ConfigurationError, InvalidTransition, ValidationError
from .identity import FormPath
from .records import Record, RecordStore
from .registry import FormStateRegistry, OpenRow, RegistryEntry, RowMode, RowState

logger = logging.getLogger(__name__)

CLOSED = 'closed'
STATE_NAMES = {
    RowMode.ADD: 'add_open',
    RowMode.ADD_EXISTING: 'add_existing_open',
    RowMode.EDIT: 'edit_open',
    RowMode.REMOVE: 'remove_open',
}

UNLINKED = 'unlinked'
DELETED = 'deleted'


def widget_path_of(entry: RegistryEntry) -> FormPath:
    """Path of the widget element an instance id was derived from."""
    return entry.path.parent


def add_form_path(widget_path: FormPath) -> FormPath:
    return widget_path.child('form', 'inline_entity_form')


def row_form_path(widget_path: FormPath, row_key: int) -> FormPath:
    return widget_path.child('entities', row_key, 'form', 'inline_entity_form')


def open_form_path(entry: RegistryEntry) -> Optional[FormPath]:
    """Path of the currently open sub-form, None when the instance is closed."""
    open_row = entry.open_row
    if open_row is None:
        return None
    widget_path = widget_path_of(entry)
    if open_row.mode in (RowMode.ADD, RowMode.ADD_EXISTING):
        return add_form_path(widget_path)
    return row_form_path(widget_path, open_row.row_key)


class RowLifecycle:
    """Row transitions for one embedded-forms instance."""

    def __init__(self, registry: FormStateRegistry, form_id: str, store: RecordStore,
                 request_rebuild: Optional[Callable[[str], None]] = None):
        self.registry = registry
        self.form_id = form_id
        self.store = store
        self._request_rebuild = request_rebuild

    @property
    def entry(self) -> RegistryEntry:
        entry = self.registry.entry(self.form_id)
        if entry is None:
            raise InvalidTransition('use unknown form', self.form_id)
        return entry

    @property
    def settings(self):
        return self.entry.settings

    def state(self, row_key: Optional[int] = None) -> str:
        """
        State name of the instance, or of one row when ``row_key`` is given.

        A row whose key differs from the open row is closed.
        """
        open_row = self.entry.open_row
        if open_row is None:
            return CLOSED
        if row_key is not None and open_row.row_key != row_key:
            return CLOSED
        return STATE_NAMES[open_row.mode]

    # Access helpers, also used to decide which controls to render.

    def can_edit(self, record: Record) -> bool:
        return record.is_new() or self.store.check_access(record, 'update')

    def can_remove(self, record: Record) -> bool:
        return (record.is_new() or self.settings.allow_existing
                or self.store.check_access(record, 'delete'))

    def can_delete_from_system(self, record: Record) -> bool:
        """Whether the remove form offers the 'delete from the system' checkbox."""
        return (not record.is_new() and self.settings.allow_existing
                and self.store.check_access(record, 'delete'))

    def can_add(self) -> bool:
        return self.settings.allows_more(self.entry.row_count())

    # Opening transitions

    def open_add(self, bundle: Optional[str] = None, auto_opened: bool = False) -> OpenRow:
        entry = self.entry
        settings = entry.settings
        if not self.can_add():
            raise InvalidTransition('open add form (cardinality reached)', self.form_id,
                                    entry.open_row.mode.value if entry.open_row else None)

        bundle = bundle or (settings.allowed_bundles[0] if settings.allowed_bundles else None)
        if bundle not in settings.allowed_bundles:
            raise ConfigurationError(
                f"Bundle '{bundle}' is not allowed for this field",
                target_type=settings.target_type, bundle=bundle, field_name=entry.field_name)

        self._force_close(entry)
        draft = self.store.create(settings.target_type, bundle)
        entry.open_row = OpenRow(mode=RowMode.ADD, bundle=bundle, draft=draft, auto_opened=auto_opened)
        logger.info(f"Opened add form ({bundle}) on {self._label()}")
        self._changed()
        return entry.open_row

    def open_add_existing(self) -> OpenRow:
        entry = self.entry
        if not entry.settings.allow_existing:
            raise InvalidTransition('open add existing form (not allowed)', self.form_id)
        if not self.can_add():
            raise InvalidTransition('open add existing form (cardinality reached)', self.form_id)

        self._force_close(entry)
        entry.open_row = OpenRow(mode=RowMode.ADD_EXISTING)
        logger.info(f"Opened add existing form on {self._label()}")
        self._changed()
        return entry.open_row

    def open_edit(self, row_key: int) -> OpenRow:
        entry = self.entry
        row = self._row(entry, row_key, 'open edit form')
        if not self.can_edit(row.record):
            raise AccessDenied('update', row.record)

        self._force_close(entry)
        entry.open_row = OpenRow(mode=RowMode.EDIT, row_key=row_key,
                                 bundle=row.record.bundle, draft=deepcopy(row.record))
        logger.info(f"Opened edit form for row {row_key} on {self._label()}")
        self._changed()
        return entry.open_row

    def open_remove(self, row_key: int) -> OpenRow:
        entry = self.entry
        row = self._row(entry, row_key, 'open remove form')
        if not self.can_remove(row.record):
            raise AccessDenied('delete', row.record)

        self._force_close(entry)
        entry.open_row = OpenRow(mode=RowMode.REMOVE, row_key=row_key, bundle=row.record.bundle)
        logger.info(f"Opened remove form for row {row_key} on {self._label()}")
        self._changed()
        return entry.open_row

    # Confirming transitions

    def confirm_add(self, record: Optional[Record] = None) -> RowState:
        entry = self.entry
        open_row = self._expect(entry, RowMode.ADD, 'confirm add')
        record = record if record is not None else open_row.draft
        row = entry.add_row(record, weight=entry.next_weight(), needs_save=True)
        self._close(entry)
        logger.info(f"Added row {row.key} (weight {row.weight}) on {self._label()}")
        return row

    def confirm_add_existing(self, record_id: Any) -> RowState:
        """
        Reference an existing record.

        Raises:
            ValidationError: Unknown id, disallowed bundle or already referenced
        """
        entry = self.entry
        self._expect(entry, RowMode.ADD_EXISTING, 'confirm add existing')
        settings = entry.settings

        record = self.store.load(settings.target_type, record_id)
        if record is None:
            raise ValidationError(f"No {settings.target_type} with id {record_id} exists.",
                                  form_id=self.form_id, field_name=entry.field_name,
                                  element_path='entity_id')
        if record.bundle not in settings.allowed_bundles:
            raise ValidationError(f"{record.label()} cannot be referenced by this field.",
                                  form_id=self.form_id, field_name=entry.field_name,
                                  element_path='entity_id')
        if entry.contains_record(record.kind, record.id):
            raise ValidationError(f"{record.label()} has already been added.",
                                  form_id=self.form_id, field_name=entry.field_name,
                                  element_path='entity_id')

        if entry.discard_pending_deletion(record.id):
            logger.info(f"Record {record.id} is referenced again, its deletion is no longer queued")

        row = entry.add_row(record, weight=entry.next_weight(), needs_save=False)
        self._close(entry)
        logger.info(f"Referenced existing record {record.id} as row {row.key} on {self._label()}")
        return row

    def confirm_edit(self, record: Optional[Record] = None) -> RowState:
        entry = self.entry
        open_row = self._expect(entry, RowMode.EDIT, 'confirm edit')
        row = self._row(entry, open_row.row_key, 'confirm edit')
        row.record = record if record is not None else open_row.draft
        row.needs_save = True
        self._close(entry)
        logger.info(f"Updated row {row.key} on {self._label()}")
        return row

    def confirm_remove(self, delete_record: Optional[bool] = None) -> str:
        """
        Drop the row of the open remove form.

        Unsaved records, and referenced records when existing records are
        allowed and no hard delete was requested, are only unlinked. Any
        other record is queued for deletion at commit.

        Returns:
            'unlinked' or 'deleted'
        """
        entry = self.entry
        open_row = self._expect(entry, RowMode.REMOVE, 'confirm remove')
        settings = entry.settings
        row = self._row(entry, open_row.row_key, 'confirm remove')
        record = row.record

        if delete_record is None:
            delete_record = settings.delete_referenced_on_removal

        if record.is_new() or (settings.allow_existing and not delete_record):
            outcome = UNLINKED
        else:
            if settings.allow_existing and not self.store.check_access(record, 'delete'):
                raise AccessDenied('delete', record)
            entry.add_pending_deletion(record.id)
            outcome = DELETED

        entry.remove_row(row.key)
        self._close(entry)
        logger.info(f"Removed row {row.key} ({outcome}) on {self._label()}")
        return outcome

    def cancel(self) -> bool:
        """
        Close the open sub-form and drop its draft. Safe to call repeatedly.

        Returns:
            True if a sub-form was open
        """
        entry = self.entry
        if entry.open_row is None:
            return False
        mode = entry.open_row.mode
        self._close(entry)
        logger.info(f"Cancelled {mode.value} form on {self._label()}")
        return True

    # Internals

    def _row(self, entry: RegistryEntry, row_key: Any, transition: str) -> RowState:
        row = entry.row(row_key)
        if row is None:
            raise InvalidTransition(f"{transition} for unknown row {row_key}", self.form_id,
                                    entry.open_row.mode.value if entry.open_row else None)
        return row

    def _expect(self, entry: RegistryEntry, mode: RowMode, transition: str) -> OpenRow:
        if entry.open_row is None or entry.open_row.mode != mode:
            raise InvalidTransition(transition, self.form_id,
                                    entry.open_row.mode.value if entry.open_row else None)
        return entry.open_row

    def _force_close(self, entry: RegistryEntry):
        if entry.open_row is not None:
            logger.debug(f"Closing open {entry.open_row.mode.value} form on {self._label()}")
            self._discard_nested(entry)
            entry.open_row = None

    def _close(self, entry: RegistryEntry):
        self._discard_nested(entry)
        entry.open_row = None
        self._changed()

    def _discard_nested(self, entry: RegistryEntry):
        path = open_form_path(entry)
        if path is not None:
            self.registry.discard_descendants(path)

    def _changed(self):
        if self._request_rebuild is not None:
            self._request_rebuild(self.form_id)

    def _label(self) -> str:
        return f"form {self.form_id[:10]}"

"""
Unit tests for lifecycle module.
"""

import random
import pytest

from inline_forms.exceptions import AccessDenied, ConfigurationError, InvalidTransition, ValidationError
from inline_forms.identity import widget_identity_path
from inline_forms.lifecycle import (
    CLOSED,
    DELETED,
    UNLINKED,
    RowLifecycle,
    add_form_path,
    open_form_path,
    row_form_path,
    widget_path_of
)
from inline_forms.records import InMemoryRecordStore
from inline_forms.registry import FormStateRegistry, RowMode
from inline_forms.settings import resolve_settings


class TestRowLifecycle:
    """Test class for row transitions."""

    def setup_method(self):
        """Set up a registry entry with one persisted row (id 42)."""
        self.store = InMemoryRecordStore({'node': ['article', 'page']})
        self.existing = self.store.add('node', 'article', {'title': 'Existing'}, record_id=42)
        self.rebuilt = []
        self.registry = FormStateRegistry()

    def make(self, seed=True, **settings):
        values = {'target_type': 'node', 'allowed_bundles': ['article']}
        values.update(settings)
        resolved = resolve_settings(values, self.store, 'articles')
        path = widget_identity_path([], 'articles')
        form_id = self.registry.identity.allocate(path)
        self.registry.ensure_entry(form_id, path, resolved,
                                   seed=[self.store.load('node', 42)] if seed else [],
                                   field_name='articles')
        return RowLifecycle(self.registry, form_id, self.store, request_rebuild=self.rebuilt.append)

    def test_initial_state_is_closed(self):
        """Test that a fresh instance has no open row."""
        lifecycle = self.make()
        assert lifecycle.state() == CLOSED
        assert lifecycle.state(0) == CLOSED

    def test_add_then_confirm(self):
        """Test Closed -> AddOpen -> Closed."""
        lifecycle = self.make()
        open_row = lifecycle.open_add()

        assert lifecycle.state() == 'add_open'
        assert open_row.draft.is_new()
        assert open_row.bundle == 'article'

        open_row.draft.fields['title'] = 'New'
        row = lifecycle.confirm_add()

        assert lifecycle.state() == CLOSED
        assert row.needs_save
        assert row.weight == 1
        assert lifecycle.entry.row_count() == 2
        assert lifecycle.form_id in self.rebuilt

    def test_open_add_with_disallowed_bundle(self):
        """Test that an add form cannot be opened for another bundle."""
        lifecycle = self.make()
        with pytest.raises(ConfigurationError):
            lifecycle.open_add('page')
        assert lifecycle.state() == CLOSED

    def test_open_add_beyond_cardinality(self):
        """Test that the add form is refused once the limit is reached."""
        lifecycle = self.make(cardinality=1)
        assert not lifecycle.can_add()
        with pytest.raises(InvalidTransition):
            lifecycle.open_add()

    def test_opening_a_row_closes_the_open_one(self):
        """Test that at most one sub-form is open."""
        lifecycle = self.make()
        lifecycle.open_add()
        lifecycle.open_edit(0)

        assert lifecycle.entry.open_row.mode == RowMode.EDIT
        assert lifecycle.state(0) == 'edit_open'
        assert lifecycle.state(5) == CLOSED

    def test_edit_works_on_a_copy(self):
        """Test that edits only reach the row on confirm."""
        lifecycle = self.make()
        draft = lifecycle.open_edit(0).draft
        draft.fields['title'] = 'Changed'

        assert lifecycle.entry.row(0).record.fields['title'] == 'Existing'
        row = lifecycle.confirm_edit()
        assert row.record.fields['title'] == 'Changed'
        assert row.needs_save

    def test_edit_denied(self):
        """Test that update access is checked."""
        self.store.deny('update', 42)
        lifecycle = self.make()
        assert not lifecycle.can_edit(lifecycle.entry.row(0).record)
        with pytest.raises(AccessDenied) as exc_info:
            lifecycle.open_edit(0)
        assert exc_info.value.operation == 'update'
        assert lifecycle.state() == CLOSED

    def test_remove_denied_without_existing(self):
        """Test that remove needs delete access when existing records are not allowed."""
        self.store.deny('delete', 42)
        lifecycle = self.make()
        with pytest.raises(AccessDenied):
            lifecycle.open_remove(0)

    def test_remove_allowed_with_existing(self):
        """Test that unlinking needs no delete access."""
        self.store.deny('delete', 42)
        lifecycle = self.make(allow_existing=True)
        lifecycle.open_remove(0)
        assert not lifecycle.can_delete_from_system(lifecycle.entry.row(0).record)
        assert lifecycle.confirm_remove(False) == UNLINKED
        assert lifecycle.entry.pending_deletions == []

    def test_remove_unlinks_referenced_record(self):
        """Test unlink semantics for existing references."""
        lifecycle = self.make(allow_existing=True, delete_referenced_on_removal=False)
        lifecycle.open_remove(0)

        assert lifecycle.confirm_remove() == UNLINKED
        assert lifecycle.entry.row_count() == 0
        assert lifecycle.entry.pending_deletions == []

    def test_remove_deletes_when_requested(self):
        """Test delete semantics when the checkbox is ticked."""
        lifecycle = self.make(allow_existing=True)
        lifecycle.open_remove(0)

        assert lifecycle.confirm_remove(True) == DELETED
        assert lifecycle.entry.pending_deletions == [42]

    def test_remove_owned_record_deletes(self):
        """Test that owned records are deleted when existing records are not allowed."""
        lifecycle = self.make()
        lifecycle.open_remove(0)
        assert lifecycle.confirm_remove() == DELETED
        assert lifecycle.entry.pending_deletions == [42]

    def test_remove_new_record_only_unlinks(self):
        """Test that unsaved records are never queued for deletion."""
        lifecycle = self.make(seed=False)
        lifecycle.open_add()
        row = lifecycle.confirm_add()
        lifecycle.open_remove(row.key)
        assert lifecycle.confirm_remove(True) == UNLINKED
        assert lifecycle.entry.pending_deletions == []

    def test_add_existing(self):
        """Test referencing an existing record."""
        other = self.store.add('node', 'article', {'title': 'Other'})
        lifecycle = self.make(allow_existing=True)
        lifecycle.open_add_existing()

        row = lifecycle.confirm_add_existing(other.id)

        assert row.record.id == other.id
        assert not row.needs_save
        assert lifecycle.state() == CLOSED

    def test_add_existing_withdraws_deletion(self):
        """Test that referencing a record queued for deletion keeps it."""
        lifecycle = self.make(allow_existing=True)
        lifecycle.open_remove(0)
        lifecycle.confirm_remove(True)
        lifecycle.open_add_existing()

        row = lifecycle.confirm_add_existing(42)

        assert row.record.id == 42
        assert lifecycle.entry.pending_deletions == []

    @pytest.mark.parametrize("record_id", [999, 'abc'])
    def test_add_existing_unknown(self, record_id):
        """Test that unknown ids are a validation error."""
        lifecycle = self.make(allow_existing=True)
        lifecycle.open_add_existing()
        with pytest.raises(ValidationError):
            lifecycle.confirm_add_existing(record_id)
        assert lifecycle.state() == 'add_existing_open'

    def test_add_existing_duplicate_and_bundle(self):
        """Test duplicate references and disallowed bundles."""
        page = self.store.add('node', 'page', {'title': 'Page'})
        lifecycle = self.make(allow_existing=True)
        lifecycle.open_add_existing()

        with pytest.raises(ValidationError):
            lifecycle.confirm_add_existing(42)
        with pytest.raises(ValidationError):
            lifecycle.confirm_add_existing(page.id)

    def test_add_existing_requires_setting(self):
        """Test that the reference form needs allow_existing."""
        lifecycle = self.make()
        with pytest.raises(InvalidTransition):
            lifecycle.open_add_existing()

    def test_confirm_without_open_row(self):
        """Test that confirming the wrong mode raises InvalidTransition."""
        lifecycle = self.make()
        with pytest.raises(InvalidTransition):
            lifecycle.confirm_add()
        lifecycle.open_edit(0)
        with pytest.raises(InvalidTransition):
            lifecycle.confirm_remove()

    def test_cancel_is_idempotent(self):
        """Test that cancel can be called repeatedly."""
        lifecycle = self.make()
        lifecycle.open_add()
        assert lifecycle.cancel() is True
        assert lifecycle.cancel() is False
        assert lifecycle.state() == CLOSED

    def test_closing_discards_nested_entries(self):
        """Test that nested instances of a closed sub-form are dropped."""
        lifecycle = self.make()
        lifecycle.open_add()
        nested_path = add_form_path(widget_path_of(lifecycle.entry)).child('items', 'form')
        self.registry.ensure_entry('nested', nested_path, lifecycle.settings)

        lifecycle.cancel()

        assert self.registry.entry('nested') is None
        assert self.registry.entry(lifecycle.form_id) is not None

    def test_open_form_path(self):
        """Test the path of the open sub-form."""
        lifecycle = self.make()
        widget_path = widget_path_of(lifecycle.entry)
        assert open_form_path(lifecycle.entry) is None
        lifecycle.open_edit(0)
        assert open_form_path(lifecycle.entry) == row_form_path(widget_path, 0)

    def test_at_most_one_open_row(self):
        """Test that random transition sequences never open two rows."""
        rng = random.Random(7)
        lifecycle = self.make(allow_existing=True)
        for _ in range(3):
            lifecycle.open_add()
            lifecycle.confirm_add()

        for _ in range(200):
            keys = list(lifecycle.entry.entities)
            action = rng.choice(['add', 'edit', 'remove', 'cancel', 'confirm'])
            try:
                if action == 'add':
                    lifecycle.open_add()
                elif action == 'edit' and keys:
                    lifecycle.open_edit(rng.choice(keys))
                elif action == 'remove' and keys:
                    lifecycle.open_remove(rng.choice(keys))
                elif action == 'cancel':
                    lifecycle.cancel()
                elif action == 'confirm' and lifecycle.entry.open_row is not None:
                    mode = lifecycle.entry.open_row.mode
                    if mode == RowMode.ADD:
                        lifecycle.confirm_add()
                    elif mode == RowMode.EDIT:
                        lifecycle.confirm_edit()
                    elif mode == RowMode.REMOVE:
                        lifecycle.confirm_remove(False)
            except (InvalidTransition, AccessDenied):
                pass

            open_rows = [key for key in lifecycle.entry.entities if lifecycle.state(key) != CLOSED]
            assert len(open_rows) <= 1

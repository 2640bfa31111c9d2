"""
Embedded-forms widgets.

MultipleValueWidget renders a table of child records with one shared add
form and per-row edit/remove forms. SimpleWidget renders one always-open
sub-form per delta. Both build plain form tree nodes; the control handlers
and commit callbacks below are attached to those nodes and receive a
FormContext when they run.
"""

import logging
import math
from copy import deepcopy
from typing import Dict, List, Optional

from .exceptions import ValidationError
from .identity import single_identity_path, widget_identity_path
from .lifecycle import RowLifecycle
from .records import LABEL_FIELDS, Record, RecordRef
from .reconcile import WeightReconciler
from .registry import NestedReferences, OpenRow, RegistryEntry, RowMode, RowState
from .settings import WidgetSettings, labels as settings_labels
from .tree import (Container, Control, EmbeddedForm, Leaf, collect_values,
                   find_node, widget_roots)

logger = logging.getLogger(__name__)

MULTIPLE = 'multiple'
SIMPLE = 'simple'

DEFAULT_WEIGHT_DELTA = 50


def control_name(action: str, form_id: str, row_key: Optional[int] = None) -> str:
    """
    Unique control name for an embedded-forms action.

    Row level actions append the row key.
    """
    patterns = {
        'add': 'ief-{id}-add',
        'add_existing': 'ief-{id}-add-existing',
        'entity_edit': 'ief-{id}-entity-edit-{row}',
        'entity_remove': 'ief-{id}-entity-remove-{row}',
        'add_save': 'ief-add-submit-{id}',
        'add_cancel': 'ief-add-cancel-{id}',
        'edit_save': 'ief-edit-submit-{id}-{row}',
        'edit_cancel': 'ief-edit-cancel-{id}-{row}',
        'remove_confirm': 'ief-remove-confirm-{id}-{row}',
        'remove_cancel': 'ief-remove-cancel-{id}-{row}',
        'reference_save': 'ief-reference-submit-{id}',
        'reference_cancel': 'ief-reference-cancel-{id}',
    }
    return patterns[action].format(id=form_id, row=row_key)


def weight_delta(count: int, minimum: int = DEFAULT_WEIGHT_DELTA) -> int:
    return max(int(math.ceil(count * 1.2)), minimum)


def restore_nested(entry: RegistryEntry, nested: NestedReferences):
    """Re-seed a fresh entry from references folded into a draft."""
    for row in nested.ordered_rows():
        entry.add_row(deepcopy(row.record), weight=row.weight, needs_save=row.needs_save)
    for record_id in nested.pending_deletions:
        entry.add_pending_deletion(record_id)


def fold_nested_widgets(form: EmbeddedForm, record: Record, context) -> List[str]:
    """
    Store the state of every embedded-forms instance directly inside
    ``form`` on ``record`` and drop their registry entries.

    Returns:
        Field names that were folded
    """
    folded = []
    for root in widget_roots(form, top_level_only=True):
        if root is form or root.attributes.get('widget') != MULTIPLE:
            continue
        entry = context.registry.entry(root.form_id)
        if entry is None:
            continue
        record.fields[root.field_name] = NestedReferences(
            kind=entry.settings.target_type,
            rows=[deepcopy(row) for row in entry.ordered_rows()],
            pending_deletions=list(entry.pending_deletions)
        )
        context.registry.discard(root.form_id)
        folded.append(root.field_name)
    return folded


def required_error(root: EmbeddedForm, entry: RegistryEntry) -> Optional[ValidationError]:
    """Error for a required instance that has no rows and no open form."""
    if not entry.settings.required:
        return None
    if entry.row_count() or entry.has_open_form():
        return None
    message = f"{root.title or root.field_name} field is required."
    root.errors.append(message)
    return ValidationError(message, form_id=entry.form_id, field_name=root.field_name,
                           element_path=str(root.path))


def validate_subform(node: EmbeddedForm, record: Record, context) -> Optional[ValidationError]:
    """Validate the entity values of an open sub-form against its bundle schema."""
    handler = context.handler(node.record_kind)
    messages = handler.entity_form_validate(node, record)
    if not messages:
        return None
    node.errors.extend(messages)
    return ValidationError('; '.join(messages), form_id=node.form_id, field_name=node.field_name,
                           element_path=str(node.path),
                           errors=[ValidationError(message, form_id=node.form_id,
                                                   field_name=node.field_name,
                                                   element_path=str(node.path))
                                   for message in messages])


# Control handlers. Signature: handler(control, context)

def open_form(control: Control, context):
    lifecycle = context.lifecycle(control.form_id)
    if control.attributes.get('open') == RowMode.ADD_EXISTING.value:
        lifecycle.open_add_existing()
        return
    bundle_input = find_node(context.tree, control.path.parent.child('bundle'))
    bundle = bundle_input.value if isinstance(bundle_input, Leaf) else None
    lifecycle.open_add(bundle)


def open_row_form(control: Control, context):
    lifecycle = context.lifecycle(control.form_id)
    if control.attributes.get('open') == RowMode.REMOVE.value:
        lifecycle.open_remove(control.row_key)
    else:
        lifecycle.open_edit(control.row_key)


def trigger_commit(control: Control, context):
    context.orchestrator.delegator.delegate(context.tree, control, context)


def close_child_forms(control: Control, context):
    """Close open sub-forms of instances nested in the control's scope."""
    scope = context.orchestrator.delegator.scope_for(context.tree, control)
    for root in widget_roots(scope):
        if root.form_id == control.form_id or root.form_id is None:
            continue
        if context.registry.entry(root.form_id) is not None:
            context.lifecycle(root.form_id).cancel()


def cancel_form(control: Control, context):
    context.lifecycle(control.form_id).cancel()


def confirm_remove(control: Control, context):
    checkbox = find_node(context.tree, control.path.parent.parent.child('delete'))
    delete_record = bool(checkbox.value) if isinstance(checkbox, Leaf) and checkbox.access else None
    context.lifecycle(control.form_id).confirm_remove(delete_record)


def save_reference(control: Control, context):
    entity_input = find_node(context.tree, control.path.parent.parent.child('entity_id'))
    value = entity_input.value if isinstance(entity_input, Leaf) else None
    if value in (None, ''):
        message = 'Select a record to add.'
        if isinstance(entity_input, Leaf):
            entity_input.errors.append(message)
        raise ValidationError(message, form_id=control.form_id, element_path='entity_id')
    context.lifecycle(control.form_id).confirm_add_existing(value)


# Commit callbacks. Signature: callback(node, context)

def update_row_weights(node: EmbeddedForm, context):
    """Copy submitted row weights of a multiple-value instance into its entry."""
    entry = context.registry.entry(node.form_id)
    rows = node.get('entities')
    if entry is None or not isinstance(rows, Container):
        return
    for row_node in rows.items:
        delta = row_node.get('delta') if isinstance(row_node, Container) else None
        row = entry.row(int(row_node.key))
        if row is None or not isinstance(delta, Leaf) or delta.value in (None, ''):
            continue
        row.weight = int(delta.value)


def save_row_entity(node: EmbeddedForm, context):
    """
    Commit callback of an add/edit sub-form.

    Validates the entity values, copies them onto the draft, folds nested
    instances into it, then confirms the add or edit. Runs once per open
    sub-form: a sub-form that is no longer open is left alone.
    """
    entry = context.registry.entry(node.form_id)
    if entry is None or entry.open_row is None:
        return
    open_row = entry.open_row
    expected = RowMode.ADD if node.op == 'add' else RowMode.EDIT
    if open_row.mode != expected or (expected == RowMode.EDIT and open_row.row_key != node.row_key):
        return

    draft = open_row.draft
    error = validate_subform(node, draft, context)
    if error is not None:
        raise error
    for root in widget_roots(node, top_level_only=True):
        nested_entry = context.registry.entry(root.form_id)
        if nested_entry is not None:
            nested_error = required_error(root, nested_entry)
            if nested_error is not None:
                raise nested_error

    context.handler(node.record_kind).entity_form_submit(node, draft)
    fold_nested_widgets(node, draft, context)

    lifecycle = context.lifecycle(node.form_id)
    if expected == RowMode.ADD:
        lifecycle.confirm_add(draft)
    else:
        lifecycle.confirm_edit(draft)


def save_single_entity(node: EmbeddedForm, context):
    """
    Commit callback of a simple widget delta.

    An untouched empty delta is skipped. Edits are only marked for saving
    when a value changed.
    """
    entry = context.registry.entry(node.form_id)
    if entry is None or entry.open_row is None or entry.open_row.draft is None:
        return
    open_row = entry.open_row
    draft = open_row.draft
    values = collect_values(node)

    if open_row.mode == RowMode.ADD and not any(value not in (None, '', False) for value in values.values()):
        return

    error = validate_subform(node, draft, context)
    if error is not None:
        raise error

    handler = context.handler(node.record_kind)
    handler.entity_form_submit(node, draft)
    fold_nested_widgets(node, draft, context)

    lifecycle = context.lifecycle(node.form_id)
    if open_row.mode == RowMode.ADD:
        lifecycle.confirm_add(draft)
        return

    row = entry.row(open_row.row_key)
    if row is not None and draft.fields != row.record.fields:
        lifecycle.confirm_edit(draft)
    else:
        lifecycle.cancel()


class MultipleValueWidget:
    """Table of child records with add, edit and remove sub-forms."""

    widget_type = MULTIPLE

    def __init__(self, orchestrator):
        self.orchestrator = orchestrator

    def build(self, parent: Container, field_name: str, settings: WidgetSettings,
              seed: List[Record], context, weight: float = 0, title: str = '',
              nested: Optional[NestedReferences] = None,
              parent_record: Optional[Record] = None) -> EmbeddedForm:
        registry = context.registry
        path = widget_identity_path(parent.path.segments, field_name)
        form_id = registry.identity.allocate(path)

        entry = registry.entry(form_id)
        if entry is None:
            entry = registry.ensure_entry(form_id, path, settings,
                                          seed=[] if nested is not None else seed,
                                          field_name=field_name)
            if nested is not None:
                restore_nested(entry, nested)
        else:
            entry.settings = settings

        handler = context.handler(settings.target_type)
        names = settings_labels(settings, handler)
        lifecycle = context.lifecycle(form_id)
        self._maybe_auto_open(entry, lifecycle, parent_record)

        root = parent.add(EmbeddedForm(
            key=field_name,
            title=title or names['plural'].capitalize(),
            weight=weight,
            form_id=form_id,
            field_name=field_name,
            record_kind=settings.target_type,
            is_root=True,
            wrapper_id=f"inline-entity-form-{form_id}",
            attributes={'widget': MULTIPLE, 'labels': names, 'required': settings.required}
        ))
        root.add_commit_callback(update_row_weights)

        if not entry.entities and entry.open_row is not None:
            # Avoid two titles when the only thing shown is the add form.
            root.kind = 'container'

        self._build_rows(root, entry, handler, names, lifecycle, context)

        count = entry.row_count()
        if not settings.unlimited and settings.cardinality > 1:
            root.add(Leaf(
                key='cardinality_count',
                widget='markup',
                weight=90,
                value=(f"You have added {count} out of {settings.cardinality} "
                       f"allowed {names['plural']}.")
            ))

        if not lifecycle.can_add():
            return root

        open_row = entry.open_row
        if open_row is None or open_row.mode in (RowMode.EDIT, RowMode.REMOVE):
            self._build_actions(root, entry, handler, names)
        elif open_row.mode == RowMode.ADD:
            hide_cancel = (not settings.allow_existing and settings.required
                           and not entry.entities and len(settings.allowed_bundles) == 1)
            wrapper = root.add(Container(key='form', kind='fieldset', weight=100))
            self.build_entity_form(wrapper, 'add', entry, open_row.draft, names, context,
                                   hide_cancel=hide_cancel)
        else:
            self._build_reference_form(root, entry, names)

        return root

    def _maybe_auto_open(self, entry: RegistryEntry, lifecycle: RowLifecycle,
                         parent_record: Optional[Record]):
        settings = entry.settings
        if not settings.auto_open_add or entry.entities or entry.has_open_form():
            return
        if len(settings.allowed_bundles) != 1 or not settings.required or settings.allow_existing:
            return
        bundle = settings.allowed_bundles[0]
        if (parent_record is not None and parent_record.kind == settings.target_type
                and parent_record.bundle == bundle):
            # Never auto-open a child of the parent's own kind and bundle.
            return
        lifecycle.open_add(bundle, auto_opened=True)

    def _build_rows(self, root: EmbeddedForm, entry: RegistryEntry, handler, names: Dict[str, str],
                    lifecycle: RowLifecycle, context):
        table_fields = handler.table_fields(entry.settings.allowed_bundles)
        rows = root.add(Container(key='entities', kind='table',
                                  attributes={'table_fields': table_fields}))
        delta = weight_delta(entry.row_count(), self.orchestrator.weight_delta_min)
        open_row = entry.open_row

        for row in entry.ordered_rows():
            record = row.record
            row_node = rows.add(Container(
                key=str(row.key),
                weight=row.weight,
                kind='row',
                attributes={
                    'record_id': record.id,
                    'needs_save': row.needs_save,
                    'cells': {column: handler.cell_value(record, column, definition)
                              for column, definition in table_fields.items()}
                }
            ))
            row_node.add(Leaf(key='title', widget='markup', value=record.label()))

            row_open = open_row is not None and open_row.row_key == row.key
            if row_open:
                row_node.add(Leaf(key='delta', widget='value', value=row.weight))
                wrapper = row_node.add(Container(key='form', kind='container'))
                if open_row.mode == RowMode.EDIT:
                    self.build_entity_form(wrapper, 'edit', entry, open_row.draft, names, context,
                                           row_key=row.key)
                else:
                    self._build_remove_form(wrapper, entry, row, names, lifecycle)
                continue

            row_node.add(Leaf(key='delta', widget='weight', value=row.weight,
                              attributes={'delta': delta}))
            actions = row_node.add(Container(key='actions', kind='actions'))
            if lifecycle.can_edit(record):
                actions.add(Control(
                    key='ief_entity_edit', title='Edit',
                    name_override=control_name('entity_edit', entry.form_id, row.key),
                    handlers=[open_row_form], form_id=entry.form_id, row_key=row.key,
                    wrapper=root.wrapper_id, attributes={'open': RowMode.EDIT.value}
                ))
            if lifecycle.can_remove(record):
                actions.add(Control(
                    key='ief_entity_remove', title='Remove',
                    name_override=control_name('entity_remove', entry.form_id, row.key),
                    handlers=[open_row_form], form_id=entry.form_id, row_key=row.key,
                    wrapper=root.wrapper_id, attributes={'open': RowMode.REMOVE.value}
                ))

    def _build_actions(self, root: EmbeddedForm, entry: RegistryEntry, handler, names: Dict[str, str]):
        settings = entry.settings
        actions = root.add(Container(key='actions', kind='actions', weight=100))
        bundles = settings.allowed_bundles
        if bundles:
            if len(bundles) > 1:
                actions.add(Leaf(key='bundle', title='Type', widget='select', value=bundles[0],
                                 options=list(bundles),
                                 attributes={'option_labels': {bundle: handler.bundle_label(bundle)
                                                               for bundle in bundles}}))
            else:
                actions.add(Leaf(key='bundle', widget='value', value=bundles[0]))
            actions.add(Control(
                key='ief_add', title=f"Add new {names['singular']}",
                name_override=control_name('add', entry.form_id),
                handlers=[open_form], form_id=entry.form_id, wrapper=root.wrapper_id,
                attributes={'open': RowMode.ADD.value}
            ))
        if settings.allow_existing:
            actions.add(Control(
                key='ief_add_existing', title=f"Add existing {names['singular']}",
                name_override=control_name('add_existing', entry.form_id),
                handlers=[open_form], form_id=entry.form_id, wrapper=root.wrapper_id,
                attributes={'open': RowMode.ADD_EXISTING.value}
            ))

    def build_entity_form(self, wrapper: Container, op: str, entry: RegistryEntry, draft: Record,
                          names: Dict[str, str], context, row_key: Optional[int] = None,
                          hide_cancel: bool = False) -> EmbeddedForm:
        """Sub-form holding the entity inputs of one child record, plus its actions."""
        form = wrapper.add(EmbeddedForm(
            key='inline_entity_form',
            kind='container',
            op=op,
            form_id=entry.form_id,
            row_key=row_key,
            field_name=entry.field_name,
            record_kind=draft.kind,
            bundle=draft.bundle,
            attributes={'labels': names}
        ))
        context.handler(draft.kind).entity_form(form, draft, context)
        form.add_commit_callback(save_row_entity)

        wrapper_id = f"inline-entity-form-{entry.form_id}"
        actions = form.add(Container(key='actions', kind='actions', weight=100))
        save_title = f"Create {names['singular']}" if op == 'add' else f"Update {names['singular']}"
        actions.add(Control(
            key=f"ief_{op}_save", title=save_title,
            name_override=control_name(f"{op}_save", entry.form_id, row_key),
            handlers=[trigger_commit, close_child_forms],
            form_id=entry.form_id, row_key=row_key, wrapper=wrapper_id
        ))
        actions.add(Control(
            key=f"ief_{op}_cancel", title='Cancel', access=not hide_cancel,
            name_override=control_name(f"{op}_cancel", entry.form_id, row_key),
            handlers=[close_child_forms, cancel_form],
            form_id=entry.form_id, row_key=row_key, wrapper=wrapper_id
        ))
        return form

    def _build_remove_form(self, wrapper: Container, entry: RegistryEntry, row: RowState,
                           names: Dict[str, str], lifecycle: RowLifecycle):
        record = row.record
        label = next((str(record.fields[name]) for name in LABEL_FIELDS if record.fields.get(name)), '')
        if label:
            message = f"Are you sure you want to remove {label}?"
        else:
            message = f"Are you sure you want to remove this {names['singular']}?"
        wrapper.add(Leaf(key='message', widget='markup', value=message))

        if lifecycle.can_delete_from_system(record):
            wrapper.add(Leaf(key='delete', widget='checkbox',
                             title=f"Delete this {names['singular']} from the system.",
                             value=entry.settings.delete_referenced_on_removal))

        wrapper_id = f"inline-entity-form-{entry.form_id}"
        actions = wrapper.add(Container(key='actions', kind='actions', weight=100))
        actions.add(Control(
            key='ief_remove_confirm', title='Remove',
            name_override=control_name('remove_confirm', entry.form_id, row.key),
            handlers=[confirm_remove], form_id=entry.form_id, row_key=row.key, wrapper=wrapper_id
        ))
        actions.add(Control(
            key='ief_remove_cancel', title='Cancel',
            name_override=control_name('remove_cancel', entry.form_id, row.key),
            handlers=[cancel_form], form_id=entry.form_id, row_key=row.key, wrapper=wrapper_id
        ))

    def _build_reference_form(self, root: EmbeddedForm, entry: RegistryEntry, names: Dict[str, str]):
        settings = entry.settings
        wrapper = root.add(Container(key='form', kind='fieldset', weight=100,
                                     attributes={'match_operator': settings.match_operator}))
        wrapper.add(Leaf(key='entity_id', widget='text', required=True,
                         title=f"{names['singular'].capitalize()}",
                         help=f"Id of the existing {names['singular']} to add."))
        actions = wrapper.add(Container(key='actions', kind='actions', weight=100))
        actions.add(Control(
            key='ief_reference_save', title=f"Add {names['singular']}",
            name_override=control_name('reference_save', entry.form_id),
            handlers=[save_reference], form_id=entry.form_id, wrapper=root.wrapper_id
        ))
        actions.add(Control(
            key='ief_reference_cancel', title='Cancel',
            name_override=control_name('reference_cancel', entry.form_id),
            handlers=[cancel_form], form_id=entry.form_id, wrapper=root.wrapper_id
        ))

    def validate(self, root: EmbeddedForm, context) -> List[ValidationError]:
        entry = context.registry.entry(root.form_id)
        if entry is None:
            return []
        error = required_error(root, entry)
        return [error] if error is not None else []

    def finalize(self, root: EmbeddedForm, context,
                 reconciler: WeightReconciler) -> List[RecordRef]:
        entry = context.registry.entry(root.form_id)
        if entry is None:
            return []
        return reconciler.reconcile(entry, field_name=root.field_name)


class SimpleWidget:
    """One always-open sub-form per delta, reordered with ``_weight`` inputs."""

    widget_type = SIMPLE

    def __init__(self, orchestrator):
        self.orchestrator = orchestrator

    def build(self, parent: Container, field_name: str, settings: WidgetSettings,
              seed: List[Record], context, weight: float = 0, title: str = '',
              nested: Optional[NestedReferences] = None,
              parent_record: Optional[Record] = None) -> EmbeddedForm:
        handler = context.handler(settings.target_type)
        names = settings_labels(settings, handler)
        root = parent.add(EmbeddedForm(
            key=field_name,
            title=title or names['plural'].capitalize(),
            weight=weight,
            field_name=field_name,
            record_kind=settings.target_type,
            is_root=True,
            attributes={'widget': SIMPLE, 'labels': names, 'required': settings.required,
                        'form_ids': []}
        ))
        if nested is not None:
            seed = [row.record for row in nested.ordered_rows()]

        deltas = len(seed)
        if settings.allows_more(deltas) or deltas == 0:
            deltas += 1
        delta_range = weight_delta(deltas, self.orchestrator.weight_delta_min)

        for delta in range(deltas):
            record = seed[delta] if delta < len(seed) else None
            self._build_delta(root, field_name, delta, record, settings, handler, names,
                              context, delta_range, show_weight=deltas > 1)
        return root

    def _build_delta(self, root: EmbeddedForm, field_name: str, delta: int,
                     record: Optional[Record], settings: WidgetSettings, handler,
                     names: Dict[str, str], context, delta_range: int, show_weight: bool):
        registry = context.registry
        path = single_identity_path(root.path.parent.segments, field_name, delta)
        form_id = registry.identity.allocate(path)
        entry = registry.ensure_entry(form_id, path, settings,
                                      seed=[record] if record is not None else [],
                                      field_name=field_name)
        root.attributes['form_ids'].append(form_id)

        item = root.add(Container(key=str(delta), weight=delta, kind='item'))
        if show_weight:
            item.add(Leaf(key='_weight', widget='weight', value=delta, title='Weight',
                          attributes={'delta': delta_range}))

        rows = entry.ordered_rows()
        if rows:
            row = rows[0]
            if not (row.record.is_new() or context.store.check_access(row.record, 'update')):
                item.add(Leaf(key='label', widget='markup', value=row.record.label()))
                return
            if entry.open_row is None:
                entry.open_row = OpenRow(mode=RowMode.EDIT, row_key=row.key,
                                         bundle=row.record.bundle, draft=deepcopy(row.record))
            op = 'edit'
            row_key = row.key
        else:
            if entry.open_row is None:
                bundle = settings.allowed_bundles[0]
                entry.open_row = OpenRow(mode=RowMode.ADD, bundle=bundle,
                                         draft=context.store.create(settings.target_type, bundle))
            op = 'add'
            row_key = None

        draft = entry.open_row.draft
        form = item.add(EmbeddedForm(
            key='inline_entity_form',
            kind='container',
            op=op,
            form_id=form_id,
            row_key=row_key,
            field_name=field_name,
            record_kind=draft.kind,
            bundle=draft.bundle,
            attributes={'labels': names, 'delta': delta}
        ))
        handler.entity_form(form, draft, context)
        form.add_commit_callback(save_single_entity)

    def validate(self, root: EmbeddedForm, context) -> List[ValidationError]:
        if not root.attributes.get('required'):
            return []
        for form_id in root.attributes.get('form_ids', []):
            entry = context.registry.entry(form_id)
            if entry is not None and entry.row_count():
                return []
        for node in root.walk():
            if isinstance(node, EmbeddedForm) and node.op == 'add':
                if any(value not in (None, '', False) for value in collect_values(node).values()):
                    return []
        message = f"{root.title or root.field_name} field is required."
        root.errors.append(message)
        return [ValidationError(message, field_name=root.field_name, element_path=str(root.path))]

    def finalize(self, root: EmbeddedForm, context,
                 reconciler: WeightReconciler) -> List[RecordRef]:
        """Reconcile every delta, ordered by the submitted ``_weight`` values."""
        items = []
        for position, item in enumerate(root.items):
            if not isinstance(item, Container):
                continue
            weight = int(item.key)
            weight_input = item.get('_weight')
            if isinstance(weight_input, Leaf) and weight_input.value not in (None, ''):
                weight = int(weight_input.value)
            items.append((weight, position, item))

        refs = []
        form_ids = root.attributes.get('form_ids', [])
        for weight, position, item in sorted(items, key=lambda value: (value[0], value[1])):
            delta = int(item.key)
            if delta >= len(form_ids):
                continue
            entry = context.registry.entry(form_ids[delta])
            if entry is None:
                continue
            for ref in reconciler.reconcile(entry, field_name=root.field_name):
                refs.append(RecordRef(record_id=ref.record_id, weight=weight,
                                      field_name=root.field_name, record=ref.record))
        return refs

"""
Embedded form orchestrator.

Transport boundary of the package. A host builds the parent form with
``build_form``, forwards every button click to ``handle_interaction``
(which returns the rebuilt tree and the new registry snapshot) and calls
``finalize`` when the parent form itself is submitted. Every call works on
a registry rebuilt from the caller's snapshot, so a failed call never
corrupts the caller's state.
"""

import logging
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .config_loader import get_config_value, get_default_config
from .context import FormContext
from .diff_utils import (calculate_registry_diff, changed_form_ids, format_diff_for_display,
                         get_change_summary, has_changes)
from .exceptions import AccessDenied, ConfigurationError, UnknownControl, ValidationError
from .fieldsets import FieldsetProjector
from .handlers import HandlerRegistry
from .reconcile import WeightReconciler
from .records import Record, RecordRef, RecordStore
from .registry import FormStateRegistry, NestedReferences
from .settings import WidgetSettings, resolve_settings
from .submit import SubmitDelegator
from .tree import (Container, Control, EmbeddedForm, FormNode, Leaf, apply_values,
                   collect_values, embedded_forms, find_control, find_widget_root,
                   input_values, widget_roots)
from .widgets import MULTIPLE, SIMPLE, MultipleValueWidget, SimpleWidget, update_row_weights, validate_subform

logger = logging.getLogger(__name__)

SUBMIT_CONTROL = 'op'


@dataclass
class FieldSpec:
    """An embedded-forms field of the parent form."""

    name: str
    settings: Any
    widget: str = MULTIPLE
    label: str = ''


def group_by_field(refs: List[RecordRef]) -> Dict[str, List[Any]]:
    """Ordered record ids per field, ready to store on the parent record."""
    grouped: Dict[str, List[Any]] = {}
    for ref in refs:
        grouped.setdefault(ref.field_name, []).append(ref.record_id)
    return grouped


class EmbeddedFormOrchestrator:
    """Builds, updates and commits parent forms with embedded child forms."""

    def __init__(self, store: RecordStore, handlers: HandlerRegistry,
                 config: Optional[Dict[str, Any]] = None):
        self.store = store
        self.handlers = handlers
        self.config = config or get_default_config()
        self.detect_collisions = bool(get_config_value(self.config, 'identity', 'detect_collisions', True))
        self.weight_delta_min = int(get_config_value(self.config, 'widget', 'weight_delta_min', 50))
        self.delegator = SubmitDelegator()
        self.projector = FieldsetProjector()
        self.widgets = {
            MULTIPLE: MultipleValueWidget(self),
            SIMPLE: SimpleWidget(self),
        }

    def new_registry(self, snapshot: Optional[Dict[str, Any]] = None) -> FormStateRegistry:
        return FormStateRegistry.from_snapshot(snapshot, detect_collisions=self.detect_collisions)

    def _context(self, registry: FormStateRegistry, parent: Optional[Record],
                 values: Optional[Dict[str, Any]] = None) -> FormContext:
        return FormContext(registry=registry, store=self.store, handlers=self.handlers,
                           orchestrator=self, config=self.config, values=dict(values or {}),
                           parent=parent)

    # Building

    def build_form(self, parent: Record, fields: List[FieldSpec], registry: FormStateRegistry,
                   values: Optional[Dict[str, Any]] = None,
                   context: Optional[FormContext] = None) -> Container:
        """
        Build the parent form tree.

        Registry entries are created and seeded lazily from the parent's
        reference fields. A field whose settings cannot be resolved renders
        as an error marker; the error is recorded in ``attributes['errors']``
        of the returned root.

        Args:
            parent: Parent record being edited
            fields: Embedded-forms fields of the parent form
            registry: Registry for this editing session
            values: Submitted input values to show in the rebuilt form

        Returns:
            Form tree root
        """
        context = context or self._context(registry, parent, values)
        registry.identity.reset()
        root = Container(key='', kind='form', attributes={
            'parent': parent, 'fields': list(fields), 'errors': [], 'refresh': []
        })
        context.tree = root

        for weight, spec in enumerate(fields):
            try:
                settings = resolve_settings(spec.settings, self.store, spec.name)
                seed = self._load_references(settings, parent.fields.get(spec.name))
                widget = self.widget_for(spec.widget)
                widget.build(root, spec.name, settings, seed, context, weight=weight,
                             title=spec.label, parent_record=parent)
            except ConfigurationError as e:
                self._error_marker(root, spec.name, e, weight)

        actions = root.add(Container(key='actions', kind='actions', weight=1000))
        actions.add(Control(key='submit', title='Save', name_override=SUBMIT_CONTROL,
                            applies_to_tree=True))
        apply_values(root, values)
        return root

    def build_nested_widget(self, form: EmbeddedForm, name: str, field_config: Dict[str, Any],
                            record: Record, context: FormContext, weight: float = 0):
        """Build an embedded-forms instance for a reference field inside a sub-form."""
        try:
            settings = resolve_settings(field_config.get('settings') or {}, self.store, name)
            current = record.fields.get(name)
            nested = current if isinstance(current, NestedReferences) else None
            seed = [] if nested is not None else self._load_references(settings, current)
            self.widgets[MULTIPLE].build(form, name, settings, seed, context, weight=weight,
                                         title=field_config.get('label', ''), nested=nested,
                                         parent_record=record)
        except ConfigurationError as e:
            self._error_marker(form, name, e, weight)

    def widget_for(self, widget_type: str):
        widget = self.widgets.get(widget_type)
        if widget is None:
            raise ConfigurationError(f"Unknown widget type '{widget_type}'")
        return widget

    def _load_references(self, settings: WidgetSettings, value: Any) -> List[Record]:
        records = []
        for record_id in value or []:
            if isinstance(record_id, Record):
                records.append(record_id)
                continue
            record = self.store.load(settings.target_type, record_id)
            if record is None:
                logger.warning(f"Referenced {settings.target_type} {record_id} no longer exists")
                continue
            records.append(record)
        return records

    def _error_marker(self, container: Container, name: str, error: ConfigurationError, weight: float):
        logger.error(f"Cannot build embedded forms for '{name}': {error}")
        container.add(Leaf(key=name, widget='markup', weight=weight,
                           value=f"This field cannot be edited: {error.message}",
                           attributes={'error': True, 'details': error.get_full_details()}))
        root_errors = container.attributes.setdefault('errors', [])
        root_errors.append(error.message)

    # Interactions

    def handle_interaction(self, control_name: str, tree: Container,
                           registry_snapshot: Optional[Dict[str, Any]],
                           values: Optional[Dict[str, Any]] = None) -> Tuple[Container, Dict[str, Any]]:
        """
        Run a control and rebuild the form.

        A ValidationError keeps the registry as it was and is reported on
        the returned tree (``attributes['errors']`` of the root and
        ``errors`` of the affected embedded form).

        Returns:
            (rebuilt tree, new registry snapshot)
        """
        registry = self.new_registry(registry_snapshot)
        before = registry.describe()
        working = deepcopy(tree)
        apply_values(working, values)
        parent = working.attributes.get('parent')
        context = self._context(registry, parent, values)
        context.tree = working

        control = find_control(working, control_name)
        if control is None:
            raise UnknownControl(control_name)
        if not control.access:
            raise AccessDenied('trigger', message=f"Control '{control_name}' is not available")
        context.control = control

        self.sync_weights(working, context)
        errors: List[str] = []
        try:
            for handler in control.handlers:
                handler(control, context)
        except ValidationError as e:
            logger.info(f"Validation failed for '{control_name}': {e.messages}")
            registry = self.new_registry(registry_snapshot)
            context.registry = registry
            errors = e.messages
            if e.form_id:
                context.request_rebuild(e.form_id)

        rebuilt = self.build_form(parent, working.attributes.get('fields', []), registry,
                                  input_values(working), context)
        if errors:
            self._attach_errors(rebuilt, errors, control)

        diff = calculate_registry_diff(before, registry.describe())
        rebuilt.attributes['unsaved_changes'] = bool(
            tree.attributes.get('unsaved_changes')) or has_changes(diff)
        rebuilt.attributes['changes'] = format_diff_for_display(diff)
        rebuilt.attributes['refresh'] = self._refresh_targets(rebuilt, context, control, diff)
        logger.info(f"Handled '{control_name}': {get_change_summary(diff)}")
        return rebuilt, registry.snapshot()

    def sync_weights(self, tree: FormNode, context: FormContext):
        """Keep row weights from the submitted inputs across rebuilds."""
        for root in widget_roots(tree):
            if root.attributes.get('widget') == MULTIPLE:
                update_row_weights(root, context)

    def _attach_errors(self, tree: Container, errors: List[str], control: Control):
        tree.attributes.setdefault('errors', []).extend(errors)
        root = find_widget_root(tree, control.form_id) if control.form_id else None
        if root is not None:
            root.errors.extend(errors)

    def _refresh_targets(self, tree: Container, context: FormContext, control: Control,
                         diff: Dict[str, Any]) -> List[str]:
        """Wrappers of the instances a handler asked to rebuild or whose state changed."""
        targets = []
        for form_id in list(context.rebuild_targets) + changed_form_ids(diff):
            root = find_widget_root(tree, form_id)
            if root is not None and root.wrapper_id not in targets:
                targets.append(root.wrapper_id)
        if not targets and control.wrapper:
            targets.append(control.wrapper)
        return targets

    def refreshed_subtree(self, tree: Container, form_id: str) -> Optional[EmbeddedForm]:
        """Subtree to send back for a partial refresh of one instance."""
        return find_widget_root(tree, form_id)

    # Validation and commit

    def validate(self, tree: FormNode, registry: FormStateRegistry,
                 context: Optional[FormContext] = None) -> List[ValidationError]:
        """
        Validate every embedded-forms instance and every open sub-form.

        Errors are collected, not raised, so one failing instance does not
        hide the errors of its siblings.
        """
        context = context or self._context(registry, tree.attributes.get('parent'))
        errors: List[ValidationError] = []
        for root in widget_roots(tree):
            widget = self.widgets.get(root.attributes.get('widget'))
            if widget is not None:
                errors.extend(widget.validate(root, context))

        for node in embedded_forms(tree):
            if node.is_root or node.op not in ('add', 'edit'):
                continue
            if 'delta' in node.attributes and node.op == 'add' and not any(
                    value not in (None, '', False) for value in collect_values(node).values()):
                continue
            entry = registry.entry(node.form_id)
            if entry is None or entry.open_row is None or entry.open_row.draft is None:
                continue
            error = validate_subform(node, entry.open_row.draft, context)
            if error is not None:
                errors.append(error)
        return errors

    def finalize(self, tree: Container, registry_snapshot: Optional[Dict[str, Any]],
                 values: Optional[Dict[str, Any]] = None) -> List[RecordRef]:
        """
        Commit the parent form.

        Validates, submits the whole tree bottom-up, then reconciles every
        top-level instance in document order inside one store transaction.

        Raises:
            ValidationError: Aggregate of every validation error; nothing is persisted
            PersistenceError: A store call failed; nothing is persisted

        Returns:
            RecordRefs of every field, each annotated with its field name
        """
        registry = self.new_registry(registry_snapshot)
        working = deepcopy(tree)
        apply_values(working, values)
        context = self._context(registry, working.attributes.get('parent'), values)
        context.tree = working
        self.sync_weights(working, context)

        errors = self.validate(working, registry, context)
        if errors:
            messages = [message for error in errors for message in error.messages]
            logger.warning(f"Form submission failed validation with {len(messages)} error(s)")
            raise ValidationError(f"{len(messages)} validation error(s): " + '; '.join(messages),
                                  errors=errors)

        control = find_control(working, SUBMIT_CONTROL) or Control(
            key='submit', name_override=SUBMIT_CONTROL, applies_to_tree=True)
        context.control = control
        self.delegator.delegate(working, control, context)

        reconciler = WeightReconciler(self.store)
        refs: List[RecordRef] = []
        with self.store.transaction():
            for root in widget_roots(working, top_level_only=True):
                widget = self.widgets.get(root.attributes.get('widget'))
                if widget is not None:
                    refs.extend(widget.finalize(root, context, reconciler))

        registry.clear()
        logger.info(f"Finalized form with {len(refs)} reference(s)")
        return refs

    def render(self, tree: FormNode) -> FormNode:
        """Display copy of the tree with fieldset moves applied."""
        return self.projector.project(tree)

"""
Inline form handlers.

A handler knows how to present one record kind inside an embedded form:
its labels, the columns of the row table, and how to build, validate and
submit the entity sub-form from the bundle field schema.
"""

import logging
from typing import Any, Dict, List, Optional

from .exceptions import ConfigurationError
from .model_builder import get_model_fields_info, is_reference_field, validate_form_values
from .records import Record
from .tree import EmbeddedForm, Leaf, collect_values

logger = logging.getLogger(__name__)

WIDGET_FOR_TYPE = {
    'string': 'text',
    'text': 'textarea',
    'integer': 'integer',
    'number': 'number',
    'float': 'number',
    'boolean': 'checkbox',
    'date': 'date',
    'enum': 'select',
}


class InlineFormHandler:
    """Default handler, driven by the bundle schemas of a record kind."""

    def __init__(self, kind: str, bundles: Dict[str, Dict[str, Any]],
                 label_singular: Optional[str] = None, label_plural: Optional[str] = None):
        self.kind = kind
        self.bundles = bundles or {}
        readable = kind.replace('_', ' ')
        self.label_singular = label_singular or readable
        self.label_plural = label_plural or f"{readable}s"

    def labels(self) -> Dict[str, str]:
        return {'singular': self.label_singular, 'plural': self.label_plural}

    def bundle_schema(self, bundle: str) -> Dict[str, Any]:
        schema = self.bundles.get(bundle)
        if schema is None:
            raise ConfigurationError(f"No schema for bundle '{bundle}' of '{self.kind}'",
                                     target_type=self.kind, bundle=bundle)
        return schema

    def bundle_label(self, bundle: str) -> str:
        return (self.bundles.get(bundle) or {}).get('label', bundle)

    def table_fields(self, bundles: List[str]) -> Dict[str, Dict[str, Any]]:
        """
        Columns of the row table.

        Args:
            bundles: Bundles allowed by the field

        Returns:
            Column name to {'type', 'label', 'weight'}
        """
        fields = {
            'label': {'type': 'label', 'label': 'Label', 'weight': 1}
        }
        if len(bundles) > 1:
            fields['bundle'] = {'type': 'bundle', 'label': 'Type', 'weight': 2}
        return fields

    def cell_value(self, record: Record, column: str, definition: Dict[str, Any]) -> Any:
        if definition.get('type') == 'label':
            return record.label()
        if definition.get('type') == 'bundle':
            return self.bundle_label(record.bundle)
        return record.fields.get(column)

    def entity_form(self, form: EmbeddedForm, record: Record, context: Any) -> EmbeddedForm:
        """Add the bundle's inputs to a sub-form. Reference fields become nested widgets."""
        schema = self.bundle_schema(record.bundle)
        info = get_model_fields_info(schema)

        for weight, (name, field_config) in enumerate((schema.get('fields') or {}).items()):
            if is_reference_field(field_config):
                if context is None or context.orchestrator is None:
                    continue
                context.orchestrator.build_nested_widget(form, name, field_config, record, context,
                                                         weight=weight)
                continue

            field_info = info[name]
            value = record.fields.get(name, field_info['default'])
            form.add(Leaf(
                key=name,
                title=field_info['label'],
                weight=weight,
                fieldset=field_config.get('fieldset'),
                widget=WIDGET_FOR_TYPE.get(field_info['type'], 'text'),
                value=value,
                options=field_info['choices'] or None,
                required=field_info['required'],
                help=field_info['help']
            ))
        return form

    def entity_form_validate(self, form: EmbeddedForm, record: Record) -> List[str]:
        schema = self.bundle_schema(record.bundle)
        model_name = f"{self.kind.title()}{record.bundle.title()}Form".replace('_', '')
        return validate_form_values(schema, collect_values(form), model_name)

    def entity_form_submit(self, form: EmbeddedForm, record: Record) -> Record:
        """Copy sub-form values onto the record."""
        schema = self.bundle_schema(record.bundle)
        fields = schema.get('fields') or {}
        for name, value in collect_values(form).items():
            if name in fields and not is_reference_field(fields[name]):
                record.fields[name] = value
        return record


class NodeFormHandler(InlineFormHandler):
    """Handler for content nodes: adds the publishing status column."""

    def __init__(self, kind: str, bundles: Dict[str, Dict[str, Any]],
                 label_singular: Optional[str] = None, label_plural: Optional[str] = None):
        super().__init__(kind, bundles, label_singular or 'node', label_plural or 'nodes')

    def table_fields(self, bundles: List[str]) -> Dict[str, Dict[str, Any]]:
        fields = super().table_fields(bundles)
        fields['status'] = {'type': 'status', 'label': 'Status', 'weight': 100}
        return fields

    def cell_value(self, record: Record, column: str, definition: Dict[str, Any]) -> Any:
        if definition.get('type') == 'status':
            return 'Published' if record.fields.get('status', True) else 'Unpublished'
        return super().cell_value(record, column, definition)


HANDLER_CLASSES = {
    'default': InlineFormHandler,
    'node': NodeFormHandler,
}


class HandlerRegistry:
    """Inline form handlers by record kind."""

    def __init__(self):
        self._handlers: Dict[str, InlineFormHandler] = {}

    def register(self, handler: InlineFormHandler) -> InlineFormHandler:
        self._handlers[handler.kind] = handler
        return handler

    def get(self, kind: str) -> InlineFormHandler:
        handler = self._handlers.get(kind)
        if handler is None:
            raise ConfigurationError(f"No inline form handler for record kind '{kind}'",
                                     target_type=kind)
        return handler

    def has(self, kind: str) -> bool:
        return kind in self._handlers

    def kinds(self) -> List[str]:
        return list(self._handlers)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'HandlerRegistry':
        """
        Build handlers for every configured record kind.

        A kind may pick its handler class with ``handler: node``.
        """
        registry = cls()
        for kind, definition in (config.get('record_kinds') or {}).items():
            definition = definition or {}
            handler_name = definition.get('handler', 'default')
            handler_class = HANDLER_CLASSES.get(handler_name)
            if handler_class is None:
                raise ConfigurationError(f"Unknown handler '{handler_name}' for record kind '{kind}'",
                                         target_type=kind)
            registry.register(handler_class(
                kind,
                definition.get('bundles') or {},
                definition.get('label_singular'),
                definition.get('label_plural')
            ))
        logger.info(f"Registered inline form handlers: {registry.kinds()}")
        return registry

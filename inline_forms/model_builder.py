"""
Dynamic Pydantic model builder for inline record forms.
Creates Pydantic models from bundle field schemas to validate sub-form values.
"""

from typing import Dict, Any, Type, List, Optional, Tuple
from datetime import date
from pydantic import BaseModel, ConfigDict, Field, field_validator, create_model, ValidationError
import re
import logging

logger = logging.getLogger(__name__)

# Field types that are edited through a nested embedded-forms instance
# rather than a scalar input.
REFERENCE_TYPES = ('reference',)


def create_model_from_schema(schema: Dict[str, Any], model_name: str = "DynamicModel") -> Type[BaseModel]:
    """
    Create a Pydantic model from a bundle schema definition.

    Reference fields are skipped; their values are validated by the nested
    embedded form that edits them.

    Args:
        schema: Schema dictionary containing field definitions
        model_name: Name for the generated model class

    Returns:
        Pydantic model class
    """
    if 'fields' not in schema:
        raise ValueError("Schema must contain 'fields' key")

    fields = schema['fields'] or {}
    model_fields = {}
    validators_dict = {}

    for field_name, field_config in fields.items():
        if is_reference_field(field_config):
            continue
        field_type, field_info = create_field_from_config(field_name, field_config)
        model_fields[field_name] = (field_type, field_info)
        validators_dict.update(create_validators_for_field(field_name, field_config))

    try:
        dynamic_model = create_model(
            model_name,
            __config__=ConfigDict(extra='ignore'),
            __validators__=validators_dict,
            **model_fields
        )
        logger.debug(f"Created dynamic model '{model_name}' with {len(model_fields)} fields")
        return dynamic_model

    except Exception as e:
        logger.error(f"Failed to create model '{model_name}': {e}")
        raise


def is_reference_field(field_config: Dict[str, Any]) -> bool:
    return isinstance(field_config, dict) and field_config.get('type') in REFERENCE_TYPES


def create_field_from_config(field_name: str, field_config: Dict[str, Any]) -> Tuple[Any, Any]:
    """
    Create a Pydantic field from schema field configuration.

    Args:
        field_name: Name of the field
        field_config: Field configuration from schema

    Returns:
        Tuple of (field_type, FieldInfo)
    """
    field_type = get_field_type(field_config)
    field_kwargs = {}

    if 'default' in field_config:
        field_kwargs['default'] = field_config['default']
    elif not field_config.get('required', False):
        field_kwargs['default'] = None

    if 'label' in field_config:
        field_kwargs['description'] = field_config['label']

    field_type_name = field_config.get('type', 'string')

    if field_type_name == 'string':
        if 'min_length' in field_config:
            field_kwargs['min_length'] = field_config['min_length']
        if 'max_length' in field_config:
            field_kwargs['max_length'] = field_config['max_length']

    elif field_type_name in ['number', 'integer', 'float']:
        if 'min_value' in field_config:
            field_kwargs['ge'] = field_config['min_value']
        if 'max_value' in field_config:
            field_kwargs['le'] = field_config['max_value']

    if not field_config.get('required', False):
        field_type = Optional[field_type]

    return field_type, Field(**field_kwargs)


def get_field_type(field_config: Dict[str, Any]) -> Type:
    """
    Map schema field type to Python/Pydantic type.

    Args:
        field_config: Field configuration from schema

    Returns:
        Python type for the field
    """
    field_type = field_config.get('type', 'string')

    if field_type in ['string', 'text', 'enum']:
        return str

    elif field_type == 'integer':
        return int

    elif field_type in ['number', 'float']:
        return float

    elif field_type == 'boolean':
        return bool

    elif field_type == 'date':
        return date

    else:
        logger.warning(f"Unknown field type '{field_type}', defaulting to str")
        return str


def create_validators_for_field(field_name: str, field_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create custom validators for a field based on its configuration.

    Args:
        field_name: Name of the field
        field_config: Field configuration from schema

    Returns:
        Dictionary of validator functions
    """
    validators = {}
    field_type = field_config.get('type', 'string')

    if field_type == 'string' and 'pattern' in field_config:
        pattern = field_config['pattern']

        @field_validator(field_name)
        @classmethod
        def pattern_validator_func(cls, v):
            if v is not None and not re.match(pattern, str(v)):
                raise ValueError(f'Field must match pattern: {pattern}')
            return v
        validators[f'validate_{field_name}_pattern'] = pattern_validator_func

    if field_type == 'enum':
        choices = field_config.get('choices', [])

        @field_validator(field_name)
        @classmethod
        def enum_validator_func(cls, v):
            if v is not None and v not in choices:
                raise ValueError(f'Value must be one of: {choices}')
            return v
        validators[f'validate_{field_name}_enum'] = enum_validator_func

    return validators


def validate_model_data(data: Dict[str, Any], model_class: Type[BaseModel]) -> List[str]:
    """
    Validate data against a Pydantic model and return validation errors.

    Args:
        data: Data to validate
        model_class: Pydantic model class

    Returns:
        List of validation error messages
    """
    try:
        model_class(**data)
        return []
    except ValidationError as e:
        error_messages = []
        for error in e.errors():
            field_path = ' -> '.join(str(loc) for loc in error.get('loc', []))
            error_messages.append(f"{field_path}: {error.get('msg')}")
        return error_messages


def clean_form_values(schema: Dict[str, Any], values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop empty inputs so required fields report as missing and optional
    fields fall back to their defaults.
    """
    fields = schema.get('fields') or {}
    cleaned = {}
    for name, value in values.items():
        if name not in fields or is_reference_field(fields[name]):
            continue
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        cleaned[name] = value
    return cleaned


def validate_form_values(schema: Dict[str, Any], values: Dict[str, Any],
                         model_name: str = "SubformModel") -> List[str]:
    """Validate submitted sub-form values against a bundle schema."""
    model_class = create_model_from_schema(schema, model_name)
    return validate_model_data(clean_form_values(schema, values), model_class)


def get_model_fields_info(schema: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Describe the scalar fields of a schema for form generation.

    Returns:
        Mapping of field name to label, type, required flag, default and choices
    """
    info = {}
    for name, field_config in (schema.get('fields') or {}).items():
        info[name] = {
            'label': field_config.get('label', name.replace('_', ' ').title()),
            'type': field_config.get('type', 'string'),
            'required': bool(field_config.get('required', False)),
            'default': field_config.get('default'),
            'choices': list(field_config.get('choices', [])),
            'help': field_config.get('help', '')
        }
    return info

"""
Widget settings for an embedded-forms field.
"""

import logging
from typing import Dict, Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class WidgetSettings(BaseModel):
    """Settings of one embedded-forms field."""

    model_config = ConfigDict(extra='ignore')

    target_type: str
    allowed_bundles: List[str] = Field(default_factory=list)
    allow_existing: bool = False
    delete_referenced_on_removal: bool = False
    match_operator: Literal['STARTS_WITH', 'CONTAINS'] = 'CONTAINS'
    override_labels: bool = False
    label_singular: str = ''
    label_plural: str = ''
    required: bool = False
    # -1 means unlimited
    cardinality: int = -1
    auto_open_add: bool = False

    @field_validator('target_type')
    @classmethod
    def target_type_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError('target_type must not be empty')
        return value.strip()

    @field_validator('cardinality')
    @classmethod
    def cardinality_range(cls, value: int) -> int:
        if value == 0 or value < -1:
            raise ValueError('cardinality must be -1 (unlimited) or a positive integer')
        return value

    @property
    def unlimited(self) -> bool:
        return self.cardinality == -1

    def allows_more(self, count: int) -> bool:
        return self.unlimited or count < self.cardinality


def resolve_settings(raw: Any, store, field_name: Optional[str] = None) -> WidgetSettings:
    """
    Validate raw settings and resolve target bundles against the store.

    An empty ``allowed_bundles`` list means every bundle of the target kind.

    Raises:
        ConfigurationError: If settings are invalid or reference unknown kinds/bundles
    """
    if isinstance(raw, WidgetSettings):
        settings = raw.model_copy(deep=True)
    else:
        try:
            settings = WidgetSettings(**(raw or {}))
        except PydanticValidationError as e:
            messages = '; '.join(
                f"{' -> '.join(str(loc) for loc in error.get('loc', []))}: {error.get('msg')}"
                for error in e.errors()
            )
            raise ConfigurationError(f"Invalid widget settings: {messages}",
                                     field_name=field_name) from e

    available = store.list_bundles(settings.target_type)
    if not available:
        raise ConfigurationError(
            f"Unknown record kind '{settings.target_type}'",
            target_type=settings.target_type, field_name=field_name)

    if not settings.allowed_bundles:
        settings.allowed_bundles = list(available)
    else:
        for bundle in settings.allowed_bundles:
            if bundle not in available:
                raise ConfigurationError(
                    f"Unknown bundle '{bundle}' for record kind '{settings.target_type}'",
                    target_type=settings.target_type, bundle=bundle, field_name=field_name)

    return settings


def labels(settings: WidgetSettings, handler=None) -> Dict[str, str]:
    """Singular and plural labels, honouring overrides."""
    if settings.override_labels:
        return {
            'singular': settings.label_singular,
            'plural': settings.label_plural
        }
    if handler is not None:
        return handler.labels()
    return {'singular': settings.target_type, 'plural': f"{settings.target_type}s"}


def settings_summary(settings: WidgetSettings, handler=None) -> List[str]:
    """Human readable summary lines for a settings screen."""
    summary = []
    if settings.allow_existing:
        summary.append('Existing records can be referenced.')
        summary.append(f"Autocomplete matching: {settings.match_operator.replace('_', ' ').lower()}.")
    else:
        summary.append('Only new records can be created.')

    if settings.delete_referenced_on_removal:
        summary.append('Removed records are deleted by default.')

    if settings.override_labels:
        names = labels(settings, handler)
        summary.append(f"Overridden labels are used: {names['singular']} and {names['plural']}.")
    else:
        summary.append('Default labels are used.')

    if settings.unlimited:
        summary.append('Unlimited values.')
    else:
        summary.append(f"At most {settings.cardinality} values.")
    return summary

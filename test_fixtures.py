"""
Test fixtures and builders for embedded form tests.

Provides reusable configuration, record stores, orchestrators and helpers
for driving form interactions the way the Streamlit host does.
"""

import pytest
from typing import Dict, Any, List, Optional, Tuple

from inline_forms.config_loader import deep_merge, get_default_config
from inline_forms.handlers import HandlerRegistry
from inline_forms.orchestrator import EmbeddedFormOrchestrator, FieldSpec
from inline_forms.records import InMemoryRecordStore, Record
from inline_forms.tree import Container, EmbeddedForm, find_control


class ConfigurationFixtures:
    """Fixtures for record kind configurations."""

    @staticmethod
    def get_record_kinds() -> Dict[str, Any]:
        """Record kinds used across the tests."""
        return {
            'node': {
                'handler': 'node',
                'bundles': {
                    'article': {
                        'label': 'Article',
                        'fields': {
                            'title': {'type': 'string', 'label': 'Title', 'required': True},
                            'body': {'type': 'text', 'label': 'Body'}
                        }
                    },
                    'page': {
                        'label': 'Page',
                        'fields': {
                            'title': {'type': 'string', 'label': 'Title', 'required': True}
                        }
                    }
                }
            },
            'section': {
                'label_singular': 'section',
                'label_plural': 'sections',
                'bundles': {
                    'section': {
                        'fields': {
                            'title': {'type': 'string', 'label': 'Heading', 'required': True},
                            'items': {
                                'type': 'reference',
                                'label': 'Items',
                                'settings': {'target_type': 'node', 'allowed_bundles': ['article']}
                            }
                        }
                    }
                }
            },
            'landing': {
                'bundles': {
                    'landing': {'fields': {'title': {'type': 'string'}}}
                }
            }
        }

    @staticmethod
    def get_config(**overrides) -> Dict[str, Any]:
        """Complete configuration with the test record kinds."""
        config = deep_merge(get_default_config(), {
            'record_kinds': ConfigurationFixtures.get_record_kinds()
        })
        return deep_merge(config, overrides)


class FormFixtures:
    """Builders for stores, orchestrators and parent forms."""

    @staticmethod
    def build(config: Optional[Dict[str, Any]] = None) -> Tuple[EmbeddedFormOrchestrator, InMemoryRecordStore]:
        config = config or ConfigurationFixtures.get_config()
        store = InMemoryRecordStore.from_config(config)
        orchestrator = EmbeddedFormOrchestrator(store, HandlerRegistry.from_config(config), config)
        return orchestrator, store

    @staticmethod
    def parent(store: InMemoryRecordStore, **fields) -> Record:
        values = {'title': 'Parent'}
        values.update(fields)
        return store.create('landing', 'landing', values)

    @staticmethod
    def articles_field(widget: str = 'multiple', **settings) -> FieldSpec:
        values = {'target_type': 'node', 'allowed_bundles': ['article']}
        values.update(settings)
        return FieldSpec(name='articles', settings=values, widget=widget, label='Articles')

    @staticmethod
    def build_form(orchestrator: EmbeddedFormOrchestrator, parent: Record,
                   fields: List[FieldSpec]) -> Tuple[Container, Dict[str, Any]]:
        registry = orchestrator.new_registry()
        tree = orchestrator.build_form(parent, fields, registry)
        return tree, registry.snapshot()

    @staticmethod
    def click(orchestrator: EmbeddedFormOrchestrator, tree: Container, snapshot: Dict[str, Any],
              name: str, values: Optional[Dict[str, Any]] = None) -> Tuple[Container, Dict[str, Any]]:
        assert find_control(tree, name) is not None, f"control {name} not rendered"
        return orchestrator.handle_interaction(name, tree, snapshot, values or {})

    @staticmethod
    def widget(tree: Container, field_name: str) -> EmbeddedForm:
        node = tree.get(field_name)
        assert isinstance(node, EmbeddedForm)
        return node


@pytest.fixture
def config():
    return ConfigurationFixtures.get_config()


@pytest.fixture
def orchestrator_and_store(config):
    return FormFixtures.build(config)

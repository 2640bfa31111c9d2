"""
Main Streamlit application for Inline Record Forms.
Demo host that edits a parent record together with its embedded child records.
"""

import streamlit as st
import logging
from typing import Dict, Any, List

from inline_forms.config_loader import (
    load_config,
    validate_config,
    get_config_summary,
    get_config_value,
    configure_logging
)
from inline_forms.error_handler import ErrorHandler, ErrorType
from inline_forms.exceptions import EmbeddedFormError, ValidationError
from inline_forms.form_renderer import FormRenderer
from inline_forms.handlers import HandlerRegistry
from inline_forms.orchestrator import SUBMIT_CONTROL, EmbeddedFormOrchestrator, FieldSpec, group_by_field
from inline_forms.records import InMemoryRecordStore, Record
from inline_forms.session_manager import SessionManager

# Configure logging dynamically from config
config = load_config()
configure_logging(config)
logger = logging.getLogger(__name__)
logger.info(f"Starting app version: {get_config_value(config, 'app', 'version', 'Unknown')}")

st.set_page_config(
    page_title=get_config_value(config, 'app', 'name', 'Inline Record Forms'),
    page_icon="🧩",
    layout="wide"
)


def main():
    """Main application entry point."""
    try:
        if not validate_config(config):
            st.warning("⚠️ **Configuration Issues Detected**")
            st.warning("Some configuration settings are invalid, embedded forms may be unavailable.")

        SessionManager.initialize()
        store = get_store()
        orchestrator = EmbeddedFormOrchestrator(store, HandlerRegistry.from_config(config), config)
        parent = get_parent_record(store)
        fields = get_field_specs()

        handle_trigger(orchestrator, store, parent)

        tree = SessionManager.get_form_tree()
        if tree is None:
            registry = orchestrator.new_registry(SessionManager.get_registry_snapshot())
            tree = orchestrator.build_form(parent, fields, registry)
            SessionManager.set_form_tree(tree)
            SessionManager.set_registry_snapshot(registry.snapshot())
            FormRenderer.sync_session_state(tree)

        render_header(parent, tree)
        render_sidebar()
        ErrorHandler.with_error_handling(lambda: FormRenderer.render(orchestrator.render(tree)),
                                         "rendering the form")

    except Exception as e:
        ErrorHandler.handle_error(e, "application startup", ErrorType.SYSTEM)


def get_store() -> InMemoryRecordStore:
    """Record store kept for the lifetime of the session."""
    if st.session_state.get('record_store') is None:
        st.session_state['record_store'] = InMemoryRecordStore.from_config(config)
    return st.session_state['record_store']


def get_parent_record(store: InMemoryRecordStore) -> Record:
    """Parent record being edited, created from the parent_form section on first run."""
    parent = SessionManager.get_parent_record()
    if parent is None:
        parent_config = config.get('parent_form') or {}
        parent = store.create(parent_config.get('kind', 'landing_page'),
                              parent_config.get('bundle', 'landing'),
                              {'title': parent_config.get('title', 'Untitled')})
        SessionManager.set_parent_record(parent)
    return parent


def get_field_specs() -> List[FieldSpec]:
    """Embedded-forms fields of the parent form."""
    fields: Dict[str, Any] = (config.get('parent_form') or {}).get('fields') or {}
    return [
        FieldSpec(name=name,
                  settings=definition.get('settings') or {},
                  widget=definition.get('widget', 'multiple'),
                  label=definition.get('label', ''))
        for name, definition in fields.items()
    ]


def handle_trigger(orchestrator: EmbeddedFormOrchestrator, store: InMemoryRecordStore, parent: Record):
    """Run the button clicked in the previous run against the stored tree."""
    control_name = FormRenderer.pop_triggered_control()
    tree = SessionManager.get_form_tree()
    if not control_name or tree is None:
        return

    SessionManager.clear_validation_errors()
    values = FormRenderer.collect_submitted_values(tree)
    snapshot = SessionManager.get_registry_snapshot()

    if control_name == SUBMIT_CONTROL:
        try:
            refs = orchestrator.finalize(tree, snapshot, values)
        except ValidationError as e:
            SessionManager.set_validation_errors(e.messages)
            ErrorHandler.handle_error(e, "saving the form", ErrorType.VALIDATION)
            return
        except EmbeddedFormError as e:
            ErrorHandler.handle_error(e, "saving the form")
            return

        parent.fields.update(group_by_field(refs))
        with store.transaction():
            store.save(parent)
        SessionManager.set_parent_record(parent)
        SessionManager.mark_saved(refs)
        st.success(f"✅ Saved {parent.label()} with {len(refs)} reference(s)")
        return

    try:
        rebuilt, new_snapshot = orchestrator.handle_interaction(control_name, tree, snapshot, values)
    except EmbeddedFormError as e:
        ErrorHandler.handle_error(e, f"running '{control_name}'")
        return

    SessionManager.record_interaction(rebuilt, new_snapshot)
    FormRenderer.sync_session_state(rebuilt)


def render_header(parent: Record, tree):
    """Render application header."""
    st.title(f"🧩 {parent.label()}")
    if SessionManager.has_unsaved_changes():
        st.caption("⚠️ Unsaved changes")
        changes = tree.attributes.get('changes') or []
        if changes:
            with st.expander("Last change"):
                for line in changes:
                    st.code(line)


def render_sidebar():
    """Render sidebar with configuration and session details."""
    with st.sidebar:
        st.header("Session")
        st.json(SessionManager.get_session_info())

        refs = SessionManager.get_last_refs()
        if refs:
            st.subheader("Last saved references")
            for ref in refs:
                st.write(f"• {ref.field_name}: {ref.record_id} (weight {ref.weight})")

        st.subheader("Configuration")
        st.json(get_config_summary(config))

        if st.button("🔄 Discard changes", key="discard_changes"):
            ErrorHandler.restart_cycle()
            st.rerun()


if __name__ == "__main__":
    main()

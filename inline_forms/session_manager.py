"""
Session state management for the Streamlit host.
Keeps the embedded-forms registry snapshot, the current form tree and the
parent record in st.session_state between reruns.
"""

import streamlit as st
from typing import Dict, Any, List, Optional
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

DEFAULT_USER = "editor"


class SessionManager:
    """Manages Streamlit session state for the embedded-forms demo."""

    @staticmethod
    def initialize():
        """Initialize all session state variables with default values."""
        defaults = {
            'current_user': DEFAULT_USER,
            'parent_record': None,
            'form_tree': None,
            'registry_snapshot': {},
            'last_refs': [],
            'refresh_targets': [],
            'last_activity': datetime.now(),
            'session_id': None,
            'unsaved_changes': False,
            'validation_errors': [],
            'interaction_count': 0
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

        if not st.session_state['session_id']:
            st.session_state['session_id'] = f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        logger.info(f"Session initialized: {st.session_state['session_id']}")

    @staticmethod
    def get_parent_record():
        """Get the parent record being edited."""
        return st.session_state.get('parent_record')

    @staticmethod
    def set_parent_record(record):
        """Set the parent record and drop any form state built for the previous one."""
        old_record = st.session_state.get('parent_record')
        if old_record is not record:
            logger.info(f"Parent record changed: {getattr(old_record, 'id', None)} -> {getattr(record, 'id', None)}")
            SessionManager.reset_cycle()
        st.session_state['parent_record'] = record
        SessionManager.update_activity()

    @staticmethod
    def get_registry_snapshot() -> Dict[str, Any]:
        """Get the registry snapshot of the current editing cycle."""
        return st.session_state.get('registry_snapshot') or {}

    @staticmethod
    def set_registry_snapshot(snapshot: Dict[str, Any]):
        st.session_state['registry_snapshot'] = snapshot

    @staticmethod
    def get_form_tree():
        """Get the most recently built form tree."""
        return st.session_state.get('form_tree')

    @staticmethod
    def set_form_tree(tree):
        """Store a rebuilt form tree together with its change flags."""
        st.session_state['form_tree'] = tree
        if tree is not None:
            attributes = getattr(tree, 'attributes', {})
            st.session_state['unsaved_changes'] = bool(attributes.get('unsaved_changes', False))
            st.session_state['refresh_targets'] = list(attributes.get('refresh', []))
        SessionManager.update_activity()

    @staticmethod
    def record_interaction(tree, snapshot: Dict[str, Any]):
        """Store the result of a handled interaction."""
        SessionManager.set_form_tree(tree)
        SessionManager.set_registry_snapshot(snapshot)
        SessionManager.set_validation_errors(list(getattr(tree, 'attributes', {}).get('errors', [])))
        st.session_state['interaction_count'] = st.session_state.get('interaction_count', 0) + 1

    @staticmethod
    def has_unsaved_changes() -> bool:
        """Check if there are unsaved changes."""
        return st.session_state.get('unsaved_changes', False)

    @staticmethod
    def mark_saved(refs: Optional[List[Any]] = None):
        """Mark the cycle as committed and start a fresh one."""
        st.session_state['last_refs'] = list(refs or [])
        SessionManager.reset_cycle()

    @staticmethod
    def get_last_refs() -> List[Any]:
        return st.session_state.get('last_refs', [])

    @staticmethod
    def get_validation_errors() -> List[str]:
        """Get current validation errors."""
        return st.session_state.get('validation_errors', [])

    @staticmethod
    def set_validation_errors(errors: List[str]):
        st.session_state['validation_errors'] = errors

    @staticmethod
    def clear_validation_errors():
        st.session_state['validation_errors'] = []

    @staticmethod
    def reset_cycle():
        """Discard registry state at the end of a submission cycle."""
        st.session_state['registry_snapshot'] = {}
        st.session_state['form_tree'] = None
        st.session_state['unsaved_changes'] = False
        st.session_state['validation_errors'] = []
        st.session_state['refresh_targets'] = []
        logger.info("Form state cycle reset")

    @staticmethod
    def update_activity():
        """Update last activity timestamp."""
        st.session_state['last_activity'] = datetime.now()

    @staticmethod
    def get_last_activity() -> datetime:
        return st.session_state.get('last_activity', datetime.now())

    @staticmethod
    def get_session_id() -> str:
        return st.session_state.get('session_id', 'unknown')

    @staticmethod
    def get_session_info() -> Dict[str, Any]:
        """Get comprehensive session information for debugging."""
        parent = SessionManager.get_parent_record()
        return {
            'session_id': SessionManager.get_session_id(),
            'parent_record': getattr(parent, 'id', None),
            'form_ids': list(SessionManager.get_registry_snapshot().keys()),
            'unsaved_changes': SessionManager.has_unsaved_changes(),
            'last_activity': SessionManager.get_last_activity().isoformat(),
            'validation_errors_count': len(SessionManager.get_validation_errors()),
            'interaction_count': st.session_state.get('interaction_count', 0),
            'tree_built': SessionManager.get_form_tree() is not None
        }

"""
Streamlit rendering of embedded form trees.

Inputs use their structural input name as the Streamlit widget key, so the
submitted values can be read back from st.session_state by the same names
the orchestrator expects.
"""

import streamlit as st
import pandas as pd
import numpy as np
import logging
from datetime import date, datetime
from typing import Dict, Any, List, Optional

from .tree import Container, Control, EmbeddedForm, FormNode, Leaf, iter_inputs

logger = logging.getLogger(__name__)

TRIGGER_KEY = 'triggered_control'


def normalize_value(value: Any) -> Any:
    """Convert widget and dataframe values into plain Python values."""
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        if np.isnan(value):
            return None
        return int(value) if float(value).is_integer() else float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def rows_to_dataframe(rows: Container) -> pd.DataFrame:
    """
    Tabulate the row container of a multiple-value instance.

    Args:
        rows: The ``entities`` container of an embedded-forms root

    Returns:
        DataFrame with one column per table field (by weight) and a Weight column
    """
    table_fields = rows.attributes.get('table_fields', {})
    columns = sorted(table_fields.items(), key=lambda item: item[1].get('weight', 0))
    records = []
    for row in rows.items:
        if not isinstance(row, Container):
            continue
        cells = row.attributes.get('cells', {})
        record = {definition.get('label', name): cells.get(name) for name, definition in columns}
        record['Weight'] = row.weight
        records.append(record)
    labels = [definition.get('label', name) for name, definition in columns] + ['Weight']
    return pd.DataFrame(records, columns=labels)


def _trigger(name: str):
    st.session_state[TRIGGER_KEY] = name


class FormRenderer:
    """Renders a (projected) form tree with Streamlit widgets."""

    @staticmethod
    def sync_session_state(tree: FormNode) -> int:
        """
        Push the values of a freshly built tree into st.session_state.

        Must run before the widgets of the new tree are created.

        Returns:
            Number of widget keys written
        """
        written = 0
        for leaf in iter_inputs(tree):
            if leaf.widget in ('value', 'hidden'):
                continue
            st.session_state[leaf.name] = FormRenderer._widget_value(leaf)
            written += 1
        logger.debug(f"Synced {written} widget values into session state")
        return written

    @staticmethod
    def collect_submitted_values(tree: FormNode) -> Dict[str, Any]:
        """Read the current widget values of every input of ``tree``."""
        values = {}
        for leaf in iter_inputs(tree):
            if leaf.name in st.session_state:
                values[leaf.name] = normalize_value(st.session_state[leaf.name])
        return values

    @staticmethod
    def pop_triggered_control() -> Optional[str]:
        """Name of the button clicked in the previous run, if any."""
        name = st.session_state.get(TRIGGER_KEY)
        st.session_state[TRIGGER_KEY] = None
        return name

    @staticmethod
    def render(tree: FormNode) -> None:
        """Render the whole tree."""
        for error in getattr(tree, 'attributes', {}).get('errors', []):
            st.error(error)
        FormRenderer._render_node(tree)

    @staticmethod
    def _render_node(node: FormNode) -> None:
        if not node.access:
            return
        if isinstance(node, Control):
            FormRenderer._render_control(node)
        elif isinstance(node, Leaf):
            FormRenderer._render_leaf(node)
        elif isinstance(node, Container):
            FormRenderer._render_container(node)

    @staticmethod
    def _render_container(container: Container) -> None:
        if isinstance(container, EmbeddedForm):
            for error in container.errors:
                st.error(error)

        if container.kind == 'table':
            FormRenderer._render_table(container)
            return

        if container.kind == 'actions':
            controls = [node for node in container.items if node.access]
            if not controls:
                return
            columns = st.columns(len(controls))
            for column, node in zip(columns, controls):
                with column:
                    FormRenderer._render_node(node)
            return

        if container.kind == 'fieldset' and container.title:
            with st.expander(container.title, expanded=True):
                FormRenderer._render_children(container)
            return

        if container.title:
            st.markdown(f"**{container.title}**")
        FormRenderer._render_children(container)

    @staticmethod
    def _render_children(container: Container) -> None:
        for child in container.items:
            FormRenderer._render_node(child)

    @staticmethod
    def _render_table(rows: Container) -> None:
        if not rows.items:
            return
        st.dataframe(rows_to_dataframe(rows), hide_index=True, use_container_width=True)
        for row in rows.items:
            if not isinstance(row, Container):
                continue
            with st.container(border=True):
                FormRenderer._render_children(row)

    @staticmethod
    def _render_control(control: Control) -> None:
        st.button(control.title or control.key, key=control.name,
                  on_click=_trigger, args=(control.name,))

    @staticmethod
    def _widget_value(leaf: Leaf) -> Any:
        value = leaf.value
        if leaf.widget == 'date' and isinstance(value, str) and value:
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                logger.warning(f"Failed to parse date '{value}' for {leaf.name}")
                return None
        if leaf.widget == 'checkbox':
            return bool(value)
        if leaf.widget in ('weight', 'integer'):
            return int(value) if value not in (None, '') else 0
        if leaf.widget == 'number':
            return float(value) if value not in (None, '') else 0.0
        if leaf.widget in ('text', 'textarea'):
            return '' if value is None else str(value)
        return value

    @staticmethod
    def _render_leaf(leaf: Leaf) -> Any:
        """Render a single leaf based on its widget type."""
        try:
            if leaf.widget in ('value', 'hidden'):
                return leaf.value
            if leaf.widget == 'markup':
                if leaf.attributes.get('error'):
                    st.error(leaf.value)
                elif leaf.value:
                    st.write(leaf.value)
                return leaf.value

            if leaf.name not in st.session_state:
                st.session_state[leaf.name] = FormRenderer._widget_value(leaf)

            label = leaf.title or leaf.key
            if leaf.required:
                label = f"{label} *"
            kwargs = {'key': leaf.name, 'label': label, 'help': leaf.help or None}

            if leaf.widget == 'weight':
                delta = int(leaf.attributes.get('delta', 50))
                value = st.number_input(min_value=-delta, max_value=delta, step=1, **kwargs)
            elif leaf.widget == 'integer':
                value = st.number_input(step=1, format="%d", **kwargs)
            elif leaf.widget == 'number':
                value = st.number_input(step=0.01, format="%.2f", **kwargs)
            elif leaf.widget == 'checkbox':
                value = st.checkbox(**kwargs)
            elif leaf.widget == 'select':
                value = FormRenderer._render_select(leaf, kwargs)
            elif leaf.widget == 'date':
                value = st.date_input(**kwargs)
            elif leaf.widget == 'textarea':
                value = st.text_area(height=100, **kwargs)
            else:
                value = st.text_input(**kwargs)

            for error in leaf.errors:
                st.error(error)
            return value
        except Exception as e:
            st.error(f"Error rendering field {leaf.key}: {str(e)}")
            logger.error(f"Error rendering field {leaf.name}: {e}", exc_info=True)
            return leaf.value

    @staticmethod
    def _render_select(leaf: Leaf, kwargs: Dict[str, Any]) -> Any:
        options: List[Any] = list(leaf.options or [])
        option_labels = leaf.attributes.get('option_labels', {})
        if not leaf.required and None not in options:
            options = [None] + options
        if st.session_state.get(leaf.name) not in options:
            st.session_state[leaf.name] = options[0] if options else None
        return st.selectbox(
            options=options,
            format_func=lambda x: "-- Select --" if x is None else str(option_labels.get(x, x)),
            **kwargs
        )

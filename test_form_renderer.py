"""
Unit tests for form_renderer module.
"""

from datetime import date, datetime

import numpy as np
import pytest

from inline_forms import form_renderer
from inline_forms.form_renderer import TRIGGER_KEY, FormRenderer, normalize_value, rows_to_dataframe
from inline_forms.tree import Leaf
from inline_forms.widgets import control_name

from test_fixtures import FormFixtures


@pytest.fixture
def session_state(monkeypatch):
    state = {}
    monkeypatch.setattr(form_renderer.st, "session_state", state)
    return state


@pytest.mark.parametrize("value,expected", [
    (np.bool_(True), True),
    (np.int64(4), 4),
    (np.float64(3.0), 3),
    (np.float64(2.5), 2.5),
    (np.float64('nan'), None),
    (date(2024, 3, 1), '2024-03-01'),
    (datetime(2024, 3, 1, 12, 30), '2024-03-01T12:30:00'),
    ('text', 'text'),
])
def test_normalize_value(value, expected):
    assert normalize_value(value) == expected


class TestFormRenderer:
    """Test class for session state syncing of rendered forms."""

    def setup_method(self):
        """Build a form with two persisted articles."""
        self.orchestrator, self.store = FormFixtures.build()
        first = self.store.add('node', 'article', {'title': 'First', 'status': True})
        second = self.store.add('node', 'article', {'title': 'Second', 'status': False})
        parent = FormFixtures.parent(self.store, articles=[first.id, second.id])
        self.tree, self.snapshot = FormFixtures.build_form(
            self.orchestrator, parent, [FormFixtures.articles_field()])
        self.form_id = FormFixtures.widget(self.tree, 'articles').form_id

    def test_rows_to_dataframe(self):
        """Test that table fields become columns ordered by weight."""
        rows = FormFixtures.widget(self.tree, 'articles').get('entities')
        frame = rows_to_dataframe(rows)

        assert list(frame.columns) == ['Label', 'Status', 'Weight']
        assert list(frame['Label']) == ['First', 'Second']
        assert list(frame['Status']) == ['Published', 'Unpublished']
        assert list(frame['Weight']) == [0, 1]

    def test_sync_session_state_skips_value_inputs(self, session_state):
        """Test that only visible inputs get widget keys."""
        written = FormRenderer.sync_session_state(self.tree)

        assert written == 2
        assert session_state['articles[entities][0][delta]'] == 0
        assert session_state['articles[entities][1][delta]'] == 1
        assert 'articles[actions][bundle]' not in session_state

    def test_collect_submitted_values(self, session_state):
        """Test reading widget values back by input name."""
        FormRenderer.sync_session_state(self.tree)
        session_state['articles[entities][1][delta]'] = np.int64(-3)

        values = FormRenderer.collect_submitted_values(self.tree)

        assert values['articles[entities][1][delta]'] == -3
        assert isinstance(values['articles[entities][1][delta]'], int)

    def test_collected_values_drive_the_orchestrator(self, session_state):
        """Test that values read from the session reorder rows."""
        FormRenderer.sync_session_state(self.tree)
        session_state['articles[entities][1][delta]'] = -3

        refs = self.orchestrator.finalize(self.tree, self.snapshot,
                                          FormRenderer.collect_submitted_values(self.tree))

        assert [ref.record.fields['title'] for ref in refs] == ['Second', 'First']

    def test_pop_triggered_control(self, session_state):
        """Test that a click is reported once."""
        name = control_name('add', self.form_id)
        form_renderer._trigger(name)

        assert FormRenderer.pop_triggered_control() == name
        assert FormRenderer.pop_triggered_control() is None
        assert session_state[TRIGGER_KEY] is None

    @pytest.mark.parametrize("widget,value,expected", [
        ('checkbox', None, False),
        ('weight', '', 0),
        ('weight', '4', 4),
        ('number', None, 0.0),
        ('text', None, ''),
        ('date', '2024-05-06', date(2024, 5, 6)),
        ('date', 'not a date', None),
        ('select', 'page', 'page'),
    ])
    def test_widget_value(self, widget, value, expected):
        """Test conversion of stored values for Streamlit widgets."""
        assert FormRenderer._widget_value(Leaf(key='x', widget=widget, value=value)) == expected

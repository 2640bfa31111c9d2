"""
Unit tests for diff_utils module.
"""

import pytest

from inline_forms.diff_utils import (
    calculate_registry_diff,
    changed_form_ids,
    format_diff_for_display,
    get_change_summary,
    has_changes,
    split_path
)


def describe(open_row=None, weights=None):
    return {
        'f1': {
            'field_name': 'articles',
            'open_row': open_row,
            'rows': [{'key': key, 'weight': weight} for key, weight in enumerate(weights or [])]
        }
    }


class TestDiffUtils:
    """Test class for registry diff utilities."""

    def test_no_changes(self):
        """Test calculating diff with no changes."""
        diff = calculate_registry_diff(describe(weights=[0, 1]), describe(weights=[0, 1]))

        assert diff == {}
        assert not has_changes(diff)

    def test_open_row_change(self):
        """Test that opening a form is a change."""
        diff = calculate_registry_diff(describe(), describe(open_row={'mode': 'add'}))

        assert has_changes(diff)
        assert changed_form_ids(diff) == ['f1']
        assert format_diff_for_display(diff) == ["~ open_row: None -> {'mode': 'add'}"]

    def test_weight_change(self):
        """Test calculating diff with value changes."""
        diff = calculate_registry_diff(describe(weights=[0, 1]), describe(weights=[0, 5]))

        assert 'values_changed' in diff
        assert get_change_summary(diff) == {'modified': 1, 'added': 0, 'removed': 0, 'total': 1}
        assert format_diff_for_display(diff) == ["~ rows.1.weight: 1 -> 5"]

    def test_entry_added_and_removed(self):
        """Test that added and removed entries are counted."""
        before = describe()
        after = {'f2': {'field_name': 'more', 'open_row': None, 'rows': []}}

        diff = calculate_registry_diff(before, after)
        summary = get_change_summary(diff)

        assert summary['added'] == 1
        assert summary['removed'] == 1
        assert sorted(changed_form_ids(diff)) == ['f1', 'f2']

    def test_none_inputs(self):
        """Test that missing descriptions compare as empty."""
        assert calculate_registry_diff(None, None) == {}

    @pytest.mark.parametrize("path,expected", [
        ("root['abc']", ['abc']),
        ("root['abc']['rows'][2]['weight']", ['abc', 'rows', '2', 'weight']),
        ("root", []),
    ])
    def test_split_path(self, path, expected):
        """Test DeepDiff path splitting."""
        assert split_path(path) == expected

    def test_has_changes_empty(self):
        """Test has_changes on empty input."""
        assert has_changes({}) is False
        assert has_changes({'values_changed': {}}) is False

"""
Diff utilities for embedded form state.
Compares registry descriptions before and after an interaction using the
DeepDiff library, for change tracking, logging and unsaved-change flags.
"""

from typing import Dict, Any, List
from deepdiff import DeepDiff
import re
import logging

logger = logging.getLogger(__name__)

CHANGE_TYPES = [
    'values_changed',
    'dictionary_item_added',
    'dictionary_item_removed',
    'iterable_item_added',
    'iterable_item_removed',
    'type_changes'
]

_PATH_TOKEN = re.compile(r"\[(?:'([^']*)'|(\d+))\]")


def calculate_registry_diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """
    Calculate differences between two registry descriptions.

    Args:
        before: ``FormStateRegistry.describe()`` output before the change
        after: ``FormStateRegistry.describe()`` output after the change

    Returns:
        Dict keyed by DeepDiff change type; empty when nothing changed
    """
    try:
        diff = DeepDiff(before or {}, after or {}, verbose_level=2)
        diff_dict = diff.to_dict() if hasattr(diff, 'to_dict') else dict(diff)
        return {change_type: diff_dict[change_type]
                for change_type in CHANGE_TYPES if diff_dict.get(change_type)}
    except Exception as e:
        logger.error(f"Error calculating registry diff: {e}")
        return {}


def has_changes(diff: Dict[str, Any]) -> bool:
    """
    Check if there are any changes in the diff.

    Args:
        diff: Diff dictionary from calculate_registry_diff

    Returns:
        True if there are changes, False otherwise
    """
    if not diff:
        return False
    return any(change_type in diff and diff[change_type] for change_type in CHANGE_TYPES)


def get_change_summary(diff: Dict[str, Any]) -> Dict[str, int]:
    """
    Get a summary of changes by type.

    Args:
        diff: Diff dictionary from calculate_registry_diff

    Returns:
        Dictionary with change counts by type
    """
    summary = {
        'modified': len(diff.get('values_changed', {})) + len(diff.get('type_changes', {})),
        'added': len(diff.get('dictionary_item_added', {})) + len(diff.get('iterable_item_added', {})),
        'removed': len(diff.get('dictionary_item_removed', {})) + len(diff.get('iterable_item_removed', {})),
    }
    summary['total'] = summary['modified'] + summary['added'] + summary['removed']
    return summary


def split_path(path: str) -> List[str]:
    """Turn a DeepDiff path like ``root['abc'][2]`` into ``['abc', '2']``."""
    return [name if name else index for name, index in _PATH_TOKEN.findall(path)]


def changed_form_ids(diff: Dict[str, Any]) -> List[str]:
    """Form ids whose entry was added, removed or modified."""
    form_ids = []
    for change_type in CHANGE_TYPES:
        for path in diff.get(change_type, {}) or {}:
            parts = split_path(str(path))
            if parts and parts[0] not in form_ids:
                form_ids.append(parts[0])
    return form_ids


def format_diff_for_display(diff: Dict[str, Any]) -> List[str]:
    """
    Format a registry diff as readable lines.

    Args:
        diff: Diff dictionary from calculate_registry_diff

    Returns:
        One line per change
    """
    lines = []
    for change_type in ('values_changed', 'type_changes'):
        for path, change in (diff.get(change_type) or {}).items():
            parts = split_path(path)
            lines.append(f"~ {'.'.join(parts[1:]) or parts[0][:10]}: "
                         f"{change.get('old_value')!r} -> {change.get('new_value')!r}")
    for change_type, marker in (('dictionary_item_added', '+'), ('iterable_item_added', '+'),
                                ('dictionary_item_removed', '-'), ('iterable_item_removed', '-')):
        for path in diff.get(change_type) or {}:
            parts = split_path(path)
            lines.append(f"{marker} {'.'.join(parts[1:]) or parts[0][:10]}")
    return lines

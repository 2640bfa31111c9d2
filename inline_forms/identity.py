"""
Stable identities for embedded form instances.

Every embedded-forms instance is addressed by a FormPath (the structural
location of the field inside the outer form). The form instance id is a
digest of that path, so rebuilding the form or adding/removing unrelated
siblings never changes it.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

from .exceptions import IdentityCollision

logger = logging.getLogger(__name__)

# Marker segment appended to a field location to address its embedded forms.
FORM_SEGMENT = 'form'
SINGLE_SEGMENT = 'ief-single'


@dataclass(frozen=True)
class FormPath:
    """Immutable path of string segments (field name, delta, nesting marker)."""

    segments: Tuple[str, ...] = ()

    @classmethod
    def of(cls, *segments) -> 'FormPath':
        return cls(tuple(str(segment) for segment in segments))

    def child(self, *segments) -> 'FormPath':
        return FormPath(self.segments + tuple(str(segment) for segment in segments))

    @property
    def parent(self) -> 'FormPath':
        return FormPath(self.segments[:-1])

    @property
    def last(self) -> str:
        return self.segments[-1] if self.segments else ''

    def startswith(self, other: 'FormPath') -> bool:
        """True if ``other`` is a (non-strict) prefix of this path."""
        size = len(other.segments)
        return self.segments[:size] == other.segments

    def input_name(self) -> str:
        """Render the path the way nested HTML input names look: ``a[b][c]``."""
        if not self.segments:
            return ''
        head, *rest = self.segments
        return head + ''.join(f'[{segment}]' for segment in rest)

    def __len__(self) -> int:
        return len(self.segments)

    def __str__(self) -> str:
        return '/'.join(self.segments)


def widget_identity_path(field_parents: Iterable[str], field_name: str) -> FormPath:
    """
    Identity path for a multi-value widget.

    Used by both form construction and value extraction so the two sides
    always agree on the instance id.
    """
    return FormPath.of(*field_parents, field_name, FORM_SEGMENT)


def single_identity_path(field_parents: Iterable[str], field_name: str, delta: int) -> FormPath:
    """Identity path for one delta of the simple widget."""
    return FormPath.of(*field_parents, field_name, SINGLE_SEGMENT, delta)


def allocate_form_id(path: FormPath) -> str:
    """
    Compute the form instance id for a path.

    The path is JSON encoded before hashing so ``('a-b', 'c')`` and
    ``('a', 'b-c')`` can never produce the same input.

    Args:
        path: Structural path of the embedded form

    Returns:
        40 character hex digest
    """
    encoded = json.dumps(list(path.segments), separators=(',', ':'))
    return hashlib.sha1(encoded.encode('utf-8')).hexdigest()


class IdentityAllocator:
    """Allocates form ids for one submission cycle and detects collisions."""

    def __init__(self, detect_collisions: bool = True):
        self.detect_collisions = detect_collisions
        self._seen: Dict[str, FormPath] = {}

    def allocate(self, path: FormPath) -> str:
        form_id = allocate_form_id(path)
        if not self.detect_collisions:
            return form_id

        known = self._seen.get(form_id)
        if known is not None and known != path:
            raise IdentityCollision(form_id, known, path)
        if known is None:
            logger.debug(f"Allocated form id {form_id[:10]} for {path}")
            self._seen[form_id] = path
        return form_id

    def reset(self):
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)

"""
Display-time fieldset projection.

Nodes can name a sibling container in their ``fieldset`` attribute to be
displayed inside it. The projection only changes where nodes are shown:
paths, and therefore submitted value names, stay the same.
"""

import logging
from copy import deepcopy

from .tree import Container, FormNode

logger = logging.getLogger(__name__)


class FieldsetProjector:

    def project(self, tree: FormNode) -> FormNode:
        """Return a projected copy of ``tree``; the input is not modified."""
        projected = deepcopy(tree)
        self._project(projected)
        return projected

    def _project(self, node: FormNode):
        if not isinstance(node, Container):
            return

        affected = set()
        for child in list(node.items):
            target_key = child.fieldset
            if not target_key or target_key == child.key:
                continue
            target = node.get(target_key)
            if not isinstance(target, Container):
                logger.debug(f"Fieldset '{target_key}' not found next to '{child.key}'")
                continue
            node.items.remove(child)
            target.items.append(child)
            affected.add(id(target))

        for child in node.items:
            if id(child) in affected:
                # sorted() is stable, equal weights keep their order
                child.items = sorted(child.items, key=lambda item: item.weight)
            self._project(child)

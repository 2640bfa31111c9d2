"""
Recursive submit delegation.

When a commit control is triggered, only the subtree it belongs to is
submitted: the nearest enclosing embedded form, or the whole tree for the
main submit control. Children are submitted before their parent, so a
parent's commit callback always sees its nested children already folded
into registry state.
"""

import logging
from typing import Any, List, Set

from .tree import Control, EmbeddedForm, FormNode, ancestors

logger = logging.getLogger(__name__)


class SubmitDelegator:
    """Runs ``on_commit`` callbacks bottom-up over the triggering control's scope."""

    def scope_for(self, root: FormNode, control: Control) -> FormNode:
        """
        Subtree a control commits.

        Controls flagged ``applies_to_tree`` commit the whole tree. Other
        controls commit the nearest EmbeddedForm above them.
        """
        if control.applies_to_tree:
            return root
        for node in reversed(ancestors(root, control)):
            if isinstance(node, EmbeddedForm):
                return node
        return root

    def delegate(self, root: FormNode, control: Control, context: Any) -> List[FormNode]:
        """
        Submit the control's scope depth-first.

        Every node's callbacks run exactly once, after all of its children
        were visited. Callback exceptions propagate to the caller.

        Returns:
            Nodes whose callbacks ran, in execution order
        """
        scope = self.scope_for(root, control)
        logger.debug(f"Delegating submit of '{control.name}' to {scope.path or 'form root'}")
        executed: List[FormNode] = []
        self._visit(scope, context, set(), executed)
        return executed

    def _visit(self, node: FormNode, context: Any, visited: Set[int], executed: List[FormNode]):
        if id(node) in visited:
            return
        visited.add(id(node))

        # Callbacks may restructure the tree; iterate over a snapshot.
        for child in list(node.children()):
            self._visit(child, context, visited, executed)

        if node.on_commit:
            for callback in list(node.on_commit):
                callback(node, context)
            executed.append(node)

"""
Form tree node types and traversal helpers.

A form is a tree of tagged variants: Leaf (an input or markup), Control (a
button), Container (groups children) and EmbeddedForm (a container that
owns embedded-forms state and may carry commit callbacks). Every node has
a structural ``path`` that names its submitted value; display moves done by
the fieldset projector never change it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from .identity import FormPath

logger = logging.getLogger(__name__)

INPUT_WIDGETS = ('text', 'textarea', 'integer', 'number', 'checkbox', 'select',
                 'date', 'weight', 'value', 'hidden')


@dataclass(eq=False)
class FormNode:
    key: str = ''
    path: FormPath = field(default_factory=FormPath)
    title: str = ''
    weight: float = 0
    # Name of a sibling container to display this node in.
    fieldset: Optional[str] = None
    access: bool = True
    attributes: Dict[str, Any] = field(default_factory=dict)
    on_commit: List[Callable] = field(default_factory=list)

    def add_commit_callback(self, callback: Callable):
        """Register a commit callback once, keeping registration order."""
        if callback not in self.on_commit:
            self.on_commit.append(callback)

    def children(self) -> List['FormNode']:
        return []

    def walk(self) -> Iterator['FormNode']:
        yield self
        for child in self.children():
            yield from child.walk()


@dataclass(eq=False)
class Leaf(FormNode):
    widget: str = 'markup'
    value: Any = None
    options: Optional[List[Any]] = None
    required: bool = False
    help: str = ''
    errors: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.input_name()

    @property
    def is_input(self) -> bool:
        return self.widget in INPUT_WIDGETS


@dataclass(eq=False)
class Control(Leaf):
    """A button. ``handlers`` run when it is the triggering control."""

    widget: str = 'submit'
    name_override: str = ''
    handlers: List[Callable] = field(default_factory=list)
    applies_to_tree: bool = False
    form_id: Optional[str] = None
    row_key: Optional[int] = None
    # Refresh target after the interaction; None means the whole form.
    wrapper: Optional[str] = None

    @property
    def name(self) -> str:
        return self.name_override or self.path.input_name()

    @property
    def is_input(self) -> bool:
        return False


@dataclass(eq=False)
class Container(FormNode):
    kind: str = 'container'
    items: List[FormNode] = field(default_factory=list)
    wrapper_id: Optional[str] = None

    def children(self) -> List[FormNode]:
        return list(self.items)

    def add(self, node: FormNode) -> FormNode:
        """Attach ``node`` and derive its path (and its subtree's) from this container."""
        _repath(node, self.path.child(node.key))
        self.items.append(node)
        return node

    def get(self, key: str) -> Optional[FormNode]:
        for node in self.items:
            if node.key == key:
                return node
        return None

    def remove(self, key: str) -> Optional[FormNode]:
        node = self.get(key)
        if node is not None:
            self.items.remove(node)
        return node


@dataclass(eq=False)
class EmbeddedForm(Container):
    """
    Container owning embedded-forms state.

    Widget roots (``is_root``) hold a whole embedded-forms instance; sub-forms
    (``op`` 'add' or 'edit') hold the entity form of one child record.
    """

    kind: str = 'fieldset'
    form_id: Optional[str] = None
    op: Optional[str] = None
    row_key: Optional[int] = None
    field_name: str = ''
    record_kind: str = ''
    bundle: str = ''
    is_root: bool = False
    errors: List[str] = field(default_factory=list)


def _repath(node: FormNode, path: FormPath):
    node.path = path
    for child in node.children():
        _repath(child, path.child(child.key))


def find_node(root: FormNode, path: FormPath) -> Optional[FormNode]:
    for node in root.walk():
        if node.path == path:
            return node
    return None


def find_control(root: FormNode, name: str) -> Optional[Control]:
    for node in root.walk():
        if isinstance(node, Control) and node.name == name:
            return node
    return None


def ancestors(root: FormNode, target: FormNode) -> List[FormNode]:
    """Nodes from ``root`` down to the parent of ``target`` (empty if not found)."""
    stack = [(root, [])]
    while stack:
        node, trail = stack.pop()
        for child in node.children():
            if child is target:
                return trail + [node]
            stack.append((child, trail + [node]))
    return []


def iter_inputs(root: FormNode) -> Iterator[Leaf]:
    for node in root.walk():
        if isinstance(node, Leaf) and node.is_input:
            yield node


def input_values(root: FormNode) -> Dict[str, Any]:
    """Current value of every input keyed by input name."""
    return {leaf.name: leaf.value for leaf in iter_inputs(root)}


def apply_values(root: FormNode, values: Optional[Dict[str, Any]]) -> int:
    """Copy submitted values onto inputs by input name. Returns how many were applied."""
    if not values:
        return 0
    applied = 0
    for leaf in iter_inputs(root):
        if leaf.widget == 'value':
            continue
        if leaf.name in values:
            leaf.value = values[leaf.name]
            applied += 1
    return applied


def collect_values(form: Container) -> Dict[str, Any]:
    """
    Values of the inputs that belong directly to ``form``.

    Nested embedded forms and the ``actions`` containers are skipped; their
    values are handled by their own instances.
    """
    values = {}
    for child in form.children():
        if isinstance(child, EmbeddedForm) or isinstance(child, Control):
            continue
        if isinstance(child, Container):
            if child.key == 'actions':
                continue
            values.update(collect_values(child))
        elif isinstance(child, Leaf) and child.is_input:
            values[child.key] = child.value
    return values


def embedded_forms(root: FormNode) -> Iterator[EmbeddedForm]:
    for node in root.walk():
        if isinstance(node, EmbeddedForm):
            yield node


def widget_roots(root: FormNode, top_level_only: bool = False) -> List[EmbeddedForm]:
    """
    Embedded-forms instances in document order.

    With ``top_level_only`` the instances nested inside another instance's
    sub-forms are left out.
    """
    found = []

    def visit(node: FormNode):
        if isinstance(node, EmbeddedForm) and node.is_root:
            found.append(node)
            if top_level_only:
                return
        for child in node.children():
            visit(child)

    visit(root)
    return found


def find_widget_root(root: FormNode, form_id: str) -> Optional[EmbeddedForm]:
    for node in embedded_forms(root):
        if node.is_root and node.form_id == form_id:
            return node
    return None

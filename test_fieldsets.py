"""
Unit tests for fieldsets module.
"""

from inline_forms.fieldsets import FieldsetProjector
from inline_forms.tree import Container, EmbeddedForm, Leaf, find_node


def build_form():
    root = Container(key='')
    form = root.add(EmbeddedForm(key='inline_entity_form', form_id='f1', op='add'))
    form.add(Leaf(key='title', widget='text', weight=0))
    form.add(Leaf(key='style', widget='select', weight=5, fieldset='appearance'))
    appearance = form.add(Container(key='appearance', kind='fieldset', title='Appearance', weight=3))
    appearance.add(Leaf(key='color', widget='text', weight=10))
    form.add(Leaf(key='lost', widget='text', weight=1, fieldset='missing'))
    return root


class TestFieldsetProjector:
    """Test class for display-time fieldset moves."""

    def test_node_is_moved_into_fieldset(self):
        """Test that a node is displayed in its named sibling."""
        projected = FieldsetProjector().project(build_form())
        form = projected.get('inline_entity_form')
        appearance = form.get('appearance')

        assert form.get('style') is None
        assert [item.key for item in appearance.items] == ['style', 'color']

    def test_paths_are_unchanged(self):
        """Test that submitted value names survive the move."""
        original = build_form()
        style_path = find_node(original, original.get('inline_entity_form').get('style').path).path

        projected = FieldsetProjector().project(original)
        moved = projected.get('inline_entity_form').get('appearance').get('style')

        assert moved.path == style_path
        assert moved.name == 'inline_entity_form[style]'

    def test_input_tree_is_not_modified(self):
        """Test that projection works on a copy."""
        original = build_form()
        FieldsetProjector().project(original)
        assert original.get('inline_entity_form').get('style') is not None

    def test_missing_fieldset_is_ignored(self):
        """Test that nodes naming an unknown fieldset stay in place."""
        projected = FieldsetProjector().project(build_form())
        assert projected.get('inline_entity_form').get('lost') is not None

    def test_equal_weights_keep_order(self):
        """Test stable ordering inside the target fieldset."""
        root = Container(key='')
        group = root.add(Container(key='group', kind='fieldset'))
        group.add(Leaf(key='first', weight=1))
        root.add(Leaf(key='second', weight=1, fieldset='group'))
        root.add(Leaf(key='third', weight=0, fieldset='group'))

        projected = FieldsetProjector().project(root)

        assert [item.key for item in projected.get('group').items] == ['third', 'first', 'second']

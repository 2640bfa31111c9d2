"""
Unit tests for widgets module.
"""

import pytest

from inline_forms.orchestrator import FieldSpec
from inline_forms.tree import Container, EmbeddedForm, find_control
from inline_forms.widgets import control_name, weight_delta

from test_fixtures import FormFixtures


def test_control_names_are_unique_per_instance_and_row():
    assert control_name('add', 'abc') == 'ief-abc-add'
    assert control_name('add_save', 'abc') == 'ief-add-submit-abc'
    assert control_name('edit_save', 'abc', 3) == 'ief-edit-submit-abc-3'
    assert control_name('remove_confirm', 'abc', 0) == 'ief-remove-confirm-abc-0'
    assert control_name('entity_edit', 'abc', 1) != control_name('entity_edit', 'abc', 2)


@pytest.mark.parametrize("count,minimum,expected", [
    (0, 50, 50),
    (10, 50, 50),
    (100, 50, 120),
    (5, 3, 6),
])
def test_weight_delta(count, minimum, expected):
    assert weight_delta(count, minimum) == expected


class TestMultipleValueWidget:
    """Test class for the table widget."""

    def setup_method(self):
        """Set up orchestrator, store and a persisted article."""
        self.orchestrator, self.store = FormFixtures.build()
        self.article = self.store.add('node', 'article', {'title': 'First', 'status': False})

    def build(self, parent=None, **settings):
        parent = parent or FormFixtures.parent(self.store)
        tree, snapshot = FormFixtures.build_form(self.orchestrator, parent,
                                                 [FormFixtures.articles_field(**settings)])
        return tree, snapshot, FormFixtures.widget(tree, 'articles')

    def test_root_identity(self):
        """Test the instance root carries its form id and wrapper."""
        tree, snapshot, root = self.build()
        assert root.is_root
        assert root.form_id in snapshot
        assert root.wrapper_id == f"inline-entity-form-{root.form_id}"
        assert root.attributes['labels'] == {'singular': 'node', 'plural': 'nodes'}

    def test_rows_and_table_fields(self):
        """Test rows render with label and status cells, and weight inputs."""
        parent = FormFixtures.parent(self.store, articles=[self.article.id])
        tree, snapshot, root = self.build(parent)
        rows = root.get('entities')
        row = rows.get('0')

        assert list(rows.attributes['table_fields']) == ['label', 'status']
        assert row.attributes['cells'] == {'label': 'First', 'status': 'Unpublished'}
        assert row.get('delta').widget == 'weight'
        assert row.get('delta').attributes['delta'] == 50
        assert row.get('delta').name == 'articles[entities][0][delta]'
        assert row.get('actions').get('ief_entity_edit') is not None

    def test_bundle_column_and_select_for_many_bundles(self):
        """Test that every bundle is offered when none are configured."""
        tree, snapshot, root = self.build(allowed_bundles=[])
        bundle = root.get('actions').get('bundle')

        assert bundle.widget == 'select'
        assert bundle.options == ['article', 'page']
        assert bundle.attributes['option_labels'] == {'article': 'Article', 'page': 'Page'}

    def test_cardinality_message(self):
        """Test the count message for limited fields."""
        tree, snapshot, root = self.build(cardinality=3)
        assert root.get('cardinality_count').value == 'You have added 0 out of 3 allowed nodes.'

    def test_actions_hidden_at_limit(self):
        """Test that add actions disappear when the limit is reached."""
        parent = FormFixtures.parent(self.store, articles=[self.article.id])
        tree, snapshot, root = self.build(parent, cardinality=1)
        assert root.get('actions') is None
        assert root.get('cardinality_count') is None

    def test_add_existing_button(self):
        """Test the reference button follows allow_existing."""
        tree, snapshot, root = self.build(allow_existing=True)
        assert root.get('actions').get('ief_add_existing') is not None
        tree, snapshot, root = self.build()
        assert root.get('actions').get('ief_add_existing') is None

    def test_override_labels(self):
        """Test custom labels on buttons."""
        tree, snapshot, root = self.build(override_labels=True, label_singular='story',
                                          label_plural='stories')
        assert root.get('actions').get('ief_add').title == 'Add new story'
        assert root.attributes['labels']['plural'] == 'stories'

    def test_edit_hidden_without_update_access(self):
        """Test that rows without update access have no edit button."""
        self.store.deny('update', self.article.id)
        parent = FormFixtures.parent(self.store, articles=[self.article.id])
        tree, snapshot, root = self.build(parent)
        actions = root.get('entities').get('0').get('actions')

        assert actions.get('ief_entity_edit') is None
        assert actions.get('ief_entity_remove') is not None

    def test_add_cancel_hidden_for_required_single_bundle(self):
        """Test that the only way out of a required empty field is to fill it."""
        tree, snapshot, root = self.build(required=True)
        tree, snapshot = FormFixtures.click(self.orchestrator, tree, snapshot,
                                            control_name('add', root.form_id))

        cancel = find_control(tree, control_name('add_cancel', root.form_id))
        assert cancel is not None
        assert not cancel.access

    def test_add_cancel_shown_otherwise(self):
        """Test that optional fields can cancel the add form."""
        tree, snapshot, root = self.build()
        tree, snapshot = FormFixtures.click(self.orchestrator, tree, snapshot,
                                            control_name('add', root.form_id))

        cancel = find_control(tree, control_name('add_cancel', root.form_id))
        assert cancel.access
        sub_form = FormFixtures.widget(tree, 'articles').get('form').get('inline_entity_form')
        assert isinstance(sub_form, EmbeddedForm)
        assert sub_form.op == 'add'
        assert sub_form.get('title').name == 'articles[form][inline_entity_form][title]'

    def test_auto_open_add(self):
        """Test that a required single-bundle field can open its add form."""
        tree, snapshot, root = self.build(required=True, auto_open_add=True)

        assert root.get('form').get('inline_entity_form').op == 'add'
        assert root.kind == 'container'
        assert snapshot[root.form_id].open_row.auto_opened

    def test_auto_open_needs_single_bundle(self):
        """Test that auto open is skipped when a bundle has to be chosen."""
        tree, snapshot, root = self.build(required=True, auto_open_add=True, allowed_bundles=[])
        assert root.get('form') is None


class TestSimpleWidget:
    """Test class for the per-delta widget."""

    def setup_method(self):
        """Set up orchestrator, store and a persisted article."""
        self.orchestrator, self.store = FormFixtures.build()
        self.article = self.store.add('node', 'article', {'title': 'First'})

    def build(self, **settings):
        parent = FormFixtures.parent(self.store, articles=[self.article.id])
        tree, snapshot = FormFixtures.build_form(
            self.orchestrator, parent, [FormFixtures.articles_field(widget='simple', **settings)])
        return tree, snapshot, FormFixtures.widget(tree, 'articles')

    def test_one_open_form_per_delta(self):
        """Test an edit form for the existing record plus one empty add form."""
        tree, snapshot, root = self.build()
        items = [item for item in root.items if isinstance(item, Container)]

        assert [item.key for item in items] == ['0', '1']
        assert items[0].get('inline_entity_form').op == 'edit'
        assert items[1].get('inline_entity_form').op == 'add'
        assert items[0].get('_weight').widget == 'weight'
        assert len(root.attributes['form_ids']) == 2

    def test_no_extra_delta_at_limit(self):
        """Test that a full field gets no empty delta."""
        tree, snapshot, root = self.build(cardinality=1)
        items = [item for item in root.items if isinstance(item, Container)]

        assert len(items) == 1
        assert items[0].get('_weight') is None

    def test_label_without_update_access(self):
        """Test that records the user cannot update are shown as labels."""
        self.store.deny('update', self.article.id)
        tree, snapshot, root = self.build()

        first = root.get('0')
        assert first.get('inline_entity_form') is None
        assert first.get('label').value == 'First'


class TestNestedWidget:
    """Test class for embedded forms inside sub-forms."""

    def test_reference_field_builds_nested_instance(self):
        """Test that opening a section add form builds its nested items widget."""
        orchestrator, store = FormFixtures.build()
        parent = FormFixtures.parent(store)
        tree, snapshot = FormFixtures.build_form(
            orchestrator, parent, [FieldSpec(name='sections', settings={'target_type': 'section'})])
        root = FormFixtures.widget(tree, 'sections')

        tree, snapshot = FormFixtures.click(orchestrator, tree, snapshot,
                                            control_name('add', root.form_id))
        sub_form = FormFixtures.widget(tree, 'sections').get('form').get('inline_entity_form')
        nested = sub_form.get('items')

        assert isinstance(nested, EmbeddedForm)
        assert nested.is_root
        assert nested.form_id != root.form_id
        assert nested.form_id in snapshot
        assert str(snapshot[nested.form_id].path) == 'sections/form/inline_entity_form/items/form'

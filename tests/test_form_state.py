"""Tests for FormState, the field path table and form projection."""
import pytest

from conftest import make_record
from contentstate import DraftField, FormState, FormValidationError, project_form_values, to_save_payload
from contentstate.field_paths import DRAFT_TO_FORM_KEY, delete_path, get_path, has_path, set_path


class TestDraftFieldTable:

    def test_nested_seo_paths_map_to_flat_keys(self):
        """Test that seo.* content paths map onto the flat meta_* form keys."""
        assert DraftField.SEO_TITLE.form_key == 'meta_title'
        assert DraftField.SEO_DESCRIPTION.form_key == 'meta_description'
        assert DraftField.SEO_FOCUS_KEYWORD.form_key == 'focus_keyword'

    def test_table_is_exhaustive_and_bijective(self):
        """Test that every DraftField has exactly one form key and no key is shared."""
        assert set(DRAFT_TO_FORM_KEY) == set(DraftField)
        assert len(set(DRAFT_TO_FORM_KEY.values())) == len(DRAFT_TO_FORM_KEY)

    def test_reverse_lookup(self):
        """Test that every form key maps back to its content path."""
        for field, form_key in DRAFT_TO_FORM_KEY.items():
            assert DraftField.for_form_key(form_key) is field

    def test_parse_unknown_path(self):
        """Test that unknown paths parse to None instead of raising."""
        assert DraftField.parse('seo.title') is DraftField.SEO_TITLE
        assert DraftField.parse('seo.canonical') is None


class TestPathHelpers:

    def test_get_and_has_path(self):
        """Test dotted reads through nested dicts."""
        content = {'seo': {'title': 'A', 'description': None}}
        assert get_path(content, 'seo.title') == 'A'
        assert get_path(content, 'seo.missing', 'x') == 'x'
        assert has_path(content, 'seo.description')
        assert not has_path(content, 'title.nested')

    def test_set_path_creates_parents(self):
        """Test that set_path creates intermediate dicts."""
        content = {}
        set_path(content, 'seo.title', 'A')
        assert content == {'seo': {'title': 'A'}}

    def test_delete_path(self):
        """Test that delete_path reports whether something was removed."""
        content = {'seo': {'title': 'A'}}
        assert delete_path(content, 'seo.title') is True
        assert delete_path(content, 'seo.title') is False
        assert content == {'seo': {}}


class TestFormState:

    def test_dirty_tracks_difference_from_baseline(self):
        """Test that dirty fields are exactly the keys differing from the last reset."""
        form = FormState(project_form_values(make_record()))
        assert not form.is_dirty

        form.input_value('title', 'Other')
        assert form.dirty_fields == {'title'}

        form.input_value('title', 'Linen Shirt')
        assert not form.is_dirty

    def test_touch_only_for_user_writes(self):
        """Test that normalization writes do not count as user interaction."""
        form = FormState(project_form_values(make_record()))
        form.set_value('description', '<p>Soft linen shirt</p>\n')
        assert form.touched_fields == frozenset()

        form.input_value('sku', 'LS-02')
        assert form.touched_fields == frozenset({'sku'})

    def test_unknown_key_ignored(self):
        """Test that writing an unknown key changes nothing."""
        form = FormState()
        assert form.set_value('not_a_field', 1) is False
        assert 'not_a_field' not in form.get_values()

    def test_reset_replaces_baseline_and_clears_touched(self):
        """Test that reset() installs new values as the clean baseline."""
        form = FormState(project_form_values(make_record()))
        form.input_value('title', 'Edited')
        form.reset()
        assert not form.is_dirty
        assert form.touched_fields == frozenset()
        assert form.get_value('title') == 'Edited'

    def test_rebaseline_keeps_later_edits_dirty(self):
        """Test that rebaseline() moves the baseline without touching live values."""
        form = FormState(project_form_values(make_record()))
        form.input_value('title', 'Saved')
        persisted = form.get_values()
        form.input_value('sku', 'LS-02')
        kinds = []
        form.watch(lambda change: kinds.append(change.kind))

        form.rebaseline(persisted)

        assert form.get_value('sku') == 'LS-02'
        assert form.dirty_fields == {'sku'}
        assert form.touched_fields == frozenset({'sku'})
        assert kinds == ['baseline']

    def test_get_values_is_a_copy(self):
        """Test that callers cannot mutate live state through get_values()."""
        form = FormState(project_form_values(make_record()))
        values = form.get_values()
        values['categories'].append('Hacked')
        assert form.get_value('categories') == ['Shirts', 'Summer']

    def test_watch_and_unsubscribe(self):
        """Test that watchers see changes and resets until unsubscribed."""
        form = FormState(project_form_values(make_record()))
        seen = []
        unsubscribe = form.watch(seen.append)

        form.input_value('title', 'A')
        form.reset({**form.get_values(), 'sku': 'X'})
        unsubscribe()
        form.input_value('title', 'B')

        assert [c.kind for c in seen] == ['change', 'reset']
        assert seen[1].keys == frozenset({'sku'})

    def test_failing_watcher_does_not_break_writes(self):
        """Test that watcher exceptions are contained."""
        form = FormState(project_form_values(make_record()))

        def boom(change):
            raise RuntimeError("boom")

        form.watch(boom)
        assert form.input_value('title', 'Still works') is True

    def test_validate_rejects_empty_title(self):
        """Test that validation errors are grouped per form key."""
        form = FormState(project_form_values(make_record()))
        form.input_value('title', '')
        with pytest.raises(FormValidationError) as excinfo:
            form.validate()
        assert 'title' in excinfo.value.field_errors


class TestProjection:

    def test_working_content_projection(self):
        """Test the working content → form values mapping."""
        values = project_form_values(make_record())
        assert values['title'] == 'Linen Shirt'
        assert values['meta_title'] == 'Linen Shirt | Shop'
        assert values['focus_keyword'] == 'linen'
        assert values['categories'] == ['Shirts', 'Summer']
        assert values['images'][0]['is_primary'] is True
        assert values['images'][1]['order'] == 1

    def test_legacy_fallbacks(self):
        """Test that legacy record columns fill gaps in working content."""
        record = make_record(title=None, sku=None, images=[])
        record.title = 'Legacy title'
        record.sku = 'LEG-1'
        record.image_url = 'https://cdn.example.com/main.jpg'
        values = project_form_values(record)
        assert values['title'] == 'Legacy title'
        assert values['sku'] == 'LEG-1'
        assert values['images'] == [{
            'id': 'main', 'src': 'https://cdn.example.com/main.jpg', 'name': '', 'alt': '',
            'order': 0, 'is_primary': True,
        }]

    def test_product_type_falls_back_to_type(self):
        """Test that the platform's 'type' key is used when product_type is empty."""
        assert project_form_values(make_record(product_type='', type='variable'))['product_type'] == 'variable'
        assert project_form_values(make_record())['product_type'] == 'simple'

    def test_projection_is_deterministic(self):
        """Test that the same record always projects to the same values."""
        assert project_form_values(make_record()) == project_form_values(make_record())

    def test_save_payload_nests_seo_and_coerces_numbers(self):
        """Test the default save transform."""
        payload = to_save_payload(project_form_values(make_record()))
        assert payload['seo'] == {'title': 'Linen Shirt | Shop', 'description': 'Buy linen', 'focus_keyword': 'linen'}
        assert payload['regular_price'] == 49.9
        assert payload['stock'] == 10
        assert payload['categories'] == [{'name': 'Shirts'}, {'name': 'Summer'}]
        assert 'dimensions' not in payload

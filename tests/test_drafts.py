"""Tests for AI draft reconciliation."""
from conftest import make_content, make_record
from contentstate import DraftReconciler, FormState, project_form_values, remaining_proposals


def make_reconciler(draft, working=None):
    working = working if working is not None else make_content()
    form = FormState(project_form_values(make_record(**{k: v for k, v in working.items()})))
    drafts = DraftReconciler(form)
    drafts.set_draft(draft, working)
    return form, drafts


class TestRemainingProposals:

    def test_only_non_empty_differing_values(self):
        """Test that empty or identical draft values are not proposed."""
        draft = {
            'title': 'Linen Shirt',
            'sku': '',
            'description': '<p>Soft   linen shirt</p>&nbsp;',
            'short_description': 'Breathable linen',
            'seo': {'title': 'Best Linen Shirt', 'description': ''},
        }
        assert remaining_proposals(draft, make_content()) == ['short_description', 'seo.title']

    def test_no_draft(self):
        """Test that a missing draft proposes nothing."""
        assert remaining_proposals(None, make_content()) == []

    def test_image_alt_texts(self):
        """Test that images are proposed only for new alt texts or new images."""
        same = {'images': [{'alt': ''}, {'alt': 'back'}]}
        new_alt = {'images': [{'alt': 'Front view'}, {'alt': 'back'}]}
        extra = {'images': [{}, {}, {'src': 'https://cdn.example.com/3.jpg'}]}
        assert remaining_proposals(same, make_content()) == []
        assert remaining_proposals(new_alt, make_content()) == ['images']
        assert remaining_proposals(extra, make_content()) == ['images']


class TestAcceptReject:

    def test_accept_nested_seo_path(self):
        """Test that seo.title lands in meta_title and leaves the proposals."""
        form, drafts = make_reconciler({'seo': {'title': 'A'}, 'title': 'Better title'})
        accepted = []
        drafts.on_accepted(lambda field, values: accepted.append((field.value, values['meta_title'])))

        assert drafts.accept_field('seo.title') is True

        assert form.get_value('meta_title') == 'A'
        assert 'meta_title' in form.dirty_fields
        assert 'meta_title' in form.touched_fields
        assert drafts.remaining == ['title']
        assert accepted == [('seo.title', 'A')]

    def test_accept_is_idempotent(self):
        """Test that accepting twice equals accepting once, without error."""
        form, drafts = make_reconciler({'seo': {'title': 'A'}})
        assert drafts.accept_field('seo.title') is True
        once = form.get_values()
        assert drafts.accept_field('seo.title') is False
        assert form.get_values() == once

    def test_accept_only_touches_one_field(self):
        """Test that accepting a field never changes any other field."""
        form, drafts = make_reconciler({'title': 'Better title', 'sku': 'NEW-SKU'})
        before = form.get_values()
        drafts.accept_field('title')
        after = form.get_values()
        assert {k for k in after if after[k] != before[k]} == {'title'}

    def test_accept_with_override(self):
        """Test that an explicit override replaces the draft value."""
        form, drafts = make_reconciler({'title': 'Better title'})
        drafts.accept_field('title', 'Edited suggestion')
        assert form.get_value('title') == 'Edited suggestion'

    def test_accept_unknown_or_absent_path_is_noop(self):
        """Test that benign races are no-ops, not errors."""
        form, drafts = make_reconciler({'title': 'Better title'})
        before = form.get_values()
        assert drafts.accept_field('seo.description') is False
        assert drafts.accept_field('not.a.field') is False
        assert form.get_values() == before

    def test_accept_into_sparse_form_keeps_proposal(self):
        """Test that a form without the target key neither consumes the proposal nor notifies."""
        form = FormState({'title': 'Linen Shirt', 'description': ''})
        drafts = DraftReconciler(form)
        drafts.set_draft({'seo': {'title': 'A'}}, make_content())
        accepted = []
        drafts.on_accepted(lambda field, values: accepted.append(field))

        assert drafts.accept_field('seo.title') is False

        assert drafts.remaining == ['seo.title']
        assert accepted == []
        assert 'meta_title' not in form.get_values()

    def test_accept_images_merges_alt_texts(self):
        """Test that accepting images only fills alt texts by position."""
        form, drafts = make_reconciler({'images': [{'alt': 'Front view'}, {'alt': ''}]})
        drafts.accept_field('images')
        images = form.get_value('images')
        assert [img['alt'] for img in images] == ['Front view', 'back']
        assert [img['src'] for img in images] == ['https://cdn.example.com/1.jpg', 'https://cdn.example.com/2.jpg']

    def test_reject_leaves_form_untouched(self):
        """Test that reject drops the proposal only, and is idempotent."""
        form, drafts = make_reconciler({'title': 'Better title'})
        before = form.get_values()
        assert drafts.reject_field('title') is True
        assert drafts.reject_field('title') is False
        assert drafts.remaining == []
        assert form.get_values() == before

    def test_proposals_never_grow_back(self):
        """Test that editing the form does not resurrect a rejected proposal."""
        form, drafts = make_reconciler({'title': 'Better title'})
        drafts.reject_field('title')
        form.input_value('title', 'Something else')
        assert drafts.remaining == []

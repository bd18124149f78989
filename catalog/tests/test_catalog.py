from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from catalog.models import Category, ProductReview, ProductVariant

pytestmark = pytest.mark.django_db


@pytest.fixture
def approved_review(user, variant):
    review = ProductReview.objects.create(user=user, variant=variant, rating=4, status=ProductReview.STATUS_APPROVED)
    variant.refresh_rating_summary()
    return review


class TestCategories:

    def test_public_read_admin_write(self, api_client, admin_client):
        denied = api_client.post('/api/categories/', {'name': 'Snacks'}, format='json')
        created = admin_client.post('/api/categories/', {'name': 'Snacks'}, format='json')

        assert denied.status_code == 401
        assert created.status_code == 201
        assert created.data['slug'] == 'snacks'
        assert api_client.get('/api/categories/').data['count'] == 1

    def test_tree_nests_children(self, api_client, make_category):
        root = make_category(name='Drinks')
        make_category(name='Tea', parent_category=root)

        response = api_client.get('/api/categories/tree/')

        assert response.status_code == 200
        assert response.data[0]['name'] == 'Drinks'
        assert response.data[0]['children'][0]['name'] == 'Tea'

    def test_tree_cache_invalidated_on_save(self, api_client, make_category):
        make_category(name='Drinks')
        api_client.get('/api/categories/tree/')

        make_category(name='Bakery')

        names = [node['name'] for node in api_client.get('/api/categories/tree/').data]
        assert names == ['Bakery', 'Drinks']

    def test_cannot_be_own_ancestor(self, admin_client, make_category):
        root = make_category(name='Drinks')
        child = make_category(name='Tea', parent_category=root)

        response = admin_client.patch(
            f'/api/categories/{root.pk}/', {'parent_category': child.pk}, format='json'
        )

        assert response.status_code == 400
        assert 'parent_category' in response.data

    def test_delete_blocked_by_active_products(self, admin_client, make_product):
        product = make_product()

        response = admin_client.delete(f'/api/categories/{product.category_id}/')

        assert response.status_code == 409
        assert Category.objects.get(pk=product.category_id).is_active


class TestProducts:

    def test_create_requires_description(self, admin_client, make_category):
        category = make_category()
        response = admin_client.post('/api/products/', {
            'name': 'Green Tea', 'category': category.pk
        }, format='json')

        assert response.status_code == 400
        assert 'description' in response.data

    def test_meta_fields_generated(self, make_product):
        product = make_product(name='Green Tea', description='x' * 200)

        assert product.slug == 'green-tea'
        assert product.meta_title == 'Green Tea'
        assert product.meta_description.endswith('...')
        assert len(product.meta_description) == 160

    def test_inactive_products_hidden_from_public(self, api_client, admin_client, make_product):
        product = make_product()
        product.soft_delete()

        assert api_client.get(f'/api/products/{product.pk}/').status_code == 404
        assert admin_client.get(f'/api/products/{product.pk}/').status_code == 200

    def test_detail_lists_active_variants(self, api_client, make_variant, make_product):
        product = make_product()
        make_variant(product=product)
        make_variant(product=product, is_active=False)

        response = api_client.get(f'/api/products/{product.pk}/')

        assert len(response.data['variants']) == 1


class TestVariants:

    def test_sku_is_uppercased(self, admin_client, make_product):
        product = make_product()
        response = admin_client.post('/api/variants/', {
            'product': product.pk, 'sku_code': 'tea-100g', 'price': '120.00'
        }, format='json')

        assert response.status_code == 201
        assert response.data['sku_code'] == 'TEA-100G'

    @pytest.mark.parametrize('sku', ['ab', 'TEA 100', 'TEA#1'])
    def test_invalid_sku_rejected(self, admin_client, make_product, sku):
        product = make_product()
        response = admin_client.post('/api/variants/', {
            'product': product.pk, 'sku_code': sku, 'price': '120.00'
        }, format='json')

        assert response.status_code == 400
        assert 'sku_code' in response.data

    def test_duplicate_option_set_rejected(self, admin_client, make_variant, make_option):
        size = make_option('size', 'XL')
        existing = make_variant(options=[size])

        response = admin_client.post('/api/variants/', {
            'product': existing.product_id,
            'sku_code': 'OTHER-XL',
            'price': '99.00',
            'option_values': [size.pk],
        }, format='json')

        assert response.status_code == 400
        assert 'option_values' in response.data

    def test_sale_needs_lower_discount_price(self, admin_client, make_product):
        product = make_product()
        response = admin_client.post('/api/variants/', {
            'product': product.pk,
            'sku_code': 'SALE-1',
            'price': '100.00',
            'is_on_sale': True,
            'discount_price': '120.00',
        }, format='json')

        assert response.status_code == 400

    def test_effective_price(self, make_variant):
        variant = make_variant(price='100.00', is_on_sale=True, discount_price=Decimal('80.00'))

        assert variant.effective_price == Decimal('80.00')
        assert variant.computed_discount_percentage == 20

    def test_expired_sale_switched_off_on_save(self, make_variant):
        variant = make_variant(
            price='100.00',
            is_on_sale=True,
            discount_price=Decimal('80.00'),
            discount_end_date=timezone.now() - timedelta(days=1),
        )

        assert variant.is_on_sale is False
        assert variant.effective_price == Decimal('100.00')

    def test_pack_option_value_must_be_positive(self, admin_client):
        response = admin_client.post('/api/options/', {
            'option_type': 'pack', 'option_value': '0'
        }, format='json')

        assert response.status_code == 400


class TestReviews:

    def test_review_starts_pending_and_hidden(self, auth_client, api_client, variant):
        response = auth_client.post('/api/reviews/', {'variant': variant.pk, 'rating': 4}, format='json')

        assert response.status_code == 201
        assert response.data['status'] == 'PENDING_APPROVAL'
        assert response.data['is_verified_buyer'] is False
        assert api_client.get('/api/reviews/', {'variant': variant.pk}).data['count'] == 0

    def test_second_review_rejected(self, auth_client, variant):
        auth_client.post('/api/reviews/', {'variant': variant.pk, 'rating': 4}, format='json')
        response = auth_client.post('/api/reviews/', {'variant': variant.pk, 'rating': 5}, format='json')

        assert response.status_code == 400

    def test_approval_updates_ratings(self, auth_client, admin_client, variant):
        review_id = auth_client.post(
            '/api/reviews/', {'variant': variant.pk, 'rating': 4}, format='json'
        ).data['id']

        response = admin_client.post(f'/api/reviews/{review_id}/moderate/', {'status': 'APPROVED'}, format='json')

        assert response.status_code == 200
        variant.refresh_from_db()
        variant.product.refresh_from_db()
        assert variant.reviews_count == 1
        assert variant.average_rating == Decimal('4.00')
        assert variant.product.rating_distribution['4'] == 1

    def test_cannot_vote_own_review(self, auth_client, variant):
        review_id = auth_client.post(
            '/api/reviews/', {'variant': variant.pk, 'rating': 4}, format='json'
        ).data['id']

        response = auth_client.post(f'/api/reviews/{review_id}/vote/', {'helpful': True}, format='json')

        assert response.status_code == 403

    def test_edit_sends_review_back_to_moderation(self, auth_client, approved_review, variant):
        response = auth_client.patch(f'/api/reviews/{approved_review.pk}/', {'rating': 2}, format='json')

        assert response.status_code == 200
        assert response.data['status'] == 'PENDING_APPROVAL'
        variant.refresh_from_db()
        variant.product.refresh_from_db()
        assert variant.reviews_count == 0
        assert variant.average_rating == Decimal('0.00')
        assert variant.product.rating_distribution['4'] == 0

    def test_only_author_can_edit(self, admin_client, approved_review):
        response = admin_client.patch(f'/api/reviews/{approved_review.pk}/', {'rating': 1}, format='json')

        assert response.status_code == 403
        approved_review.refresh_from_db()
        assert approved_review.rating == 4

    def test_deleting_approved_review_refreshes_ratings(self, auth_client, approved_review, variant):
        response = auth_client.delete(f'/api/reviews/{approved_review.pk}/')

        assert response.status_code == 204
        variant.refresh_from_db()
        assert variant.reviews_count == 0
        assert variant.average_rating == Decimal('0.00')

    def test_rating_summary_counts_approved_only(self, api_client, approved_review, other_user, variant):
        ProductReview.objects.create(user=other_user, variant=variant, rating=1)

        response = api_client.get('/api/reviews/rating_summary/', {'variant': variant.pk})

        assert response.status_code == 200
        assert response.data['total_reviews'] == 1
        assert response.data['distribution']['4'] == 1

    @pytest.mark.parametrize('endpoint', ['/api/reviews/rating_summary/', '/api/favorites/check/'])
    def test_non_numeric_variant_param_is_bad_request(self, auth_client, endpoint):
        response = auth_client.get(endpoint, {'variant': 'abc'})

        assert response.status_code == 400
        assert response.data['code'] == 'bad_request'


class TestReviewReports:

    def _report(self, client, review, reason='SPAM', **extra):
        return client.post(f'/api/reviews/{review.pk}/report/', {'reason': reason, **extra}, format='json')

    def test_report_recorded(self, other_client, approved_review):
        response = self._report(other_client, approved_review)

        assert response.status_code == 201
        assert response.data['reported_count'] == 1
        assert approved_review.reports.get().reason == 'SPAM'

    def test_repeat_report_is_conflict(self, other_client, approved_review):
        self._report(other_client, approved_review)
        response = self._report(other_client, approved_review, reason='FAKE_REVIEW')

        assert response.status_code == 409
        assert response.data['code'] == 'already_reported'
        approved_review.refresh_from_db()
        assert approved_review.reported_count == 1
        assert approved_review.reports.count() == 1

    def test_cannot_report_own_review(self, auth_client, approved_review):
        assert self._report(auth_client, approved_review).status_code == 400

    def test_other_reason_needs_description(self, other_client, approved_review):
        response = self._report(other_client, approved_review, reason='OTHER')

        assert response.status_code == 400
        assert 'custom_reason' in response.data

    def test_distinct_reporters_flag_review(self, make_user, client_for, approved_review, variant):
        for _ in range(ProductReview.FLAG_THRESHOLD):
            self._report(client_for(make_user()), approved_review)

        approved_review.refresh_from_db()
        variant.refresh_from_db()
        assert approved_review.reported_count == 5
        assert approved_review.status == 'FLAGGED'
        assert variant.reviews_count == 0

    def test_four_reports_do_not_flag(self, make_user, client_for, approved_review):
        for _ in range(ProductReview.FLAG_THRESHOLD - 1):
            self._report(client_for(make_user()), approved_review)

        approved_review.refresh_from_db()
        assert approved_review.status == 'APPROVED'

    def test_customers_cannot_see_report_queue(self, other_client):
        assert other_client.get('/api/admin/review-reports/').status_code == 403

    def test_resolving_report_drops_pending_count(self, other_client, admin_client, approved_review):
        report_id = self._report(other_client, approved_review).data['report_id']

        response = admin_client.post(
            f'/api/admin/review-reports/{report_id}/update_status/',
            {'status': 'RESOLVED', 'resolution_notes': 'Checked'}, format='json'
        )
        again = admin_client.post(
            f'/api/admin/review-reports/{report_id}/update_status/', {'status': 'RESOLVED'}, format='json'
        )

        assert response.status_code == 200
        assert response.data['status'] == 'RESOLVED'
        assert response.data['resolved_at'] is not None
        assert again.status_code == 400
        approved_review.refresh_from_db()
        assert approved_review.reported_count == 0

    def test_bulk_update_and_stats(self, make_user, client_for, admin_client, approved_review):
        ids = [
            self._report(client_for(make_user()), approved_review, reason=reason).data['report_id']
            for reason in ('SPAM', 'SPAM', 'HARASSMENT')
        ]

        response = admin_client.post('/api/admin/review-reports/bulk_update/', {
            'report_ids': ids[:2] + [999999], 'status': 'REJECTED_REPORT',
        }, format='json')
        stats = admin_client.get('/api/admin/review-reports/stats/')

        assert response.data['updated'] == ids[:2]
        assert response.data['skipped'] == [{'id': 999999, 'reason': 'Not found'}]
        assert stats.data['PENDING'] == 1
        assert stats.data['REJECTED_REPORT'] == 2
        assert stats.data['total'] == 3
        assert stats.data['by_reason'] == {'HARASSMENT': 1, 'SPAM': 2}


class TestFavorites:

    def test_add_and_duplicate(self, auth_client, variant):
        first = auth_client.post('/api/favorites/', {'variant': variant.pk}, format='json')
        second = auth_client.post('/api/favorites/', {'variant': variant.pk}, format='json')

        assert first.status_code == 201
        assert second.status_code == 409

    def test_removed_favorite_can_be_re_added(self, auth_client, variant):
        favorite_id = auth_client.post('/api/favorites/', {'variant': variant.pk}, format='json').data['id']
        auth_client.delete(f'/api/favorites/{favorite_id}/')

        response = auth_client.post('/api/favorites/', {'variant': variant.pk}, format='json')

        assert response.status_code == 201
        assert response.data['id'] == favorite_id

    def test_check(self, auth_client, variant):
        auth_client.post('/api/favorites/', {'variant': variant.pk}, format='json')

        response = auth_client.get('/api/favorites/check/', {'variant': variant.pk})

        assert response.data['is_favorite'] is True

    def test_bulk_add_skips_unknown(self, auth_client, variant):
        response = auth_client.post(
            '/api/favorites/bulk_add/', {'variant_ids': [variant.pk, 999999]}, format='json'
        )

        assert response.data['added'] == [variant.pk]
        assert response.data['skipped'][0]['reason'] == 'Variant not found'


def test_variant_slug_includes_options(make_variant, make_option, make_product):
    product = make_product(name='Cotton Tee')
    variant = make_variant(product=product, options=[make_option('size', 'XL')])
    variant.regenerate_slug()

    assert ProductVariant.objects.get(pk=variant.pk).slug == 'cotton-tee-xl'

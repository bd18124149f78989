from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone

from content.models import BlogPost, DynamicContent, dynamic_content_cache_key

pytestmark = pytest.mark.django_db


def _post(**fields):
    fields.setdefault('title', 'Five ways to brew chai')
    fields.setdefault('content', '<p>Boil water with ginger.</p>')
    fields.setdefault('status', BlogPost.STATUS_PUBLISHED)
    return BlogPost.objects.create(**fields)


def _banner(location_key='home-hero', **fields):
    fields.setdefault('name', 'Diwali banner')
    fields.setdefault('content_type', DynamicContent.TYPE_CAROUSEL)
    fields.setdefault('primary_image_url', 'https://cdn.example.com/diwali.jpg')
    return DynamicContent.objects.create(location_key=location_key, **fields)


class TestBlogPostModel:

    @pytest.mark.parametrize('words,minutes', [(0, 1), (200, 1), (201, 2), (1000, 5)])
    def test_read_time(self, words, minutes):
        assert BlogPost.calculate_read_time(' '.join(['word'] * words)) == minutes

    def test_read_time_ignores_markup(self):
        content = '<div class="long-attribute-list">' + ' '.join(['tea'] * 200) + '</div>'

        assert BlogPost.calculate_read_time(content) == 1

    def test_excerpt_derived_from_content(self):
        post = _post(content='<h1>Chai</h1>\n<p>' + 'spiced ' * 60 + '</p>')

        assert len(post.excerpt) == 160
        assert post.excerpt.startswith('Chai spiced')
        assert post.excerpt.endswith('...')

    def test_explicit_excerpt_kept(self):
        assert _post(excerpt='Hand written').excerpt == 'Hand written'

    def test_slug_unique(self):
        first = _post()
        second = _post()

        assert first.slug == 'five-ways-to-brew-chai'
        assert second.slug != first.slug

    def test_published_at_set_once(self):
        post = _post(status=BlogPost.STATUS_DRAFT)
        assert post.published_at is None

        post.status = BlogPost.STATUS_PUBLISHED
        post.save()
        first_published = post.published_at

        post.status = BlogPost.STATUS_ARCHIVED
        post.save()
        post.status = BlogPost.STATUS_PUBLISHED
        post.save()

        assert first_published is not None
        assert post.published_at == first_published

    def test_tags_normalised(self):
        assert _post(tags=[' Tea ', 'RECIPES', '']).tags == ['tea', 'recipes']

    def test_popular_tags(self):
        _post(tags=['tea', 'recipes'])
        _post(tags=['tea'])
        _post(tags=['coffee'], status=BlogPost.STATUS_DRAFT)

        assert BlogPost.popular_tags() == [{'tag': 'tea', 'count': 2}, {'tag': 'recipes', 'count': 1}]
        assert BlogPost.popular_tags(limit=1) == [{'tag': 'tea', 'count': 2}]


class TestBlogApi:

    def test_only_published_listed(self, api_client):
        _post()
        _post(title='Draft', status=BlogPost.STATUS_DRAFT)
        deleted = _post(title='Deleted')
        deleted.soft_delete()

        response = api_client.get('/api/blog/')

        assert [row['title'] for row in response.data['results']] == ['Five ways to brew chai']

    def test_tag_filter(self, api_client):
        _post(title='Green tea', tags=['tea'])
        _post(title='Espresso', tags=['coffee'])

        response = api_client.get('/api/blog/', {'tag': 'TEA'})

        assert [row['title'] for row in response.data['results']] == ['Green tea']

    def test_retrieve_by_slug_counts_view(self, api_client):
        post = _post()

        first = api_client.get(f'/api/blog/{post.slug}/')
        second = api_client.get(f'/api/blog/{post.slug}/')

        assert first.data['content'] == post.content
        assert second.data['views_count'] == 2

    def test_draft_not_retrievable(self, api_client):
        post = _post(status=BlogPost.STATUS_DRAFT)

        assert api_client.get(f'/api/blog/{post.slug}/').status_code == 404

    def test_popular_tags_endpoint(self, api_client):
        _post(tags=['tea'])

        assert api_client.get('/api/blog/popular_tags/').data == [{'tag': 'tea', 'count': 1}]

    def test_admin_create_and_publish(self, admin_client, admin_user):
        created = admin_client.post('/api/admin/blog/', {
            'title': 'Monsoon snacks',
            'content': 'Pakoras and more.',
            'tags': ['Snacks'],
        }, format='json')

        assert created.status_code == 201
        assert created.data['author'] == admin_user.pk
        assert created.data['status'] == BlogPost.STATUS_DRAFT
        assert created.data['published_at'] is None

        published = admin_client.post(
            f"/api/admin/blog/{created.data['id']}/update_status/", {'status': 'PUBLISHED'}, format='json'
        )

        assert published.data['published_at'] is not None

    def test_admin_only(self, auth_client):
        assert auth_client.post('/api/admin/blog/', {'title': 'x', 'content': 'y'}, format='json').status_code == 403

    def test_admin_delete_is_soft(self, admin_client):
        post = _post()

        assert admin_client.delete(f'/api/admin/blog/{post.pk}/').status_code == 204
        assert BlogPost.objects.filter(pk=post.pk).exists()
        assert not BlogPost.objects.published().filter(pk=post.pk).exists()


class TestDynamicContent:

    def test_location_lists_live_items_in_order(self, api_client):
        second = _banner(content_order=2)
        first = _banner(content_order=1)
        _banner(is_active=False)
        _banner(display_end_date=timezone.now() - timedelta(days=1))
        _banner(display_start_date=timezone.now() + timedelta(days=1))
        _banner(location_key='footer')

        response = api_client.get('/api/content/location/home-hero/')

        assert response.data['count'] == 2
        assert [row['id'] for row in response.data['results']] == [first.pk, second.pk]

    def test_location_cached_until_change(self, api_client):
        banner = _banner()
        api_client.get('/api/content/location/home-hero/')
        assert cache.get(dynamic_content_cache_key('home-hero')) is not None

        banner.is_active = False
        banner.save()

        assert cache.get(dynamic_content_cache_key('home-hero')) is None
        assert api_client.get('/api/content/location/home-hero/').data['count'] == 0

    def test_moving_location_invalidates_both(self, api_client):
        banner = _banner()
        api_client.get('/api/content/location/home-hero/')
        api_client.get('/api/content/location/sidebar/')

        banner.location_key = 'sidebar'
        banner.save()

        assert cache.get(dynamic_content_cache_key('home-hero')) is None
        assert cache.get(dynamic_content_cache_key('sidebar')) is None

    def test_delete_invalidates(self, api_client):
        banner = _banner()
        api_client.get('/api/content/location/home-hero/')

        banner.delete()

        assert api_client.get('/api/content/location/home-hero/').data['count'] == 0

    def test_locations(self, api_client):
        _banner()
        _banner()
        _banner(location_key='footer')

        response = api_client.get('/api/content/locations/')

        assert response.data == [{'location_key': 'footer', 'count': 1}, {'location_key': 'home-hero', 'count': 2}]

    def test_is_currently_active(self):
        assert _banner().is_currently_active
        assert not _banner(display_start_date=timezone.now() + timedelta(hours=1)).is_currently_active


class TestDynamicContentAdmin:

    def test_create(self, admin_client, admin_user):
        response = admin_client.post('/api/admin/content/', {
            'name': 'Free shipping strip',
            'content_type': 'MARQUEE',
            'location_key': 'top_strip',
            'main_text_content': 'Free shipping on 5+ items',
        }, format='json')

        assert response.status_code == 201
        assert response.data['created_by'] == admin_user.pk

    @pytest.mark.parametrize('payload,field', [
        ({'content_type': 'MARQUEE', 'location_key': 'top'}, 'main_text_content'),
        ({'content_type': 'OFFER', 'location_key': 'top'}, 'primary_image_url'),
        ({'content_type': 'MARQUEE', 'location_key': 'Top Strip', 'main_text_content': 'x'}, 'location_key'),
    ])
    def test_invalid(self, admin_client, payload, field):
        response = admin_client.post('/api/admin/content/', {'name': 'Bad', **payload}, format='json')

        assert response.status_code == 400
        assert field in response.data

    def test_end_before_start(self, admin_client):
        now = timezone.now()
        response = admin_client.post('/api/admin/content/', {
            'name': 'Backwards',
            'content_type': 'PROMO',
            'location_key': 'home',
            'primary_image_url': 'https://cdn.example.com/p.jpg',
            'display_start_date': now.isoformat(),
            'display_end_date': (now - timedelta(days=1)).isoformat(),
        }, format='json')

        assert response.status_code == 400
        assert 'display_end_date' in response.data

    def test_toggle_active(self, admin_client):
        banner = _banner()

        response = admin_client.post(f'/api/admin/content/{banner.pk}/toggle_active/')

        assert response.data['is_active'] is False
        assert response.data['is_currently_active'] is False

    def test_stats(self, admin_client):
        _banner()
        _banner(is_active=False, location_key='footer')

        response = admin_client.get('/api/admin/content/stats/')

        assert response.data['total'] == 2
        assert response.data['currently_live'] == 1
        assert response.data['locations'] == 2

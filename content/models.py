"""
Content Models - blog posts and storefront content blocks
"""
import math
import re

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.html import strip_tags

from core.models import TimeStampedModel
from core.utils import unique_slugify

WORDS_PER_MINUTE = 200
EXCERPT_LENGTH = 160


def dynamic_content_cache_key(location_key):
    return f"dynamic_content:{location_key}"


# ============================================================================
# BLOG POST
# ============================================================================

class BlogPostQuerySet(models.QuerySet):

    def alive(self):
        return self.filter(deleted_at__isnull=True)

    def published(self):
        return self.alive().filter(status=BlogPost.STATUS_PUBLISHED)


class BlogPost(TimeStampedModel):

    STATUS_DRAFT = 'DRAFT'
    STATUS_PUBLISHED = 'PUBLISHED'
    STATUS_PENDING_REVIEW = 'PENDING_REVIEW'
    STATUS_ARCHIVED = 'ARCHIVED'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_PUBLISHED, 'Published'),
        (STATUS_PENDING_REVIEW, 'Pending Review'),
        (STATUS_ARCHIVED, 'Archived'),
    ]

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='blog_posts'
    )
    title = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, unique=True, blank=True)
    excerpt = models.CharField(max_length=500, blank=True)
    content = models.TextField()
    featured_image = models.URLField(max_length=500, blank=True)
    category = models.CharField(max_length=100, blank=True)
    tags = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    published_at = models.DateTimeField(null=True, blank=True)
    read_time_minutes = models.PositiveIntegerField(default=1)
    views_count = models.PositiveIntegerField(default=0)
    seo_title = models.CharField(max_length=60, blank=True)
    meta_description = models.CharField(max_length=160, blank=True)
    is_featured = models.BooleanField(default=False)
    comments_enabled = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = BlogPostQuerySet.as_manager()

    class Meta:
        ordering = ['-published_at', '-created_at']
        indexes = [
            models.Index(fields=['status', 'published_at']),
            models.Index(fields=['category']),
        ]

    def __str__(self):
        return self.title

    @staticmethod
    def calculate_read_time(content):
        words = len(strip_tags(content or '').split())
        return max(1, math.ceil(words / WORDS_PER_MINUTE))

    @staticmethod
    def derive_excerpt(content):
        text = re.sub(r'\s+', ' ', strip_tags(content or '')).strip()
        if len(text) <= EXCERPT_LENGTH:
            return text
        return text[:EXCERPT_LENGTH - 3].rstrip() + '...'

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slugify(self, self.title, max_length=220)
        self.read_time_minutes = self.calculate_read_time(self.content)
        if not self.excerpt:
            self.excerpt = self.derive_excerpt(self.content)
        if self.status == self.STATUS_PUBLISHED and not self.published_at:
            self.published_at = timezone.now()
        self.tags = [str(tag).strip().lower() for tag in (self.tags or []) if str(tag).strip()]
        super().save(*args, **kwargs)

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at', 'updated_at'])

    def increment_views(self):
        BlogPost.objects.filter(pk=self.pk).update(views_count=models.F('views_count') + 1)
        self.refresh_from_db(fields=['views_count'])

    @classmethod
    def popular_tags(cls, limit=20):
        """[{'tag', 'count'}] across published posts, most used first"""
        counts = {}
        for tags in cls.objects.published().values_list('tags', flat=True):
            for tag in tags or []:
                counts[tag] = counts.get(tag, 0) + 1
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [{'tag': tag, 'count': count} for tag, count in ranked[:limit]]


# ============================================================================
# DYNAMIC CONTENT - carousels, marquees, ads and offers placed by location key
# ============================================================================

location_key_validator = RegexValidator(
    regex=r'^[a-z0-9_-]+$',
    message='Use lowercase letters, numbers, hyphens and underscores only'
)


class DynamicContent(TimeStampedModel):

    TYPE_CAROUSEL = 'CAROUSEL'
    TYPE_MARQUEE = 'MARQUEE'
    TYPE_CHOICES = [
        (TYPE_CAROUSEL, 'Carousel'),
        (TYPE_MARQUEE, 'Marquee'),
        ('ADVERTISEMENT', 'Advertisement'),
        ('OFFER', 'Offer'),
        ('PROMO', 'Promo'),
    ]

    name = models.CharField(max_length=100)
    content_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    location_key = models.CharField(max_length=100, validators=[location_key_validator])
    content_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    display_start_date = models.DateTimeField(null=True, blank=True)
    display_end_date = models.DateTimeField(null=True, blank=True)

    primary_image_url = models.URLField(max_length=500, blank=True)
    mobile_image_url = models.URLField(max_length=500, blank=True)
    alt_text = models.CharField(max_length=200, blank=True)
    caption = models.CharField(max_length=300, blank=True)
    main_text_content = models.TextField(max_length=1000, blank=True)
    link_url = models.CharField(max_length=500, blank=True)
    cta_text = models.CharField(max_length=50, blank=True)
    target_audience_tags = models.JSONField(default=list, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='dynamic_content'
    )

    class Meta:
        ordering = ['location_key', 'content_order', 'created_at']
        indexes = [
            models.Index(fields=['location_key', 'is_active', 'content_order']),
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._loaded_location_key = self.location_key

    def __str__(self):
        return f"{self.name} ({self.content_type} @ {self.location_key})"

    def clean(self):
        if self.display_start_date and self.display_end_date and self.display_end_date <= self.display_start_date:
            raise ValidationError({'display_end_date': 'End date must be after the start date.'})
        if self.content_type == self.TYPE_MARQUEE and not self.main_text_content:
            raise ValidationError({'main_text_content': 'Marquee content needs text.'})
        if self.content_type != self.TYPE_MARQUEE and not self.primary_image_url:
            raise ValidationError({'primary_image_url': f'{self.content_type} content needs an image.'})

    def _invalidate(self):
        cache.delete(dynamic_content_cache_key(self.location_key))
        if self._loaded_location_key and self._loaded_location_key != self.location_key:
            cache.delete(dynamic_content_cache_key(self._loaded_location_key))

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        self._invalidate()
        self._loaded_location_key = self.location_key

    def delete(self, *args, **kwargs):
        result = super().delete(*args, **kwargs)
        self._invalidate()
        return result

    @property
    def is_currently_active(self):
        now = timezone.now()
        return (
            self.is_active
            and (self.display_start_date is None or self.display_start_date <= now)
            and (self.display_end_date is None or self.display_end_date > now)
        )

    @classmethod
    def live(cls):
        now = timezone.now()
        return cls.objects.filter(is_active=True).filter(
            Q(display_start_date__isnull=True) | Q(display_start_date__lte=now)
        ).filter(
            Q(display_end_date__isnull=True) | Q(display_end_date__gt=now)
        )

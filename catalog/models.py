"""
Catalog Models - Categories, brands, options, products, variants,
reviews and favorites
"""
from decimal import Decimal

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.validators import (
    MinValueValidator, MaxValueValidator, MinLengthValidator, RegexValidator
)
from django.db import models
from django.db.models import Avg, Count
from django.utils import timezone
from django.utils.text import slugify

from core.models import TimeStampedModel
from core.utils import unique_slugify, money

CATEGORY_TREE_CACHE_KEY = 'catalog:category_tree'


def validate_url_list(value):
    """JSON list of http(s) URLs"""
    if not isinstance(value, list):
        raise ValidationError('Must be a list of URLs.')
    for url in value:
        if not isinstance(url, str) or not url.startswith(('http://', 'https://')):
            raise ValidationError(f'Invalid image URL: {url}')


# ============================================================================
# CATEGORY - Hierarchical product categories
# ============================================================================

class Category(TimeStampedModel):
    """Product category, may be nested under a parent"""

    name = models.CharField(max_length=100, unique=True)
    slug = models.SlugField(max_length=120, unique=True, blank=True)
    description = models.CharField(max_length=500, blank=True)
    parent_category = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='subcategories'
    )
    image_url = models.URLField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'Categories'
        indexes = [
            models.Index(fields=['parent_category', 'is_active']),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        # A category cannot sit below itself
        parent = self.parent_category
        while parent is not None:
            if parent.pk == self.pk:
                raise ValidationError({'parent_category': 'A category cannot be its own ancestor.'})
            parent = parent.parent_category

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slugify(self, self.name, max_length=120)
        super().save(*args, **kwargs)
        cache.delete(CATEGORY_TREE_CACHE_KEY)

    def delete(self, *args, **kwargs):
        result = super().delete(*args, **kwargs)
        cache.delete(CATEGORY_TREE_CACHE_KEY)
        return result

    @classmethod
    def get_tree(cls):
        """Nested active categories, cached until a category changes"""
        tree = cache.get(CATEGORY_TREE_CACHE_KEY)
        if tree is not None:
            return tree

        categories = list(cls.objects.filter(is_active=True).order_by('name'))
        nodes = {
            category.pk: {
                'id': category.pk,
                'name': category.name,
                'slug': category.slug,
                'image_url': category.image_url,
                'children': [],
            }
            for category in categories
        }
        tree = []
        for category in categories:
            node = nodes[category.pk]
            parent = nodes.get(category.parent_category_id)
            if parent:
                parent['children'].append(node)
            else:
                tree.append(node)

        cache.set(CATEGORY_TREE_CACHE_KEY, tree, settings.CATALOG_CACHE_TIMEOUT)
        return tree

    def get_path(self):
        """Names from root down to this category"""
        path = [self.name]
        parent = self.parent_category
        while parent is not None:
            path.insert(0, parent.name)
            parent = parent.parent_category
        return path


# ============================================================================
# BRAND
# ============================================================================

class Brand(TimeStampedModel):
    name = models.CharField(max_length=100, unique=True)
    slug = models.SlugField(max_length=120, unique=True, blank=True)
    description = models.CharField(max_length=1000, blank=True)
    logo_url = models.URLField(blank=True)
    website = models.URLField(blank=True)
    contact_email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slugify(self, self.name, max_length=120)
        super().save(*args, **kwargs)


# ============================================================================
# OPTION - Variant attribute values (size, color, pack, ...)
# ============================================================================

class Option(TimeStampedModel):
    """
    A single attribute value a variant can carry.
    option_type 'pack' is special: its value is the number of base units
    """
    PACK_TYPE = 'pack'

    option_type = models.CharField(max_length=50, help_text="e.g. 'size', 'color', 'pack'")
    option_value = models.CharField(max_length=100, help_text="e.g. 'XL', 'Red', '6'")
    name = models.CharField(max_length=150, blank=True, help_text="Display name")
    slug = models.SlugField(max_length=200, unique=True, blank=True)
    sort_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['option_type', 'sort_order', 'option_value']
        constraints = [
            models.UniqueConstraint(
                fields=['option_type', 'option_value'],
                name='unique_option_type_value'
            )
        ]

    def __str__(self):
        return f"{self.option_type}: {self.option_value}"

    def save(self, *args, **kwargs):
        self.option_type = self.option_type.strip().lower()
        self.option_value = self.option_value.strip()
        if not self.name:
            self.name = self.option_value
        if not self.slug:
            self.slug = unique_slugify(self, f"{self.option_type}-{self.option_value}", max_length=200)
        super().save(*args, **kwargs)

    @property
    def is_pack(self):
        return self.option_type == self.PACK_TYPE


# ============================================================================
# PRODUCT
# ============================================================================

class Product(TimeStampedModel):
    """Catalog product; sellable units are its variants"""

    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='products')
    brand = models.ForeignKey(
        Brand,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='products'
    )

    name = models.CharField(max_length=200, unique=True, validators=[MinLengthValidator(2)])
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(max_length=2000)
    short_description = models.CharField(max_length=500, blank=True)
    images = models.JSONField(default=list, blank=True, validators=[validate_url_list])

    score = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(5)],
        help_text="Merchandising score used for sorting"
    )

    # SEO
    meta_title = models.CharField(max_length=60, blank=True)
    meta_description = models.CharField(max_length=160, blank=True)

    # Ratings (maintained from approved reviews)
    average_rating = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(5)]
    )
    reviews_count = models.PositiveIntegerField(default=0)
    rating_distribution = models.JSONField(default=dict, blank=True)

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['category', 'is_active']),
            models.Index(fields=['brand', 'is_active']),
            models.Index(fields=['created_at']),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slugify(self, self.name)

        # Auto-generate SEO fields if empty
        if not self.meta_title and self.name:
            self.meta_title = self.name if len(self.name) <= 60 else f"{self.name[:57]}..."
        if not self.meta_description and self.description:
            self.meta_description = (
                self.description if len(self.description) <= 160
                else f"{self.description[:157]}..."
            )

        super().save(*args, **kwargs)

    @property
    def primary_image(self):
        return self.images[0] if self.images else None

    def soft_delete(self):
        self.is_active = False
        self.save(update_fields=['is_active', 'updated_at'])

    def refresh_rating_summary(self):
        """Recompute rating fields from approved reviews across all variants"""
        approved = ProductReview.objects.filter(variant__product=self, status=ProductReview.STATUS_APPROVED)
        summary = approved.aggregate(avg=Avg('rating'), count=Count('id'))
        distribution = {str(star): 0 for star in range(1, 6)}
        for row in approved.values('rating').annotate(count=Count('id')):
            distribution[str(row['rating'])] = row['count']

        self.average_rating = money(summary['avg'] or 0)
        self.reviews_count = summary['count']
        self.rating_distribution = distribution
        self.save(update_fields=['average_rating', 'reviews_count', 'rating_distribution', 'updated_at'])


# ============================================================================
# PRODUCT VARIANT - Sellable SKU
# ============================================================================

sku_validator = RegexValidator(
    regex=r'^[A-Z0-9_-]+$',
    message='SKU may only contain uppercase letters, numbers, hyphens and underscores'
)


class ProductVariant(TimeStampedModel):
    """
    A SKU of a product defined by a set of option values.
    Pack variants share stock with their base-unit sibling (see inventory.services)
    """
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='variants')
    option_values = models.ManyToManyField(Option, blank=True, related_name='variants')

    sku_code = models.CharField(
        max_length=50,
        unique=True,
        validators=[MinLengthValidator(3), sku_validator]
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    # Discount
    discount_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0'))]
    )
    discount_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    discount_end_date = models.DateTimeField(null=True, blank=True)
    is_on_sale = models.BooleanField(default=False)

    slug = models.SlugField(max_length=255, unique=True, blank=True)

    # Physical
    dimensions = models.JSONField(default=dict, blank=True, help_text="length/width/height/unit")
    weight = models.DecimalField(
        max_digits=10,
        decimal_places=3,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text="Weight in kg"
    )
    packaging_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    shipping_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0, validators=[MinValueValidator(0)])

    images = models.JSONField(default=list, blank=True, validators=[validate_url_list])
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)

    # Ratings (maintained from approved reviews)
    average_rating = models.DecimalField(max_digits=3, decimal_places=2, default=0)
    reviews_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['sort_order', 'sku_code']
        indexes = [
            models.Index(fields=['product', 'is_active']),
            models.Index(fields=['is_on_sale']),
        ]

    def __str__(self):
        return f"{self.product.name} [{self.sku_code}]"

    def save(self, *args, **kwargs):
        self.sku_code = (self.sku_code or '').strip().upper()
        self.expire_sale()

        if not self.slug:
            self.slug = self.build_slug()

        super().save(*args, **kwargs)

    def clean(self):
        if self.is_on_sale:
            if self.discount_price is None:
                raise ValidationError({'discount_price': 'A sale needs a discount price.'})
            if self.discount_price >= self.price:
                raise ValidationError({'discount_price': 'Discount price must be lower than price.'})

    def build_slug(self):
        parts = [self.product.slug]
        if self.pk:
            parts.extend(option.option_value for option in self.option_values.all())
        return unique_slugify(self, '-'.join(parts))

    def regenerate_slug(self):
        """Call after option_values change"""
        self.slug = self.build_slug()
        self.save(update_fields=['slug', 'updated_at'])

    def expire_sale(self):
        """Switch the sale off once the discount end date has passed"""
        if self.is_on_sale and self.discount_end_date and self.discount_end_date < timezone.now():
            self.is_on_sale = False
            return True
        return False

    @property
    def effective_price(self):
        """Discount price while on sale, else regular price"""
        if self.is_on_sale and self.discount_price:
            if not self.discount_end_date or self.discount_end_date >= timezone.now():
                return self.discount_price
        return self.price

    @property
    def savings_amount(self):
        return self.price - self.effective_price

    @property
    def computed_discount_percentage(self):
        if self.effective_price < self.price:
            return int(round((self.price - self.effective_price) / self.price * 100))
        return 0

    @property
    def option_summary(self):
        """[{'type': 'size', 'value': 'XL'}, ...] used for order snapshots"""
        return [
            {'type': option.option_type, 'value': option.option_value}
            for option in self.option_values.all()
        ]

    @classmethod
    def has_duplicate_option_set(cls, product, option_ids, exclude_pk=None):
        """True if another active variant of ``product`` has exactly these options"""
        wanted = set(int(pk) for pk in option_ids)
        siblings = cls.objects.filter(product=product, is_active=True).exclude(pk=exclude_pk)
        for sibling in siblings.prefetch_related('option_values'):
            if {option.pk for option in sibling.option_values.all()} == wanted:
                return True
        return False

    def soft_delete(self):
        self.is_active = False
        self.save(update_fields=['is_active', 'updated_at'])

    def refresh_rating_summary(self):
        approved = self.reviews.filter(status=ProductReview.STATUS_APPROVED)
        summary = approved.aggregate(avg=Avg('rating'), count=Count('id'))
        self.average_rating = money(summary['avg'] or 0)
        self.reviews_count = summary['count']
        self.save(update_fields=['average_rating', 'reviews_count', 'updated_at'])
        self.product.refresh_rating_summary()


# ============================================================================
# PRODUCT REVIEW - Moderated customer reviews
# ============================================================================

class ProductReview(TimeStampedModel):
    """Customer review of a variant"""

    STATUS_PENDING = 'PENDING_APPROVAL'
    STATUS_APPROVED = 'APPROVED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_FLAGGED = 'FLAGGED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending approval'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_FLAGGED, 'Flagged'),
    ]

    # Reports needed before a review is flagged automatically
    FLAG_THRESHOLD = 5

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='reviews')
    variant = models.ForeignKey(ProductVariant, on_delete=models.CASCADE, related_name='reviews')

    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    title = models.CharField(max_length=100, blank=True)
    review_text = models.TextField(max_length=2000, blank=True)
    image_urls = models.JSONField(default=list, blank=True, validators=[validate_url_list])

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    is_verified_buyer = models.BooleanField(default=False)

    helpful_votes = models.PositiveIntegerField(default=0)
    unhelpful_votes = models.PositiveIntegerField(default=0)
    reported_count = models.PositiveIntegerField(default=0)

    moderated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='moderated_reviews'
    )
    moderated_at = models.DateTimeField(null=True, blank=True)
    moderation_note = models.CharField(max_length=500, blank=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['user', 'variant'], name='unique_review_per_user_variant')
        ]
        indexes = [
            models.Index(fields=['variant', 'status']),
        ]

    def __str__(self):
        return f"{self.rating}★ {self.variant.sku_code} by {self.user.email}"

    def record_vote(self, helpful):
        field = 'helpful_votes' if helpful else 'unhelpful_votes'
        setattr(self, field, getattr(self, field) + 1)
        self.save(update_fields=[field, 'updated_at'])

    def report(self, reporter, reason, custom_reason=''):
        """
        File ``reporter``'s report against this review.
        Raises IntegrityError when the same user reports twice.
        """
        report = ReviewReport.objects.create(
            review=self,
            reporter=reporter,
            reason=reason,
            custom_reason=custom_reason,
        )
        self.refresh_reported_count()
        return report

    def refresh_reported_count(self):
        """reported_count = pending reports; flag the review once the threshold is reached"""
        self.reported_count = self.reports.filter(status=ReviewReport.STATUS_PENDING).count()
        update_fields = ['reported_count', 'updated_at']
        was_approved = self.status == self.STATUS_APPROVED
        if self.reported_count >= self.FLAG_THRESHOLD and self.status != self.STATUS_FLAGGED:
            self.status = self.STATUS_FLAGGED
            update_fields.append('status')
        self.save(update_fields=update_fields)
        if was_approved and self.status == self.STATUS_FLAGGED:
            self.variant.refresh_rating_summary()

    def moderate(self, new_status, moderator, note=''):
        old_status = self.status
        self.status = new_status
        self.moderated_by = moderator
        self.moderated_at = timezone.now()
        self.moderation_note = note
        self.save()
        if self.STATUS_APPROVED in (old_status, new_status):
            self.variant.refresh_rating_summary()


class ReviewReport(TimeStampedModel):
    """A single user's report against a review"""

    REASON_OTHER = 'OTHER'
    REASON_CHOICES = [
        ('SPAM', 'Spam'),
        ('ABUSIVE_LANGUAGE', 'Abusive language'),
        ('OFFENSIVE_CONTENT', 'Offensive content'),
        ('FAKE_REVIEW', 'Fake review'),
        ('INAPPROPRIATE_CONTENT', 'Inappropriate content'),
        ('HARASSMENT', 'Harassment'),
        ('MISLEADING_INFORMATION', 'Misleading information'),
        ('COPYRIGHT_VIOLATION', 'Copyright violation'),
        ('OTHER', 'Other'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_RESOLVED = 'RESOLVED'
    STATUS_REJECTED = 'REJECTED_REPORT'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_RESOLVED, 'Resolved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    review = models.ForeignKey(ProductReview, on_delete=models.CASCADE, related_name='reports')
    reporter = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='review_reports')
    reason = models.CharField(max_length=30, choices=REASON_CHOICES)
    custom_reason = models.CharField(max_length=500, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='resolved_review_reports'
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolution_notes = models.CharField(max_length=1000, blank=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['review', 'reporter'], name='unique_report_per_user_review')
        ]
        indexes = [
            models.Index(fields=['status', 'created_at']),
        ]

    def __str__(self):
        return f"{self.reason} on review {self.review_id} by {self.reporter.email}"

    @property
    def is_pending(self):
        return self.status == self.STATUS_PENDING

    def close(self, new_status, moderator, notes=''):
        """Resolve or reject; the review's pending count drops by one"""
        self.status = new_status
        self.resolved_by = moderator
        self.resolved_at = timezone.now()
        self.resolution_notes = notes
        self.save(update_fields=['status', 'resolved_by', 'resolved_at', 'resolution_notes', 'updated_at'])
        self.review.refresh_reported_count()

    def delete(self, *args, **kwargs):
        review = self.review
        result = super().delete(*args, **kwargs)
        review.refresh_reported_count()
        return result


# ============================================================================
# FAVORITE - User wishlist entries
# ============================================================================

class Favorite(TimeStampedModel):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='favorites')
    variant = models.ForeignKey(ProductVariant, on_delete=models.CASCADE, related_name='favorites')
    user_notes = models.CharField(max_length=500, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['user', 'variant'], name='unique_favorite_per_user_variant')
        ]

    def __str__(self):
        return f"{self.user.email} ♥ {self.variant.sku_code}"

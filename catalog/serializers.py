"""
Catalog Serializers
"""
import re

from rest_framework import serializers
from rest_framework.exceptions import ValidationError

from .models import (
    Category, Brand, Option, Product, ProductVariant, ProductReview, ReviewReport, Favorite
)

SKU_PATTERN = re.compile(r'^[A-Z0-9_-]+$')


# ============================================================================
# CATEGORY / BRAND / OPTION
# ============================================================================

class CategorySerializer(serializers.ModelSerializer):
    path = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = [
            'id', 'name', 'slug', 'description', 'parent_category',
            'image_url', 'is_active', 'path', 'created_at', 'updated_at'
        ]
        read_only_fields = ['slug', 'created_at', 'updated_at']

    def get_path(self, obj):
        return obj.get_path()

    def validate(self, data):
        parent = data.get('parent_category')
        if parent and self.instance:
            node = parent
            while node is not None:
                if node.pk == self.instance.pk:
                    raise ValidationError({"parent_category": "A category cannot be its own ancestor."})
                node = node.parent_category
        return data


class BrandSerializer(serializers.ModelSerializer):
    products_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Brand
        fields = [
            'id', 'name', 'slug', 'description', 'logo_url', 'website',
            'contact_email', 'is_active', 'products_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['slug', 'created_at', 'updated_at']


class OptionSerializer(serializers.ModelSerializer):

    class Meta:
        model = Option
        fields = ['id', 'option_type', 'option_value', 'name', 'slug', 'sort_order', 'is_active']
        read_only_fields = ['slug']

    def validate(self, data):
        option_type = data.get('option_type', getattr(self.instance, 'option_type', '')).strip().lower()
        option_value = data.get('option_value', getattr(self.instance, 'option_value', '')).strip()

        if option_type == Option.PACK_TYPE:
            try:
                if int(option_value) < 1:
                    raise ValueError
            except ValueError:
                raise ValidationError({"option_value": "Pack option value must be a positive whole number."})

        duplicate = Option.objects.filter(option_type=option_type, option_value=option_value)
        if self.instance:
            duplicate = duplicate.exclude(pk=self.instance.pk)
        if duplicate.exists():
            raise ValidationError({"option_value": "This option already exists."})

        return data


# ============================================================================
# VARIANT SERIALIZER
# ============================================================================

class ProductVariantSerializer(serializers.ModelSerializer):
    """Variant with computed pricing"""
    option_values = serializers.PrimaryKeyRelatedField(
        queryset=Option.objects.filter(is_active=True),
        many=True,
        required=False
    )
    options = serializers.SerializerMethodField()
    product_name = serializers.CharField(source='product.name', read_only=True)
    effective_price = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    savings_amount = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    computed_discount_percentage = serializers.IntegerField(read_only=True)

    class Meta:
        model = ProductVariant
        fields = [
            'id', 'product', 'product_name', 'option_values', 'options', 'sku_code',
            'price', 'discount_price', 'discount_percentage', 'discount_end_date',
            'is_on_sale', 'effective_price', 'savings_amount', 'computed_discount_percentage',
            'slug', 'dimensions', 'weight', 'packaging_cost', 'shipping_cost', 'images',
            'is_active', 'sort_order', 'average_rating', 'reviews_count',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['slug', 'average_rating', 'reviews_count', 'created_at', 'updated_at']
        extra_kwargs = {
            # Normalised to upper case before validation
            'sku_code': {'validators': []},
        }

    def get_options(self, obj):
        return obj.option_summary

    def validate_sku_code(self, value):
        value = value.strip().upper()
        if len(value) < 3:
            raise ValidationError("SKU code must be at least 3 characters.")
        if not SKU_PATTERN.match(value):
            raise ValidationError("SKU may only contain letters, numbers, hyphens and underscores.")
        duplicate = ProductVariant.objects.filter(sku_code=value)
        if self.instance:
            duplicate = duplicate.exclude(pk=self.instance.pk)
        if duplicate.exists():
            raise ValidationError("A variant with this SKU already exists.")
        return value

    def validate(self, data):
        product = data.get('product', getattr(self.instance, 'product', None))
        price = data.get('price', getattr(self.instance, 'price', None))
        is_on_sale = data.get('is_on_sale', getattr(self.instance, 'is_on_sale', False))
        discount_price = data.get('discount_price', getattr(self.instance, 'discount_price', None))

        if is_on_sale:
            if discount_price is None:
                raise ValidationError({"discount_price": "A sale needs a discount price."})
            if price is not None and discount_price >= price:
                raise ValidationError({"discount_price": "Discount price must be lower than price."})

        if 'option_values' in data and product is not None:
            option_ids = [option.pk for option in data['option_values']]
            pack_options = [option for option in data['option_values'] if option.is_pack]
            if len(pack_options) > 1:
                raise ValidationError({"option_values": "A variant can carry only one pack option."})
            exclude_pk = self.instance.pk if self.instance else None
            if ProductVariant.has_duplicate_option_set(product, option_ids, exclude_pk):
                raise ValidationError(
                    {"option_values": "A variant with this combination of options already exists for this product."}
                )

        return data

    def create(self, validated_data):
        option_values = validated_data.pop('option_values', [])
        variant = ProductVariant.objects.create(**validated_data)
        if option_values:
            variant.option_values.set(option_values)
            variant.regenerate_slug()
        return variant

    def update(self, instance, validated_data):
        option_values = validated_data.pop('option_values', None)
        instance = super().update(instance, validated_data)
        if option_values is not None:
            instance.option_values.set(option_values)
            instance.regenerate_slug()
        return instance


# ============================================================================
# PRODUCT SERIALIZERS
# ============================================================================

class ProductListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for product listings"""
    category_name = serializers.CharField(source='category.name', read_only=True)
    brand_name = serializers.CharField(source='brand.name', read_only=True, default=None)
    primary_image = serializers.CharField(read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'slug', 'short_description', 'category', 'category_name',
            'brand', 'brand_name', 'primary_image', 'score', 'average_rating',
            'reviews_count', 'is_active', 'created_at'
        ]


class ProductDetailSerializer(serializers.ModelSerializer):
    """Full product with active variants"""
    category_name = serializers.CharField(source='category.name', read_only=True)
    brand_name = serializers.CharField(source='brand.name', read_only=True, default=None)
    variants = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'slug', 'description', 'short_description', 'category',
            'category_name', 'brand', 'brand_name', 'images', 'score', 'meta_title',
            'meta_description', 'average_rating', 'reviews_count', 'rating_distribution',
            'is_active', 'variants', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'slug', 'average_rating', 'reviews_count', 'rating_distribution',
            'created_at', 'updated_at'
        ]

    def get_variants(self, obj):
        variants = obj.variants.filter(is_active=True).prefetch_related('option_values')
        return ProductVariantSerializer(variants, many=True).data

    def validate_meta_title(self, value):
        if len(value) > 60:
            return f"{value[:57]}..."
        return value

    def validate_category(self, value):
        if not value.is_active:
            raise ValidationError("Category is inactive.")
        return value


# ============================================================================
# REVIEW / FAVORITE
# ============================================================================

class ProductReviewSerializer(serializers.ModelSerializer):
    user_name = serializers.SerializerMethodField()
    sku_code = serializers.CharField(source='variant.sku_code', read_only=True)

    class Meta:
        model = ProductReview
        fields = [
            'id', 'user', 'user_name', 'variant', 'sku_code', 'rating', 'title',
            'review_text', 'image_urls', 'status', 'is_verified_buyer',
            'helpful_votes', 'unhelpful_votes', 'reported_count',
            'moderated_at', 'moderation_note', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'user', 'status', 'is_verified_buyer', 'helpful_votes', 'unhelpful_votes',
            'reported_count', 'moderated_at', 'moderation_note', 'created_at', 'updated_at'
        ]

    def get_user_name(self, obj):
        return obj.user.full_name or obj.user.email.split('@')[0]

    def validate_variant(self, value):
        if not value.is_active:
            raise ValidationError("Variant is not available.")
        if self.instance and self.instance.variant_id != value.pk:
            raise ValidationError("A review cannot be moved to another variant.")
        return value

    def validate(self, data):
        request = self.context.get('request')
        variant = data.get('variant')
        if not self.instance and request and variant:
            if ProductReview.objects.filter(user=request.user, variant=variant).exists():
                raise ValidationError({"variant": "You have already reviewed this variant."})
        return data


class ModerateReviewSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        ProductReview.STATUS_APPROVED,
        ProductReview.STATUS_REJECTED,
        ProductReview.STATUS_FLAGGED,
    ])
    note = serializers.CharField(max_length=500, required=False, allow_blank=True)


class ReportReviewSerializer(serializers.Serializer):
    reason = serializers.ChoiceField(choices=ReviewReport.REASON_CHOICES)
    custom_reason = serializers.CharField(max_length=500, required=False, allow_blank=True)

    def validate(self, data):
        if data['reason'] == ReviewReport.REASON_OTHER and not data.get('custom_reason', '').strip():
            raise ValidationError({"custom_reason": "Describe the problem when the reason is Other."})
        return data


class ReviewReportSerializer(serializers.ModelSerializer):
    reporter_email = serializers.EmailField(source='reporter.email', read_only=True)
    review_summary = serializers.SerializerMethodField()

    class Meta:
        model = ReviewReport
        fields = [
            'id', 'review', 'review_summary', 'reporter', 'reporter_email', 'reason',
            'custom_reason', 'status', 'resolved_by', 'resolved_at', 'resolution_notes',
            'created_at'
        ]
        read_only_fields = fields

    def get_review_summary(self, obj):
        review = obj.review
        return {
            'rating': review.rating,
            'title': review.title,
            'status': review.status,
            'user': review.user_id,
            'reported_count': review.reported_count,
        }


class ReportStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[ReviewReport.STATUS_RESOLVED, ReviewReport.STATUS_REJECTED])
    resolution_notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class BulkReportStatusSerializer(ReportStatusSerializer):
    report_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False, max_length=100)



class FavoriteSerializer(serializers.ModelSerializer):
    variant_detail = ProductVariantSerializer(source='variant', read_only=True)

    class Meta:
        model = Favorite
        fields = ['id', 'variant', 'variant_detail', 'user_notes', 'is_active', 'created_at']
        read_only_fields = ['is_active', 'created_at']
        # Re-adding a removed favorite re-activates it
        validators = []

    def validate_variant(self, value):
        if not value.is_active:
            raise ValidationError("Variant is not available.")
        return value

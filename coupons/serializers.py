from rest_framework import serializers
from rest_framework.exceptions import ValidationError

from catalog.models import Category, ProductVariant
from .models import CouponCampaign, UserCoupon, ELIGIBILITY_CHOICES


class CouponCampaignSerializer(serializers.ModelSerializer):
    applicable_categories = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(), many=True, required=False
    )
    applicable_variants = serializers.PrimaryKeyRelatedField(
        queryset=ProductVariant.objects.all(), many=True, required=False
    )
    eligibility_criteria = serializers.ListField(
        child=serializers.ChoiceField(choices=ELIGIBILITY_CHOICES),
        allow_empty=False,
        required=False
    )
    is_valid = serializers.BooleanField(read_only=True)
    has_restrictions = serializers.BooleanField(read_only=True)
    usage_stats = serializers.DictField(read_only=True)

    class Meta:
        model = CouponCampaign
        fields = [
            'id', 'name', 'slug', 'description', 'code_prefix', 'discount_type',
            'discount_value', 'min_purchase_amount', 'max_coupon_discount',
            'valid_from', 'valid_until', 'max_global_usage', 'current_global_usage',
            'max_usage_per_user', 'is_unique_per_user', 'eligibility_criteria',
            'applicable_categories', 'applicable_variants', 'is_active',
            'is_valid', 'has_restrictions', 'usage_stats', 'created_at', 'updated_at'
        ]
        read_only_fields = ['slug', 'current_global_usage', 'created_at', 'updated_at']

    def validate_code_prefix(self, value):
        value = value.strip().upper()
        if value and not all(ch.isalnum() or ch == '-' for ch in value):
            raise ValidationError("Prefix may only contain letters, numbers and hyphens.")
        return value

    def validate(self, data):
        def current(field):
            return data.get(field, getattr(self.instance, field, None))

        discount_type = current('discount_type')
        discount_value = current('discount_value')
        if discount_type == CouponCampaign.DISCOUNT_PERCENTAGE and discount_value is not None:
            if not (0 < discount_value <= 100):
                raise ValidationError({"discount_value": "Percentage discount must be between 0 and 100."})

        valid_from = current('valid_from')
        valid_until = current('valid_until')
        if valid_from and valid_until and valid_until <= valid_from:
            raise ValidationError({"valid_until": "End date must be after start date."})

        return data


class UserCouponSerializer(serializers.ModelSerializer):
    campaign_name = serializers.CharField(source='campaign.name', read_only=True)
    discount_type = serializers.CharField(source='campaign.discount_type', read_only=True)
    discount_value = serializers.DecimalField(
        source='campaign.discount_value', max_digits=10, decimal_places=2, read_only=True
    )
    min_purchase_amount = serializers.DecimalField(
        source='campaign.min_purchase_amount', max_digits=10, decimal_places=2, read_only=True
    )
    status = serializers.CharField(read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = UserCoupon
        fields = [
            'id', 'campaign', 'campaign_name', 'user', 'user_email', 'coupon_code',
            'discount_type', 'discount_value', 'min_purchase_amount',
            'current_usage_count', 'expires_at', 'is_redeemed', 'redeemed_at',
            'is_active', 'status', 'created_at'
        ]
        read_only_fields = fields


class GenerateCouponsSerializer(serializers.Serializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    number_of_codes = serializers.IntegerField(min_value=1, max_value=100, default=1)


class ValidateCouponSerializer(serializers.Serializer):
    coupon_code = serializers.CharField(max_length=50)

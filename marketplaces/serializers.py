"""
Marketplace Serializers
"""
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from rest_framework import serializers

from .models import Platform, PlatformFee, Listing


def _clean_merged(model, instance, data):
    """Run model.clean() on instance state overlaid with ``data``"""
    candidate = model()
    if instance is not None:
        for field in model._meta.concrete_fields:
            setattr(candidate, field.attname, getattr(instance, field.attname))
    for key, value in data.items():
        setattr(candidate, key, value)
    try:
        candidate.clean()
    except DjangoValidationError as e:
        raise serializers.ValidationError(e.message_dict)


class PlatformSerializer(serializers.ModelSerializer):
    has_api_credentials = serializers.BooleanField(read_only=True)
    listings_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Platform
        fields = [
            'id', 'name', 'slug', 'description', 'base_url', 'logo_url',
            'api_credentials_placeholder', 'has_api_credentials', 'is_active',
            'listings_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['slug', 'created_at', 'updated_at']


class PlatformFeeSerializer(serializers.ModelSerializer):
    platform_name = serializers.CharField(source='platform.name', read_only=True)
    formatted_value = serializers.CharField(read_only=True)
    is_currently_active = serializers.BooleanField(read_only=True)
    fee_summary = serializers.CharField(read_only=True)

    class Meta:
        model = PlatformFee
        fields = [
            'id', 'platform', 'platform_name', 'fee_type', 'description', 'value',
            'is_percentage', 'formatted_value', 'effective_date', 'end_date',
            'is_active', 'is_currently_active', 'fee_summary', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_at', 'updated_at']

    def validate_effective_date(self, value):
        if self.instance is None and value.date() < timezone.localdate():
            raise serializers.ValidationError("Effective date cannot be in the past.")
        return value

    def validate(self, data):
        _clean_merged(PlatformFee, self.instance, data)
        return data


class ListingSerializer(serializers.ModelSerializer):
    sku_code = serializers.CharField(source='variant.sku_code', read_only=True)
    platform_name = serializers.CharField(source='platform.name', read_only=True)
    total_platform_fees = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    estimated_net_revenue = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    is_live_and_active = serializers.BooleanField(read_only=True)
    needs_sync = serializers.BooleanField(read_only=True)

    class Meta:
        model = Listing
        fields = [
            'id', 'variant', 'sku_code', 'platform', 'platform_name',
            'platform_sku', 'platform_product_id', 'listing_status', 'platform_price',
            'platform_commission_percentage', 'platform_fixed_fee', 'platform_shipping_fee',
            'total_platform_fees', 'estimated_net_revenue', 'is_live_and_active',
            'needs_sync', 'last_synced_at', 'platform_specific_data', 'is_active_on_platform',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['last_synced_at', 'created_at', 'updated_at']

    def validate_platform(self, value):
        if not value.is_active and (self.instance is None or self.instance.platform_id != value.pk):
            raise serializers.ValidationError("Cannot list on an inactive platform.")
        return value

    def validate(self, data):
        if self.instance is not None:
            for field in ('variant', 'platform'):
                if field in data and getattr(self.instance, f'{field}_id') != data[field].pk:
                    raise serializers.ValidationError({field: "A listing cannot be moved."})
        elif Listing.objects.filter(variant=data.get('variant'), platform=data.get('platform')).exists():
            raise serializers.ValidationError("This variant is already listed on this platform.")
        _clean_merged(Listing, self.instance, data)
        return data

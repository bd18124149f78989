"""
Core Serializers - Authentication, profiles and addresses
"""
from django.contrib.auth import authenticate, get_user_model
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .models import Address

User = get_user_model()


# ============================================================================
# USER SERIALIZERS
# ============================================================================

class UserSerializer(serializers.ModelSerializer):
    """Public profile of the requesting user"""
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'username', 'first_name', 'last_name', 'full_name',
            'phone', 'role', 'user_group', 'date_joined', 'is_active'
        ]
        read_only_fields = ['id', 'email', 'role', 'user_group', 'date_joined', 'is_active']


class AdminUserSerializer(serializers.ModelSerializer):
    """User as seen by admins"""
    full_name = serializers.CharField(read_only=True)
    referred_by_email = serializers.EmailField(source='referred_by.email', read_only=True, default=None)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'username', 'first_name', 'last_name', 'full_name',
            'phone', 'role', 'user_group', 'referred_by', 'referred_by_email',
            'is_active', 'date_joined', 'last_login'
        ]
        read_only_fields = ['id', 'email', 'date_joined', 'last_login']


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)
    referral_email = serializers.EmailField(write_only=True, required=False)

    class Meta:
        model = User
        fields = ['email', 'password', 'first_name', 'last_name', 'phone', 'referral_email']

    def validate_email(self, value):
        value = value.lower().strip()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        referral_email = validated_data.pop('referral_email', None)
        referred_by = None
        if referral_email:
            referred_by = User.objects.filter(email__iexact=referral_email).first()

        return User.objects.create_user(
            username=validated_data['email'],
            referred_by=referred_by,
            **validated_data
        )


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        user = authenticate(
            request=self.context.get('request'),
            email=data['email'].lower().strip(),
            password=data['password']
        )
        if not user:
            raise serializers.ValidationError({"detail": "Invalid email or password."})
        data['user'] = user
        return data


class RefreshSerializer(serializers.Serializer):
    refresh = serializers.CharField()


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, min_length=8)

    def validate_current_password(self, value):
        user = self.context['request'].user
        if not user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value

    def validate_new_password(self, value):
        validate_password(value, self.context['request'].user)
        return value


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()


class ResetPasswordSerializer(serializers.Serializer):
    uid = serializers.CharField()
    token = serializers.CharField()
    new_password = serializers.CharField(write_only=True, min_length=8)

    def validate_new_password(self, value):
        validate_password(value)
        return value


# ============================================================================
# ADDRESS SERIALIZER
# ============================================================================

class AddressSerializer(serializers.ModelSerializer):

    class Meta:
        model = Address
        exclude = ['user']
        read_only_fields = ['is_active', 'usage_count', 'created_at', 'updated_at']

    def validate(self, data):
        lat = data.get('latitude', getattr(self.instance, 'latitude', None))
        lng = data.get('longitude', getattr(self.instance, 'longitude', None))
        if (lat is None) != (lng is None):
            raise serializers.ValidationError(
                {"latitude": "Latitude and longitude must be provided together."}
            )
        return data

    def create(self, validated_data):
        user = self.context['request'].user
        # First address becomes the default
        if not Address.objects.filter(user=user, is_active=True).exists():
            validated_data['is_default'] = True
        return Address.objects.create(user=user, **validated_data)

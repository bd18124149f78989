"""
Content Serializers
"""
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .models import BlogPost, DynamicContent


class BlogPostListSerializer(serializers.ModelSerializer):
    author_name = serializers.SerializerMethodField()

    class Meta:
        model = BlogPost
        fields = [
            'id', 'title', 'slug', 'excerpt', 'featured_image', 'category',
            'tags', 'author_name', 'published_at', 'read_time_minutes',
            'views_count', 'is_featured'
        ]

    def get_author_name(self, obj):
        if obj.author is None:
            return None
        return obj.author.get_full_name() or obj.author.email


class BlogPostSerializer(BlogPostListSerializer):

    class Meta(BlogPostListSerializer.Meta):
        fields = BlogPostListSerializer.Meta.fields + [
            'author', 'content', 'status', 'seo_title', 'meta_description',
            'comments_enabled', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'author', 'slug', 'published_at', 'read_time_minutes', 'views_count',
            'created_at', 'updated_at'
        ]

    def validate_tags(self, value):
        if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
            raise serializers.ValidationError('Tags must be a list of strings.')
        return value


class BlogStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=BlogPost.STATUS_CHOICES)


class DynamicContentPublicSerializer(serializers.ModelSerializer):

    class Meta:
        model = DynamicContent
        fields = [
            'id', 'name', 'content_type', 'location_key', 'content_order',
            'primary_image_url', 'mobile_image_url', 'alt_text', 'caption',
            'main_text_content', 'link_url', 'cta_text', 'target_audience_tags', 'metadata'
        ]


class DynamicContentSerializer(serializers.ModelSerializer):
    is_currently_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = DynamicContent
        fields = DynamicContentPublicSerializer.Meta.fields + [
            'is_active', 'is_currently_active', 'display_start_date', 'display_end_date',
            'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def validate(self, data):
        instance = DynamicContent()
        if self.instance is not None:
            for field in DynamicContent._meta.concrete_fields:
                setattr(instance, field.attname, getattr(self.instance, field.attname))
        for key, value in data.items():
            setattr(instance, key, value)
        try:
            instance.clean()
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.message_dict)
        return data

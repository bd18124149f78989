# core/utils.py
import threading
from decimal import Decimal, ROUND_HALF_UP

from django.utils.text import slugify

# Thread-local storage for request context
# MUST be defined here and imported everywhere to avoid circular imports
_thread_locals = threading.local()

TWO_PLACES = Decimal('0.01')


def get_current_request():
    """Get the current request from thread-local storage"""
    return getattr(_thread_locals, 'request', None)

def set_current_request(request):
    """Set the current request in thread-local storage"""
    _thread_locals.request = request

def clear_thread_locals():
    """Clear all thread-local data (for cleanup)"""
    if hasattr(_thread_locals, 'request'):
        del _thread_locals.request


def money(value):
    """Round a number to 2 decimal places as Decimal"""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def unique_slugify(instance, value, slug_field='slug', max_length=255):
    """
    Generate a unique slug for ``instance`` from ``value``.
    Appends -1, -2, ... until no other row uses it.
    """
    base_slug = slugify(value)[:max_length] or 'item'
    slug = base_slug
    counter = 1

    model = instance.__class__
    while model.objects.filter(**{slug_field: slug}).exclude(pk=instance.pk).exists():
        suffix = f"-{counter}"
        slug = f"{base_slug[:max_length - len(suffix)]}{suffix}"
        counter += 1

    return slug


def get_client_ip(request):
    """Extract client IP from request"""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or 'unknown'

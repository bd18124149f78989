# core/middleware.py
import logging
from django.conf import settings
from django.http import JsonResponse
from django_ratelimit.decorators import ratelimit
from django_ratelimit.exceptions import Ratelimited

# ✅ CRITICAL: Import thread-local utilities from utils
from .utils import set_current_request, clear_thread_locals, get_client_ip

logger = logging.getLogger(__name__)


class RequestContextMiddleware:
    """
    Request context middleware.
    Stores the request in thread-local storage for logging, applies the
    per-IP API rate limit and adds security headers.
    """

    # Paths covered by the per-IP rate limit
    RATE_LIMITED_PATHS = [
        '/api/',
    ]

    def __init__(self, get_response):
        self.get_response = get_response
        self.rate_limit_config = getattr(settings, 'API_RATE_LIMIT', '300/m')

    def __call__(self, request):
        """Main middleware entry point"""

        # Store request in thread-local for logging
        set_current_request(request)

        try:
            # 🚦 1. Apply Rate Limiting to API calls
            if self._is_rate_limited_path(request.path):
                try:
                    self._apply_rate_limiting(request)
                except Ratelimited:
                    logger.warning(
                        f"Rate limit exceeded for {request.method} {request.path}",
                        extra={'client_ip': get_client_ip(request)}
                    )
                    return JsonResponse({
                        "detail": "Rate limit exceeded. Please try again later.",
                        "code": "rate_limit_exceeded"
                    }, status=429)

            response = self.get_response(request)

            # 🛡️ 2. Add Security Headers
            self._add_security_headers(response)

            return response

        finally:
            # 🧹 3. Always clean up thread-local storage
            clear_thread_locals()

    def _is_rate_limited_path(self, path):
        return any(path.startswith(prefix) for prefix in self.RATE_LIMITED_PATHS)

    def _apply_rate_limiting(self, request):
        """Apply per-IP rate limiting"""
        @ratelimit(key='ip', rate=self.rate_limit_config)
        def rate_limit_check(req):
            return None

        rate_limit_check(request)

    def _add_security_headers(self, response):
        """Add security headers to response"""
        response['X-Content-Type-Options'] = 'nosniff'
        response['X-Frame-Options'] = 'DENY'

        if not settings.DEBUG:
            response['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
            response['Content-Security-Policy'] = "default-src 'self'"

# core/logging.py
import logging

from .utils import get_current_request, get_client_ip


class RequestContextFilter(logging.Filter):
    """Add request context to log records"""

    def filter(self, record):
        request = get_current_request()
        if request:
            user = getattr(request, 'user', None)
            if user is not None and user.is_authenticated:
                record.user = user.email
            else:
                record.user = 'anonymous'
            record.path = request.path
            record.method = request.method
            record.ip = get_client_ip(request)
        else:
            record.user = 'system'
            record.path = 'N/A'
            record.method = 'N/A'
            record.ip = 'N/A'

        return True


class AuditContextFilter(logging.Filter):
    """Flatten the ``audit`` extra dict into a printable field"""

    def filter(self, record):
        audit = getattr(record, 'audit', None)
        if audit:
            record.audit_context = ' '.join(f"{key}={value}" for key, value in audit.items())
        else:
            record.audit_context = ''
        return True

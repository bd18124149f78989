"""
Activity trail for admin mutations and user actions
Written to the 'audit.admin' and 'audit.user' loggers (see settings.LOGGING)
"""
import logging

admin_audit_logger = logging.getLogger('audit.admin')
user_activity_logger = logging.getLogger('audit.user')


def _actor_email(user):
    return getattr(user, 'email', None) or 'system'


def log_admin_action(admin, action_type, resource_type, resource_id, details=None):
    """Record an admin mutation"""
    admin_audit_logger.info(
        f"{action_type} {resource_type}#{resource_id} by {_actor_email(admin)}",
        extra={
            'audit': {
                'admin_id': getattr(admin, 'pk', None),
                'action_type': action_type,
                'resource_type': resource_type,
                'resource_id': resource_id,
                'details': details or {},
            }
        }
    )


def log_user_activity(user, action_type, resource_type, resource_id, details=None):
    """Record a user-initiated action"""
    user_activity_logger.info(
        f"{action_type} {resource_type}#{resource_id} by {_actor_email(user)}",
        extra={
            'audit': {
                'user_id': getattr(user, 'pk', None),
                'action_type': action_type,
                'resource_type': resource_type,
                'resource_id': resource_id,
                'details': details or {},
            }
        }
    )

# CRUD operations package

from .user import user_crud
from .user_settings import user_settings_crud
from .subscription import subscription_crud
from .payment import payment_crud
from .activity_log import activity_log_crud
from .integration_config import integration_config_crud
from .webhook_event import webhook_event_crud

__all__ = [
    'user_crud',
    'user_settings_crud',
    'subscription_crud',
    'payment_crud',
    'activity_log_crud',
    'integration_config_crud',
    'webhook_event_crud'
]

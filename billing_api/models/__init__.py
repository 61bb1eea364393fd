# Database models package

from .base import Base
from .user import User, UserRole
from .user_settings import UserSettings
from .subscription import Subscription, SubscriptionPlan, SubscriptionStatus, BillingCycle
from .payment import Payment, PaymentStatus
from .activity_log import ActivityLog
from .integration_config import IntegrationConfig
from .webhook_event import WebhookEventRecord, WebhookEventStatus

__all__ = [
    'Base',
    'User',
    'UserRole',
    'UserSettings',
    'Subscription',
    'SubscriptionPlan',
    'SubscriptionStatus',
    'BillingCycle',
    'Payment',
    'PaymentStatus',
    'ActivityLog',
    'IntegrationConfig',
    'WebhookEventRecord',
    'WebhookEventStatus',
]

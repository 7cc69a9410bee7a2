"""
Services
Long-running components and external collaborator clients.
"""

from .dispatcher import AlertDispatcher, get_dispatcher
from .metric_feed import MetricFeedService, FeedStats, get_metric_feed
from .collaborators import (
    DeploymentManager,
    NotificationSink,
    HttpDeploymentManager,
    WebhookNotificationSink,
    LogNotificationSink,
)

__all__ = [
    "AlertDispatcher",
    "get_dispatcher",
    "MetricFeedService",
    "FeedStats",
    "get_metric_feed",
    "DeploymentManager",
    "NotificationSink",
    "HttpDeploymentManager",
    "WebhookNotificationSink",
    "LogNotificationSink",
]

"""
External Collaborators
Clients for the systems the engine talks to but does not implement.

    DeploymentManager  → rollback(deployment_id) -> {status, version}
    NotificationSink   → notify(alert) -> ack (bool)

HTTP clients are blocking (requests); actions call them through
asyncio.to_thread so the engine's timeout can abandon a hung call.
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import requests

from ..exceptions import ActionFailure

logger = logging.getLogger(__name__)


@runtime_checkable
class DeploymentManager(Protocol):
    def rollback(self, deployment_id: Optional[str] = None) -> Dict[str, Any]:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    def notify(self, alert: Dict[str, Any]) -> bool:
        ...


# =============================================================================
# HTTP implementations
# =============================================================================

class HttpDeploymentManager:
    """
    Deployment manager reached over HTTP.

    POST {base_url}/rollback  {"deployment_id": ...}  → {"status", "version"}
    """

    def __init__(self, base_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def rollback(self, deployment_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            resp = self.session.post(
                f"{self.base_url}/rollback",
                json={"deployment_id": deployment_id},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.RequestException as e:
            raise ActionFailure(f"rollback request failed: {e}") from e
        except ValueError as e:
            raise ActionFailure(f"rollback response was not JSON: {e}") from e


class WebhookNotificationSink:
    """Posts alerts as JSON to a webhook URL; any 2xx is an ack."""

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def notify(self, alert: Dict[str, Any]) -> bool:
        try:
            resp = self.session.post(self.url, json=alert, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning("Webhook delivery failed: %s", e)
            return False
        return resp.ok


class LogNotificationSink:
    """Default sink: writes alerts to the log and always acks."""

    def __init__(self, level: int = logging.WARNING):
        self.level = level

    def notify(self, alert: Dict[str, Any]) -> bool:
        logger.log(self.level, "ALERT: %s", alert.get("message", alert))
        return True

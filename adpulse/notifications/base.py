"""
Notification channel interface and shared anomaly formatting.

Each channel implements NotificationDispatcher.send(anomaly, config) -> bool.
A False return or a raised exception counts as one failed delivery for that
(anomaly, channel) pair; it never prevents delivery on other channels (see
adpulse.notifications.dispatch).
"""

from abc import ABC, abstractmethod
from typing import Dict

from adpulse.models.enums import NotificationChannel, Severity
from adpulse.models.schemas import Anomaly, NotificationChannelConfig
from adpulse.services.anomaly_detector import format_metric_value


SEVERITY_EMOJI: Dict[Severity, str] = {
    Severity.HIGH: '🚨',
    Severity.MEDIUM: '⚠️',
    Severity.LOW: 'ℹ️',
}

SEVERITY_COLOR: Dict[Severity, str] = {
    Severity.HIGH: '#dc2626',
    Severity.MEDIUM: '#f59e0b',
    Severity.LOW: '#3b82f6',
}


class NotificationDispatcher(ABC):
    """Delivers one anomaly over one channel."""

    channel: NotificationChannel

    @abstractmethod
    async def send(self, anomaly: Anomaly, config: NotificationChannelConfig, dashboard_url: str = '') -> bool:
        """
        Deliver the anomaly to the channel's destination.

        Returns:
            True when the provider accepted the message, False otherwise.
        """


def format_previous(anomaly: Anomaly) -> str:
    return format_metric_value(anomaly.previous_value, anomaly.metric_type)


def format_current(anomaly: Anomaly) -> str:
    return format_metric_value(anomaly.current_value, anomaly.metric_type)


def format_change(anomaly: Anomaly) -> str:
    """Signed percent change, e.g. '+30.0%' or '-22.5%'."""
    sign = '+' if anomaly.percent_change >= 0 else ''
    return f"{sign}{anomaly.percent_change:.1f}%"


def format_detected_at(anomaly: Anomaly) -> str:
    return anomaly.detected_at.strftime('%Y-%m-%d %H:%M:%S UTC')

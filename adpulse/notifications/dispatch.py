"""
Best-effort fan-out of anomalies to every enabled channel.

Every (anomaly, channel) pair is attempted exactly once per cycle: a channel
that returns False or raises is recorded as a failed delivery and the next
pair is still attempted. There are no retries within a cycle; a persisting
condition is detected and sent again on the next cycle.
"""

import logging
from typing import Dict, List

from adpulse.core.events import emit_event
from adpulse.models.enums import NotificationChannel
from adpulse.models.schemas import (
    Anomaly,
    DeliveryRecord,
    NotificationChannelConfig,
    NotificationSummary,
)
from adpulse.notifications.base import NotificationDispatcher
from adpulse.services.errors import NotificationFailure


logger = logging.getLogger(__name__)


async def _deliver(
    dispatcher: NotificationDispatcher,
    anomaly: Anomaly,
    config: NotificationChannelConfig,
    dashboard_url: str,
) -> DeliveryRecord:
    try:
        delivered = await dispatcher.send(anomaly, config, dashboard_url)
        if not delivered:
            raise NotificationFailure(config.channel, f"{config.channel.value} delivery rejected", anomaly.id)
    except Exception as exc:
        logger.error(f"Failed to deliver {anomaly.id} via {config.channel.value}: {exc}")
        return DeliveryRecord(anomaly_id=anomaly.id, channel=config.channel, delivered=False, error=str(exc))

    return DeliveryRecord(anomaly_id=anomaly.id, channel=config.channel, delivered=True)


async def dispatch_anomalies(
    anomalies: List[Anomaly],
    channels: List[NotificationChannelConfig],
    dispatchers: Dict[NotificationChannel, NotificationDispatcher],
    dashboard_url: str = '',
) -> NotificationSummary:
    """
    Send every anomaly over every enabled channel.

    Args:
        anomalies: Anomalies detected this cycle.
        channels: Configured channels; disabled or destination-less ones are skipped.
        dispatchers: Channel implementations keyed by channel type.
        dashboard_url: Link included in the messages.

    Returns:
        NotificationSummary with one DeliveryRecord per attempt.
    """
    summary = NotificationSummary()
    enabled = [config for config in channels if config.enabled and config.recipients()]

    if not anomalies or not enabled:
        return summary

    for anomaly in anomalies:
        for config in enabled:
            dispatcher = dispatchers.get(config.channel)
            if dispatcher is None:
                record = DeliveryRecord(
                    anomaly_id=anomaly.id,
                    channel=config.channel,
                    delivered=False,
                    error=f"No dispatcher registered for {config.channel.value}",
                )
            else:
                record = await _deliver(dispatcher, anomaly, config, dashboard_url)

            summary.records.append(record)
            if record.delivered:
                summary.delivered += 1
            else:
                summary.failed += 1

            emit_event(
                "notify",
                "sent" if record.delivered else "failed",
                anomaly=anomaly.id,
                channel=config.channel.value,
            )

    return summary

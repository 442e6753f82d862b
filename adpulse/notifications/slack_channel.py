"""
Chat webhook notifications via Slack incoming webhooks.

Messages are Slack Block Kit payloads posted with the WebhookClient from
slack-sdk. WebhookClient is synchronous, so sends run in a worker thread to
keep the event loop free while other deliveries proceed.

Destination format:
    https://hooks.slack.com/services/xxx/yyy/zzz

Block layout:
    - header: severity emoji + anomaly title
    - section: description
    - section fields: provider, severity, previous, current, change, detected
    - actions: "View Dashboard" button (when a dashboard URL is configured)
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List

from slack_sdk.webhook import WebhookClient

from adpulse.models.enums import NotificationChannel
from adpulse.models.schemas import Anomaly, NotificationChannelConfig
from adpulse.notifications.base import (
    SEVERITY_EMOJI,
    NotificationDispatcher,
    format_change,
    format_current,
    format_detected_at,
    format_previous,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Slack Message Formatting
# =============================================================================

def format_slack_message(anomaly: Anomaly, dashboard_url: str = '') -> List[Dict[str, Any]]:
    """
    Format one anomaly into Slack Block Kit blocks.

    Args:
        anomaly: Detected anomaly to announce.
        dashboard_url: Link target for the "View Dashboard" button; the
            actions block is omitted when empty.

    Returns:
        List of Block Kit block dicts ready to send via WebhookClient.
    """
    emoji = SEVERITY_EMOJI[anomaly.severity]
    blocks: List[Dict[str, Any]] = []

    blocks.append({
        "type": "header",
        "text": {
            "type": "plain_text",
            "text": f"{emoji} {anomaly.title}",
            "emoji": True
        }
    })

    blocks.append({
        "type": "section",
        "text": {
            "type": "mrkdwn",
            "text": anomaly.description
        }
    })

    blocks.append({
        "type": "section",
        "fields": [
            {"type": "mrkdwn", "text": f"*Provider:*\n{anomaly.provider.label}"},
            {"type": "mrkdwn", "text": f"*Severity:*\n{anomaly.severity.value.upper()}"},
            {"type": "mrkdwn", "text": f"*Previous:*\n{format_previous(anomaly)}"},
            {"type": "mrkdwn", "text": f"*Current:*\n{format_current(anomaly)}"},
            {"type": "mrkdwn", "text": f"*Change:*\n{format_change(anomaly)}"},
            {"type": "mrkdwn", "text": f"*Detected:*\n{format_detected_at(anomaly)}"},
        ]
    })

    if dashboard_url:
        blocks.append({
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {
                        "type": "plain_text",
                        "text": "View Dashboard",
                        "emoji": True
                    },
                    "url": dashboard_url,
                    "style": "danger" if anomaly.severity.value == 'high' else "primary"
                }
            ]
        })

    return blocks


# =============================================================================
# Dispatcher
# =============================================================================

class SlackWebhookDispatcher(NotificationDispatcher):
    """
    Posts anomalies to a Slack incoming webhook.

    Args:
        client_factory: Builds a client for a webhook URL (WebhookClient by
            default; injectable for tests).
    """

    channel = NotificationChannel.CHAT_WEBHOOK

    def __init__(self, client_factory: Callable[[str], WebhookClient] = WebhookClient):
        self._client_factory = client_factory

    def _post(self, url: str, text: str, blocks: List[Dict[str, Any]]) -> int:
        client = self._client_factory(url)
        response = client.send(text=text, blocks=blocks)
        if response.status_code != 200:
            logger.error(f"Slack API returned status {response.status_code}: {response.body}")
        return response.status_code

    async def send(self, anomaly: Anomaly, config: NotificationChannelConfig, dashboard_url: str = '') -> bool:
        recipients = config.recipients()
        if not recipients:
            logger.warning("Slack alert skipped: no webhook URL configured")
            return False

        url = recipients[0]
        if not url.startswith('https://'):
            logger.error("Slack alert skipped: webhook URL must start with https://")
            return False

        blocks = format_slack_message(anomaly, dashboard_url)
        status_code = await asyncio.to_thread(self._post, url, anomaly.title, blocks)
        return status_code == 200

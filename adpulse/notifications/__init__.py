"""
Alert delivery channels.

- email_channel: Resend HTTP API via httpx
- slack_channel: Slack incoming webhook via slack-sdk WebhookClient
- dispatch: best-effort fan-out of anomalies to every enabled channel
"""

from adpulse.notifications.base import NotificationDispatcher
from adpulse.notifications.dispatch import dispatch_anomalies
from adpulse.notifications.email_channel import EmailDispatcher
from adpulse.notifications.slack_channel import SlackWebhookDispatcher

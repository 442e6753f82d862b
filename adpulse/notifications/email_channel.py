"""
Email notifications via the Resend HTTP API.

One message per anomaly, addressed to every recipient in the channel's
destination list:

    POST https://api.resend.com/emails
    Authorization: Bearer <RESEND_API_KEY>
    {"from": ..., "to": [...], "subject": "⚠️ HIGH Alert: <title>", "html": ...}

A missing API key, an empty recipient list, a transport error or a non-2xx
response all return False.
"""

import html
import logging
from typing import Optional

import httpx

from adpulse.models.enums import NotificationChannel
from adpulse.models.schemas import Anomaly, NotificationChannelConfig
from adpulse.notifications.base import (
    SEVERITY_COLOR,
    NotificationDispatcher,
    format_change,
    format_current,
    format_detected_at,
    format_previous,
)


logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = 'https://api.resend.com/emails'

DEFAULT_SENDER = 'Marketing Dashboard <alerts@example.com>'


def build_subject(anomaly: Anomaly) -> str:
    return f"⚠️ {anomaly.severity.value.upper()} Alert: {anomaly.title}"


def build_html(anomaly: Anomaly, dashboard_url: str = '') -> str:
    """Inline-styled HTML body for one anomaly."""
    color = SEVERITY_COLOR[anomaly.severity]
    rows = [
        ('Provider', anomaly.provider.label),
        ('Severity', anomaly.severity.value.upper()),
        ('Previous', format_previous(anomaly)),
        ('Current', format_current(anomaly)),
        ('Change', format_change(anomaly)),
        ('Detected', format_detected_at(anomaly)),
    ]
    table = ''.join(
        f'<tr><td style="padding:4px 12px 4px 0;color:#6b7280">{label}</td>'
        f'<td style="padding:4px 0"><strong>{html.escape(value)}</strong></td></tr>'
        for label, value in rows
    )
    button = ''
    if dashboard_url:
        button = (
            f'<p><a href="{html.escape(dashboard_url, quote=True)}" '
            f'style="background:{color};color:#fff;padding:10px 16px;'
            f'border-radius:6px;text-decoration:none">View Dashboard</a></p>'
        )

    return (
        f'<div style="font-family:Arial,sans-serif;max-width:600px">'
        f'<div style="border-left:4px solid {color};padding-left:12px">'
        f'<h2 style="margin:0 0 8px 0">{html.escape(anomaly.title)}</h2>'
        f'<p>{html.escape(anomaly.description)}</p>'
        f'</div>'
        f'<table style="margin-top:12px">{table}</table>'
        f'{button}'
        f'</div>'
    )


class EmailDispatcher(NotificationDispatcher):
    """
    Sends anomaly emails through Resend.

    Args:
        api_key: Resend API key; without one every send returns False.
        sender: From address.
        client: Shared httpx.AsyncClient (a short-lived one is used if None).
        timeout: Per-request timeout in seconds.
    """

    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        api_key: Optional[str],
        sender: str = DEFAULT_SENDER,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.sender = sender
        self._client = client
        self.timeout = timeout

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {'Authorization': f'Bearer {self.api_key}'}
        if self._client is not None:
            return await self._client.post(RESEND_EMAILS_URL, json=payload, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(RESEND_EMAILS_URL, json=payload, headers=headers)

    async def send(self, anomaly: Anomaly, config: NotificationChannelConfig, dashboard_url: str = '') -> bool:
        if not self.api_key:
            logger.warning("Email alert skipped: RESEND_API_KEY not configured")
            return False

        recipients = config.recipients()
        if not recipients:
            logger.warning("Email alert skipped: no recipients configured")
            return False

        payload = {
            'from': self.sender,
            'to': recipients,
            'subject': build_subject(anomaly),
            'html': build_html(anomaly, dashboard_url),
        }

        try:
            response = await self._post(payload)
        except httpx.HTTPError as exc:
            logger.error(f"Failed to send email alert {anomaly.id}: {exc}")
            return False

        if response.is_error:
            logger.error(
                f"Resend rejected email alert {anomaly.id}: HTTP {response.status_code} {response.text}"
            )
            return False

        logger.info(f"Email alert {anomaly.id} sent to {len(recipients)} recipient(s)")
        return True

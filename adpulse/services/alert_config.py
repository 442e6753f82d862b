"""
Durable alert configuration: thresholds and notification channels.

Stored as a singleton JSON document (`{cache_dir}/alert-settings.json`).
The detector only reads it; changes arrive through explicit settings updates,
so disabling a threshold takes effect on the next cycle without code changes.

Reading:
- No document yet: defaults are written and returned.
- Stored document missing some default thresholds (new metric types added
  since it was written): the missing defaults are merged in by id.
- Corrupt document: defaults are returned and the error is logged.
"""

import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from adpulse.models.enums import AlertMetricType, NotificationChannel
from adpulse.models.schemas import AlertSettings, AlertThreshold, NotificationChannelConfig
from adpulse.services.snapshot_cache import atomic_write_text


logger = logging.getLogger(__name__)

ALERT_SETTINGS_FILENAME = 'alert-settings.json'


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_ALERT_THRESHOLDS: List[AlertThreshold] = [
    AlertThreshold(
        id='spend-increase',
        name='Spend Increase Alert',
        metric_type=AlertMetricType.SPEND_INCREASE,
        enabled=True,
        threshold_percent=30,
        description='Alert when ad spend increases by more than 30% over the baseline',
    ),
    AlertThreshold(
        id='ctr-drop',
        name='CTR Drop Alert',
        metric_type=AlertMetricType.CTR_DROP,
        enabled=True,
        threshold_percent=20,
        description='Alert when click-through rate drops by more than 20% below the baseline',
    ),
    AlertThreshold(
        id='conversion-drop',
        name='Conversion Drop Alert',
        metric_type=AlertMetricType.CONVERSION_DROP,
        enabled=True,
        threshold_percent=20,
        description='Alert when conversions drop by more than 20%',
    ),
    AlertThreshold(
        id='cost-per-conversion-increase',
        name='Cost Per Conversion Increase',
        metric_type=AlertMetricType.COST_PER_CONVERSION_INCREASE,
        enabled=True,
        threshold_percent=25,
        description='Alert when cost per conversion increases by more than 25%',
    ),
    AlertThreshold(
        id='revenue-drop',
        name='Revenue Drop Alert',
        metric_type=AlertMetricType.REVENUE_DROP,
        enabled=False,
        threshold_percent=25,
        description='Alert when revenue drops by more than 25%',
    ),
]


def default_settings(dashboard_url: str = 'http://localhost:3000') -> AlertSettings:
    """Default thresholds, both channels disabled."""
    return AlertSettings(
        thresholds=[threshold.model_copy() for threshold in DEFAULT_ALERT_THRESHOLDS],
        channels=[
            NotificationChannelConfig(channel=NotificationChannel.EMAIL, enabled=False, destination=[]),
            NotificationChannelConfig(channel=NotificationChannel.CHAT_WEBHOOK, enabled=False, destination=''),
        ],
        dashboard_url=dashboard_url,
    )


# =============================================================================
# Store
# =============================================================================

class AlertConfigStore:
    """JSON-file backed alert settings."""

    def __init__(self, cache_dir: Path, dashboard_url: str = 'http://localhost:3000'):
        self.path = Path(cache_dir) / ALERT_SETTINGS_FILENAME
        self.dashboard_url = dashboard_url

    def read(self) -> AlertSettings:
        defaults = default_settings(self.dashboard_url)

        if not self.path.exists():
            self.write(defaults)
            return defaults

        try:
            stored = AlertSettings.model_validate_json(self.path.read_text(encoding='utf-8'))
        except (OSError, ValidationError) as exc:
            logger.error(f"Error reading alert settings from {self.path}: {exc}")
            return defaults

        known_ids = {threshold.id for threshold in stored.thresholds}
        missing = [threshold for threshold in defaults.thresholds if threshold.id not in known_ids]

        known_channels = {config.channel for config in stored.channels}
        missing_channels = [config for config in defaults.channels if config.channel not in known_channels]

        if not missing and not missing_channels:
            return stored
        return stored.model_copy(update={
            'thresholds': stored.thresholds + missing,
            'channels': stored.channels + missing_channels,
        })

    def write(self, settings: AlertSettings) -> bool:
        try:
            atomic_write_text(self.path, settings.model_dump_json(indent=2))
        except OSError as exc:
            logger.error(f"Error writing alert settings to {self.path}: {exc}")
            return False
        return True

    def update_threshold(
        self,
        threshold_id: str,
        enabled: Optional[bool] = None,
        threshold_percent: Optional[float] = None,
    ) -> bool:
        """Update one threshold in place; False for an unknown id or invalid value."""
        settings = self.read()

        updated: List[AlertThreshold] = []
        found = False
        for threshold in settings.thresholds:
            if threshold.id == threshold_id:
                found = True
                changes = {}
                if enabled is not None:
                    changes['enabled'] = enabled
                if threshold_percent is not None:
                    if threshold_percent < 0:
                        return False
                    changes['threshold_percent'] = threshold_percent
                threshold = threshold.model_copy(update=changes)
            updated.append(threshold)

        if not found:
            return False
        return self.write(settings.model_copy(update={'thresholds': updated}))

    def update_channels(self, channels: List[NotificationChannelConfig]) -> bool:
        """Replace the configs of the given channels, keeping the others."""
        settings = self.read()
        replacements = {config.channel: config for config in channels}
        merged = [replacements.pop(config.channel, config) for config in settings.channels]
        merged.extend(replacements.values())
        return self.write(settings.model_copy(update={'channels': merged}))

"""
Tests for AlertConfigStore: defaults, merging of new default thresholds into
stored documents, and threshold/channel updates.
"""

import json
from pathlib import Path

import pytest

from adpulse.models.enums import AlertMetricType, NotificationChannel
from adpulse.models.schemas import NotificationChannelConfig
from adpulse.services.alert_config import (
    ALERT_SETTINGS_FILENAME,
    DEFAULT_ALERT_THRESHOLDS,
    AlertConfigStore,
)


@pytest.fixture
def store(tmp_path: Path) -> AlertConfigStore:
    return AlertConfigStore(tmp_path, dashboard_url='https://dashboard.test')


class TestDefaults:

    def test_first_read_writes_defaults(self, store: AlertConfigStore, tmp_path: Path) -> None:
        settings = store.read()

        assert (tmp_path / ALERT_SETTINGS_FILENAME).exists()
        assert [t.id for t in settings.thresholds] == [t.id for t in DEFAULT_ALERT_THRESHOLDS]
        assert settings.dashboard_url == 'https://dashboard.test'
        assert settings.enabled_channels() == []

    def test_default_thresholds(self, store: AlertConfigStore) -> None:
        by_id = {t.id: t for t in store.read().thresholds}

        assert by_id['spend-increase'].threshold_percent == 30
        assert by_id['spend-increase'].metric_type == AlertMetricType.SPEND_INCREASE
        assert by_id['ctr-drop'].threshold_percent == 20
        assert by_id['revenue-drop'].enabled is False

    def test_missing_default_thresholds_are_merged(self, store: AlertConfigStore, tmp_path: Path) -> None:
        store.read()
        path = tmp_path / ALERT_SETTINGS_FILENAME
        document = json.loads(path.read_text(encoding='utf-8'))
        document['thresholds'] = [t for t in document['thresholds'] if t['id'] == 'spend-increase']
        document['thresholds'][0]['threshold_percent'] = 45
        path.write_text(json.dumps(document), encoding='utf-8')

        settings = store.read()
        by_id = {t.id: t for t in settings.thresholds}

        assert len(settings.thresholds) == len(DEFAULT_ALERT_THRESHOLDS)
        # Stored values win over defaults
        assert by_id['spend-increase'].threshold_percent == 45

    def test_corrupt_document_falls_back_to_defaults(self, store: AlertConfigStore, tmp_path: Path) -> None:
        (tmp_path / ALERT_SETTINGS_FILENAME).write_text('[]', encoding='utf-8')

        settings = store.read()

        assert len(settings.thresholds) == len(DEFAULT_ALERT_THRESHOLDS)


class TestUpdates:

    def test_disable_threshold(self, store: AlertConfigStore) -> None:
        assert store.update_threshold('spend-increase', enabled=False) is True

        enabled_ids = [t.id for t in store.read().enabled_thresholds()]
        assert 'spend-increase' not in enabled_ids
        assert 'ctr-drop' in enabled_ids

    def test_change_threshold_percent(self, store: AlertConfigStore) -> None:
        assert store.update_threshold('ctr-drop', threshold_percent=35) is True

        by_id = {t.id: t for t in store.read().thresholds}
        assert by_id['ctr-drop'].threshold_percent == 35
        assert by_id['ctr-drop'].enabled is True

    def test_unknown_threshold_is_rejected(self, store: AlertConfigStore) -> None:
        assert store.update_threshold('no-such-threshold', enabled=False) is False

    def test_negative_threshold_is_rejected(self, store: AlertConfigStore) -> None:
        assert store.update_threshold('ctr-drop', threshold_percent=-5) is False

        by_id = {t.id: t for t in store.read().thresholds}
        assert by_id['ctr-drop'].threshold_percent == 20

    def test_update_channels_replaces_by_channel(self, store: AlertConfigStore) -> None:
        webhook = NotificationChannelConfig(
            channel=NotificationChannel.CHAT_WEBHOOK,
            enabled=True,
            destination='https://hooks.slack.com/services/T/B/X',
        )

        assert store.update_channels([webhook]) is True

        settings = store.read()
        assert len(settings.channels) == 2
        assert [c.channel for c in settings.enabled_channels()] == [NotificationChannel.CHAT_WEBHOOK]

    def test_enabled_channel_without_destination_is_not_enabled(self, store: AlertConfigStore) -> None:
        store.update_channels([
            NotificationChannelConfig(channel=NotificationChannel.EMAIL, enabled=True, destination=['  ']),
        ])

        assert store.read().enabled_channels() == []

'''
adpulse Test Suite

Test Modules:
-------------
- test_authorizer.py: bearer secret and x-api-key checks
- test_rate_limiter.py: sliding window cap, concurrency
- test_fetchers.py: envelope handling, normalization, fallback outcomes
- test_snapshot_cache.py: atomic writes, corrupt documents, staleness
- test_history_store.py: per-day upsert idempotence (JSON and Postgres)
- test_alert_config.py: defaults, merging, threshold and channel updates
- test_anomaly_detector.py: baseline, direction, zero guard, severity
- test_notifications.py: email, Slack and best-effort fan-out
- test_orchestrator.py: cycle state machine and stage events
- test_api.py: HTTP contract of the trigger, cached metrics and settings routes

Running Tests:
--------------
    pip install -e ".[test]"
    pytest
'''

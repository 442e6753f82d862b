"""
adpulse: marketing metrics refresh service.

Periodically aggregates advertising and revenue metrics from several
providers, keeps the latest snapshot and a per-day history, detects
threshold anomalies against the history baseline and sends alerts by email
and Slack webhook.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, dependencies and stage events
    - models: Pydantic schemas and enums
    - services: Refresh pipeline services
    - notifications: Alert delivery channels
"""

__version__ = "1.0.0"

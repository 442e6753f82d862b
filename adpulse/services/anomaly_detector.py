"""
Threshold-based anomaly detection against trailing history.

This module compares the newest aggregate snapshot with each provider's
trailing daily history and emits typed anomalies when a configured percentage
threshold is crossed in the direction implied by the metric type.

Algorithm (per enabled threshold, per provider fetched fresh this cycle):
    1. Baseline = arithmetic mean of the metric over the most recent
       `baseline_points` history points dated strictly before the cycle date.
    2. percent_change = (current - baseline) / baseline * 100.
       A zero baseline skips the metric for this cycle (no Infinity).
    3. Increase-type thresholds fire when percent_change >= threshold;
       decrease-type thresholds fire when percent_change <= -threshold.
    4. Severity from ratio = |percent_change| / threshold:
       ratio < medium_multiplier -> low, < high_multiplier -> medium, else high.
    5. At most one anomaly per (threshold, provider) per cycle.

Guards:
    - Fewer than two prior history points with the field: provider skipped.
    - Providers that failed this cycle (including stale fallbacks) are never
      inspected; no anomaly can reference data that was not fetched.
    - An empty or fully disabled threshold list returns an empty list.

Default severity breakpoints (configurable via Settings):
    - severity_medium_multiplier = 1.5
    - severity_high_multiplier = 2.5

Usage:
    detector = AnomalyDetector(baseline_points=7)
    anomalies = await detector.detect(aggregate, history_store, settings.thresholds)
"""

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from adpulse.models.enums import AlertMetricType, Provider, Severity
from adpulse.models.schemas import AggregateSnapshot, AlertThreshold, Anomaly, HistoryPoint, MetricSnapshot
from adpulse.services.history_store import HistoryStore


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# The baseline needs at least this many prior points for a provider
MIN_HISTORY_POINTS: int = 2

DEFAULT_BASELINE_POINTS: int = 7

INCREASE = 'increase'
DECREASE = 'decrease'


@dataclass(frozen=True)
class MetricRule:
    """Normalized field, direction and display unit watched by a metric type."""
    field: str
    direction: str
    unit: str
    label: str


METRIC_RULES: Dict[AlertMetricType, MetricRule] = {
    AlertMetricType.SPEND_INCREASE: MetricRule('spend', INCREASE, 'currency', 'Spend'),
    AlertMetricType.CTR_DROP: MetricRule('ctr', DECREASE, 'percent', 'Click-through rate'),
    AlertMetricType.CONVERSION_DROP: MetricRule('conversions', DECREASE, 'count', 'Conversions'),
    AlertMetricType.COST_PER_CONVERSION_INCREASE: MetricRule(
        'cost_per_conversion', INCREASE, 'currency', 'Cost per conversion'
    ),
    AlertMetricType.REVENUE_DROP: MetricRule('revenue', DECREASE, 'currency', 'Revenue'),
}

_TITLES: Dict[AlertMetricType, str] = {
    AlertMetricType.SPEND_INCREASE: 'Spend Increase',
    AlertMetricType.CTR_DROP: 'Click-Through Rate Drop',
    AlertMetricType.CONVERSION_DROP: 'Conversion Drop Detected',
    AlertMetricType.COST_PER_CONVERSION_INCREASE: 'Cost Per Conversion Increased',
    AlertMetricType.REVENUE_DROP: 'Revenue Drop Detected',
}


# =============================================================================
# Pure Helpers
# =============================================================================

def format_metric_value(value: float, metric_type: AlertMetricType) -> str:
    """Render a metric value in its unit: $1,234.50, 2.15%, 1,234."""
    unit = METRIC_RULES[metric_type].unit
    if unit == 'currency':
        return f"${value:,.2f}"
    if unit == 'percent':
        return f"{value:.2f}%"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def calculate_baseline(values: List[float]) -> Optional[float]:
    """
    Mean of the finite values, or None with fewer than MIN_HISTORY_POINTS.

    Example:
        >>> calculate_baseline([90.0, 110.0])
        100.0
    """
    clean = [v for v in values if v is not None and math.isfinite(v)]
    if len(clean) < MIN_HISTORY_POINTS:
        return None
    return float(np.mean(np.array(clean, dtype=np.float64)))


def percent_change(current: float, baseline: float) -> Optional[float]:
    """Percent change from a signed baseline; None when the baseline is zero."""
    if baseline == 0:
        return None
    return (current - baseline) / baseline * 100


def threshold_crossed(direction: str, change: float, threshold_percent: float) -> bool:
    if direction == INCREASE:
        return change >= threshold_percent
    return change <= -threshold_percent


def classify_severity(
    change: float,
    threshold_percent: float,
    medium_multiplier: float = 1.5,
    high_multiplier: float = 2.5,
) -> Severity:
    """
    Bucket how far past the threshold a change went.

    A zero threshold fires on any change in the right direction; there is no
    meaningful ratio, so it is treated as high.
    """
    if threshold_percent <= 0:
        return Severity.HIGH

    ratio = abs(change) / threshold_percent
    if ratio < medium_multiplier:
        return Severity.LOW
    if ratio < high_multiplier:
        return Severity.MEDIUM
    return Severity.HIGH


# =============================================================================
# Detector
# =============================================================================

class AnomalyDetector:
    """
    Compares fresh snapshots against trailing history.

    Args:
        baseline_points: History points averaged into the baseline.
        medium_multiplier: Change/threshold ratio where severity becomes medium.
        high_multiplier: Change/threshold ratio where severity becomes high.
    """

    def __init__(
        self,
        baseline_points: int = DEFAULT_BASELINE_POINTS,
        medium_multiplier: float = 1.5,
        high_multiplier: float = 2.5,
    ):
        if baseline_points < MIN_HISTORY_POINTS:
            raise ValueError(f'baseline_points must be at least {MIN_HISTORY_POINTS}')
        self.baseline_points = baseline_points
        self.medium_multiplier = medium_multiplier
        self.high_multiplier = high_multiplier

    async def detect(
        self,
        current: AggregateSnapshot,
        history: HistoryStore,
        thresholds: List[AlertThreshold],
    ) -> List[Anomaly]:
        enabled = [threshold for threshold in thresholds if threshold.enabled]
        if not enabled:
            return []

        cycle_date = current.timestamp.date()
        anomalies: List[Anomaly] = []

        for provider in current.fresh_providers:
            snapshot = current.per_provider.get(provider)
            if snapshot is None:
                continue

            # One extra point in case today's point was already written
            points = await history.recent(provider, self.baseline_points + 1)
            prior = [point for point in points if point.date < cycle_date][:self.baseline_points]

            if len(prior) < MIN_HISTORY_POINTS:
                logger.info(
                    f"Skipping {provider.value}: {len(prior)} prior history point(s), "
                    f"need {MIN_HISTORY_POINTS}"
                )
                continue

            for threshold in enabled:
                anomaly = self._evaluate(threshold, provider, snapshot, prior)
                if anomaly is not None:
                    anomalies.append(anomaly)

        return anomalies

    def _evaluate(
        self,
        threshold: AlertThreshold,
        provider: Provider,
        snapshot: MetricSnapshot,
        prior: List[HistoryPoint],
    ) -> Optional[Anomaly]:
        rule = METRIC_RULES[threshold.metric_type]

        current_value = snapshot.fields.get(rule.field)
        if current_value is None:
            return None

        values = [point.fields[rule.field] for point in prior if rule.field in point.fields]
        baseline = calculate_baseline(values)
        if baseline is None:
            return None

        change = percent_change(current_value, baseline)
        if change is None:
            logger.info(f"Skipping {threshold.metric_type.value} for {provider.value}: zero baseline")
            return None

        if not threshold_crossed(rule.direction, change, threshold.threshold_percent):
            return None

        severity = classify_severity(
            change,
            threshold.threshold_percent,
            self.medium_multiplier,
            self.high_multiplier,
        )
        verb = 'increased' if change >= 0 else 'dropped'
        description = (
            f"{rule.label} {verb} by {abs(change):.1f}% from "
            f"{format_metric_value(baseline, threshold.metric_type)} to "
            f"{format_metric_value(current_value, threshold.metric_type)} "
            f"against the {sum(1 for v in values if math.isfinite(v))}-point baseline "
            f"(threshold {threshold.threshold_percent:g}%)."
        )

        return Anomaly(
            id=f"{provider.value}-{threshold.metric_type.value}-{uuid.uuid4().hex[:8]}",
            metric_type=threshold.metric_type,
            provider=provider,
            severity=severity,
            previous_value=baseline,
            current_value=current_value,
            percent_change=change,
            title=f"{provider.label}: {_TITLES[threshold.metric_type]}",
            description=description,
        )

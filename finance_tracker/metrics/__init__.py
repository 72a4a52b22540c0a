"""Derived metrics package."""

from finance_tracker.metrics.calculator import MetricsCalculator, next_billing_date

__all__ = ["MetricsCalculator", "next_billing_date"]

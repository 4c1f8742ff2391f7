"""Reconciliation, notification, escalation and scheduling services."""

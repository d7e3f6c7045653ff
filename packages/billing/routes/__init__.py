"""Billing API routes."""

from packages.billing.routes import admin, billing, webhooks

__all__ = ["admin", "billing", "webhooks"]

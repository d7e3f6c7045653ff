"""
Billing package - handles subscriptions, usage tracking, and payments.

This package integrates with:
- Stripe: Payment processing and invoicing

Usage metering and quota enforcement is handled locally via QuotaService and UsageService.
"""

"""
Subscriptions app for premium listing reconciliation.

This app handles:
- Stripe webhook ingestion (signature verification, normalization)
- Idempotent application of subscription events to the ledger
- Expiry of lapsed premium listings
- Renewal reminders, payment failure and cancellation emails
- A weekly read-only ledger health check

Related apps:
    - directory: Business listings (one Subscription per Business)
    - toolkit: Email sending and collaborator protocols

Usage:
    from subscriptions.services import ReconciliationEngine

    engine = ReconciliationEngine()
    engine.ingest(stripe_event, already_verified=True)
"""

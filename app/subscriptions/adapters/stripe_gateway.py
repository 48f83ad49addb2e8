"""
Stripe gateway for subscription reconciliation.

Read-only access to Stripe: the reconciliation engine only looks things
up (checkout sessions, subscriptions) and verifies webhook signatures.
It never creates or mutates provider objects.

Every call runs with STRIPE_API_TIMEOUT_SECONDS and STRIPE_MAX_RETRIES.
SDK exceptions are re-raised as GatewayRequestError (permanent) or
GatewayUnavailableError (retryable), which is what the engine uses to
choose between rejecting an event and asking Stripe to redeliver it.
Signatures are checked against STRIPE_WEBHOOK_SECRET, allowing
STRIPE_WEBHOOK_TOLERANCE_SECONDS of clock skew.

Usage:
    from subscriptions.adapters import StripeGateway

    gateway = StripeGateway()
    event = gateway.verify_webhook_signature(request.body, signature)
    session = gateway.retrieve_checkout_session("cs_xxx")
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

import stripe
from django.conf import settings

from subscriptions.exceptions import (
    GatewayRequestError,
    GatewayUnavailableError,
    InvalidSignatureError,
)

if TYPE_CHECKING:
    from typing import Any


class StripeGateway:
    """
    Adapter for the Stripe lookups reconciliation needs.

    Implements toolkit.protocols.PaymentGateway. Stateless; safe to share
    between threads and Celery workers.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Lookups
    # =========================================================================

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """
        Retrieve a Checkout Session by ID.

        Args:
            session_id: Stripe Checkout Session ID (cs_xxx)

        Returns:
            The session as a plain dict

        Raises:
            GatewayRequestError: Session not found or bad credentials
            GatewayUnavailableError: Stripe unreachable
        """
        return self._call(
            "retrieve_checkout_session",
            {"checkout_session_id": session_id},
            lambda: stripe.checkout.Session.retrieve(session_id),
        )

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        """
        Retrieve a Subscription by ID.

        Args:
            subscription_id: Stripe Subscription ID (sub_xxx)

        Returns:
            The subscription as a plain dict

        Raises:
            GatewayRequestError: Subscription not found or bad credentials
            GatewayUnavailableError: Stripe unreachable
        """
        return self._call(
            "retrieve_subscription",
            {"subscription_id": subscription_id},
            lambda: stripe.Subscription.retrieve(subscription_id),
        )

    def _call(self, operation: str, context: dict[str, Any], request) -> dict[str, Any]:
        self._configure_stripe()
        logger = self.get_logger()
        log_context = {"operation": operation, **context}

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            result = request()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": duration_ms},
        )
        return result.to_dict()

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Parsed event envelope dict

        Raises:
            InvalidSignatureError: Signature or payload could not be verified
        """
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        tolerance = getattr(settings, "STRIPE_WEBHOOK_TOLERANCE_SECONDS", 300)

        try:
            stripe.WebhookSignature.verify_header(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
                tolerance,
            )
            return json.loads(payload)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignatureError(
                "Invalid webhook signature",
                provider_code="signature_verification_failed",
                details={"error": str(e)},
            )
        except ValueError as e:
            raise InvalidSignatureError(
                "Webhook payload is not valid JSON",
                provider_code="invalid_payload",
                details={"error": str(e)},
            )

    # =========================================================================
    # Error Handling
    # =========================================================================

    # Stripe exception -> (domain exception, provider_code, log level, message)
    # The first matching row wins; anything unmatched is treated as transient.
    ERROR_MAP = (
        (
            stripe.AuthenticationError,
            GatewayRequestError,
            "authentication_error",
            logging.CRITICAL,
            "Stripe authentication failed - check API key",
        ),
        (stripe.RateLimitError, GatewayUnavailableError, "rate_limit", logging.WARNING, "Rate limited by Stripe"),
        (
            stripe.APIConnectionError,
            GatewayUnavailableError,
            "api_connection_error",
            logging.ERROR,
            "Could not connect to Stripe",
        ),
        (stripe.APIError, GatewayUnavailableError, "api_error", logging.ERROR, "Stripe API error"),
    )

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Re-raise a Stripe SDK exception as a gateway exception.

        Raises:
            GatewayRequestError: Unknown id or bad credentials (permanent)
            GatewayUnavailableError: Everything else (retryable)
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Stripe rejected the request",
                extra={**log_context, "stripe_code": error.code},
            )
            raise GatewayRequestError(str(error), provider_code=error.code) from error

        for stripe_error, domain_error, provider_code, level, message in cls.ERROR_MAP:
            if isinstance(error, stripe_error):
                logger.log(level, message, extra=log_context, exc_info=level >= logging.ERROR)
                raise domain_error(message, provider_code=provider_code) from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise GatewayUnavailableError(
            f"Unexpected Stripe error: {error}",
            provider_code="unknown_error",
        ) from error

# app/services/payment.py
import json
import logging
from typing import Optional

import stripe
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.decorator import DBException, NotFound, ValidationFailed
from app.services.course_enrollment import CourseEnrollmentService

logger = logging.getLogger(__name__)

stripe.api_key = settings.stripe_secret_key or None

CHECKOUT_COMPLETED = "checkout.session.completed"


class PaymentService:
    """Turns verified Stripe checkout events into course enrollments."""

    def __init__(self, db: Session, webhook_secret: Optional[str] = None):
        self.db = db
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret

    def verify_event(self, payload: bytes, signature: Optional[str]) -> dict:
        if not signature:
            raise ValidationFailed("Missing Stripe-Signature header")
        if not self.webhook_secret:
            raise DBException("Stripe webhook secret is not configured", 500)

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Stripe webhook body is not valid UTF-8")
            raise ValidationFailed("Invalid payload")

        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe signature verification failed: {e}")
            raise ValidationFailed("Invalid signature")

        try:
            return json.loads(body)
        except ValueError:
            raise ValidationFailed("Invalid payload")

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        event = self.verify_event(payload, signature)
        event_type = event.get("type")

        if event_type != CHECKOUT_COMPLETED:
            logger.info(f"Ignoring Stripe event {event.get('id')} of type {event_type}")
            return {"received": True}

        return self.handle_checkout_completed(event["data"]["object"])

    def handle_checkout_completed(self, session: dict) -> dict:
        metadata = session.get("metadata") or {}
        course_id = metadata.get("courseId") or metadata.get("course_id")
        course_format = metadata.get("format") or "online"
        email = session.get("customer_email") or (
            session.get("customer_details") or {}
        ).get("email")

        if not course_id or not email:
            logger.warning(f"Checkout session {session.get('id')} is missing metadata")
            raise ValidationFailed("Missing required metadata")

        service = CourseEnrollmentService(self.db)
        user_id = service.resolve_user_id(email)
        if not user_id:
            logger.warning(f"No user for paid checkout {session.get('id')} ({email})")
            raise NotFound(f"User not found for email {email}")

        result = service.create_enrollment(
            user_id=user_id,
            course_id=course_id,
            enrollment_type="self",
            status="active",
            notes=f"Paid for {course_format} format via Stripe ({session.get('id')})",
            payment_id=session.get("payment_intent") or session.get("id"),
        )

        if result.success or result.error_type == "conflict":
            logger.info(
                f"Checkout {session.get('id')}: user {user_id} enrolled in {course_id} "
                f"(new={result.is_new})"
            )
            return {
                "received": True,
                "enrollment_id": result.enrollment_id,
                "is_new": result.is_new,
            }

        if result.error_type == "not_found":
            raise NotFound(result.error)
        raise DBException(result.error or "Failed to create enrollment", 500)

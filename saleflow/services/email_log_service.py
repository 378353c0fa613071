"""Email log service — dedupe checks and send records.

can_send_email() answers "has this exact email already gone out?".
record_email_send() upserts the outcome by dedupe_key. Neither raises:
email bookkeeping must never break the flow that triggered the email.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from saleflow.extensions import db
from saleflow.models.email_log import EmailLog

logger = logging.getLogger(__name__)

SALE_CREATED_PROMOTION = "sale_created_promotion"
SEND_FAILED_MESSAGE = "send_failed"


def sale_created_promotion_dedupe_key(payment_id):
    """Dedupe key for the promoted-sale confirmation. Pure in payment_id."""
    return f"{SALE_CREATED_PROMOTION}:{payment_id}"


def can_send_email(profile_id, email_type, dedupe_key):
    """Return False iff a sent record exists for (profile, type, key).

    Fails open: if the lookup itself errors, sending is allowed and the
    unique dedupe_key still stops a second "sent" row from landing.
    """
    try:
        existing = EmailLog.query.filter_by(
            profile_id=profile_id,
            email_type=email_type,
            dedupe_key=dedupe_key,
            delivery_status="sent",
        ).first()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"Email dedupe check failed for {dedupe_key}, allowing send: {e}")
        return True

    if existing:
        logger.info(f"Duplicate email suppressed: {email_type} {dedupe_key}")
        return False
    return True


def record_email_send(profile_id, email_type, to_email, subject,
                      dedupe_key=None, delivery_status="sent",
                      error_message=None, meta=None):
    """Upsert an email_log row by dedupe_key.

    A "sent" row is never downgraded to "failed". Returns the EmailLog or
    None if recording failed.
    """
    try:
        row = None
        if dedupe_key:
            row = EmailLog.query.filter_by(dedupe_key=dedupe_key).first()

        if row is None:
            row = EmailLog(
                profile_id=profile_id,
                email_type=email_type,
                to_email=to_email,
                subject=subject[:500],
                dedupe_key=dedupe_key,
                delivery_status=delivery_status,
                error_message=error_message,
                meta=meta or {},
            )
            db.session.add(row)
        elif row.delivery_status == "sent" and delivery_status != "sent":
            logger.info(f"Keeping sent record for {dedupe_key}, ignoring {delivery_status}")
            return row
        else:
            row.delivery_status = delivery_status
            row.error_message = error_message
            row.subject = subject[:500]
            row.meta = meta or {}

        db.session.commit()
        return row
    except IntegrityError:
        # Another worker recorded the same dedupe_key first.
        db.session.rollback()
        logger.info(f"Email log row for {dedupe_key} written concurrently")
        return EmailLog.query.filter_by(dedupe_key=dedupe_key).first()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"Failed to record email send ({email_type}, {dedupe_key}): {e}")
        return None

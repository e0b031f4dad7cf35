"""Platform billing: school subscriptions and payment-gateway reconciliation.

Gateway events arrive already verified; rows are matched on the provider's
order, payment and subscription ids. Any subscription leaving the active
state takes the school and its users offline with it.
"""
import logging
from datetime import datetime
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from flask import current_app

from schoolhub.errors import NotFoundError, ValidationError
from schoolhub.extensions import db
from schoolhub.models import (
    School, Subscription, SubscriptionStatusEnum, GatewayPayment, GatewayPaymentStatusEnum,
)
from schoolhub.services.schools import deactivate_school_and_users
from schoolhub.utils.audit import log_event
from schoolhub.utils.decorators import service_operation
from schoolhub.utils.responses import success_response
from schoolhub.utils.serialization import to_dict
from schoolhub.utils.transaction import transaction

logger = logging.getLogger(__name__)


def subscription_end_date(plan_name, start_date):
    plan = (plan_name or "").lower()
    if "yearly" in plan:
        return start_date + relativedelta(years=1)
    if "quarterly" in plan:
        return start_date + relativedelta(months=3)
    return start_date + relativedelta(months=1)


def _parse_status(value):
    try:
        return SubscriptionStatusEnum(value)
    except ValueError:
        raise ValidationError(f"Invalid subscription status: {value}")


def _start_subscription(school_id, plan_name, amount, currency=None, start_date=None, gateway_subscription_id=None):
    """Replace the school's active subscription with a new one, inside the caller's transaction."""
    start_date = start_date or datetime.utcnow()
    Subscription.query.filter_by(school_id=school_id, status=SubscriptionStatusEnum.active).update(
        {"status": SubscriptionStatusEnum.inactive}, synchronize_session="fetch"
    )
    subscription = Subscription(
        school_id=school_id,
        plan_name=plan_name,
        amount=Decimal(str(amount)),
        currency=currency or current_app.config.get("DEFAULT_CURRENCY", "INR"),
        start_date=start_date,
        end_date=subscription_end_date(plan_name, start_date),
        status=SubscriptionStatusEnum.active,
        gateway_subscription_id=gateway_subscription_id,
    )
    db.session.add(subscription)
    return subscription


@service_operation("Failed to create subscription")
def create_subscription(school_id, plan_name, amount, currency=None, start_date=None, gateway_subscription_id=None):
    if not plan_name:
        raise ValidationError("plan_name is required")
    if amount is None or Decimal(str(amount)) < 0:
        raise ValidationError("amount must not be negative")

    with transaction():
        subscription = _start_subscription(
            school_id, plan_name, amount, currency, start_date, gateway_subscription_id
        )

    log_event("SUBSCRIPTION_CREATED", school_id, f"plan={plan_name} until {subscription.end_date.isoformat()}")
    return success_response(to_dict(subscription), "Subscription created successfully")


@service_operation("Failed to fetch subscription")
def get_school_subscription(school_id):
    subscription = (
        Subscription.query.filter_by(school_id=school_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .first()
    )
    if not subscription:
        raise NotFoundError("No subscription found for this school")
    return success_response(to_dict(subscription))


@service_operation("Failed to update subscription status", tenant_scoped=False)
def update_subscription_status(subscription_id, status):
    status = _parse_status(status)

    with transaction():
        subscription = db.session.get(Subscription, subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")

        subscription.status = status
        if status == SubscriptionStatusEnum.cancelled:
            subscription.cancelled_at = datetime.utcnow()
        subscription.touch()

        if status != SubscriptionStatusEnum.active:
            deactivate_school_and_users(subscription.school_id)

    log_event(
        "SUBSCRIPTION_STATUS_CHANGED", subscription.school_id,
        f"subscription {subscription.id} -> {status.value}",
        level="INFO" if status == SubscriptionStatusEnum.active else "WARNING",
    )
    return success_response(to_dict(subscription), f"Subscription {status.value} successfully")


@service_operation("Failed to check subscription", tenant_scoped=False)
def is_subscription_active(school_id, now=None):
    now = now or datetime.utcnow()
    subscription = Subscription.query.filter(
        Subscription.school_id == school_id,
        Subscription.status == SubscriptionStatusEnum.active,
        Subscription.end_date > now,
    ).first()
    return success_response({
        "school_id": school_id,
        "active": subscription is not None,
        "subscription": to_dict(subscription) if subscription else None,
    })


@service_operation("Failed to expire subscriptions", tenant_scoped=False)
def expire_subscriptions(now=None):
    now = now or datetime.utcnow()

    with transaction():
        lapsed = Subscription.query.filter(
            Subscription.status == SubscriptionStatusEnum.active,
            Subscription.end_date <= now,
        ).all()

        school_ids = sorted({s.school_id for s in lapsed})
        for subscription in lapsed:
            subscription.status = SubscriptionStatusEnum.expired
            subscription.touch()

        deactivated = 0
        for school_id in school_ids:
            if db.session.get(School, school_id).is_active:
                deactivated += 1
            deactivate_school_and_users(school_id)

    for school_id in school_ids:
        log_event("SUBSCRIPTION_EXPIRED", school_id, level="WARNING")
    logger.info("Expired %d subscriptions, deactivated %d schools", len(lapsed), deactivated)
    return success_response(
        {"expired_count": len(lapsed), "deactivated_schools": deactivated},
        f"Processed {len(lapsed)} expired subscriptions and deactivated {deactivated} schools",
    )


@service_operation("Failed to create gateway payment", tenant_scoped=False)
def create_gateway_payment(school_id, gateway_order_id, amount, currency=None, notes=None):
    """Record an order handed to the gateway so its later events can be matched."""
    if not gateway_order_id:
        raise ValidationError("gateway_order_id is required")

    with transaction():
        if not db.session.get(School, school_id):
            raise NotFoundError("School not found")
        payment = GatewayPayment(
            school_id=school_id,
            gateway_order_id=gateway_order_id,
            amount=Decimal(str(amount)),
            currency=currency or current_app.config.get("DEFAULT_CURRENCY", "INR"),
            status=GatewayPaymentStatusEnum.created,
            notes=notes or {},
        )
        db.session.add(payment)

    return success_response(to_dict(payment), "Payment order recorded")


# ---------- Gateway events ----------

def _entity(payload, name):
    try:
        return payload[name]["entity"]
    except (KeyError, TypeError):
        raise ValidationError(f"Malformed event payload: missing {name} entity")


def _from_epoch(value):
    return datetime.utcfromtimestamp(value) if value else datetime.utcnow()


def _minor_units(value):
    # gateway amounts are in paise
    return Decimal(str(value or 0)) / 100


def _on_payment(event, payload, audit):
    entity = _entity(payload, "payment")
    payment = GatewayPayment.query.filter_by(gateway_order_id=entity.get("order_id")).first()
    if not payment:
        logger.warning("%s for unknown order %s", event, entity.get("order_id"))
        return False

    captured = event == "payment.captured"
    payment.gateway_payment_id = entity.get("id")
    payment.status = GatewayPaymentStatusEnum.completed if captured else GatewayPaymentStatusEnum.authorized
    payment.payment_method = entity.get("method")
    payment.paid_at = _from_epoch(entity.get("created_at"))
    payment.touch()

    plan_name = (payment.notes or {}).get("plan_name")
    if captured and plan_name:
        _start_subscription(
            payment.school_id,
            plan_name,
            _minor_units(entity.get("amount")),
            entity.get("currency") or payment.currency,
            gateway_subscription_id=entity.get("id"),
        )
        db.session.get(School, payment.school_id).is_active = True
        description = f"plan={plan_name} via payment {entity.get('id')}"
        audit.append(("SUBSCRIPTION_CREATED", payment.school_id, description, "INFO"))
    return True


def _on_payment_failed(event, payload, audit):
    entity = _entity(payload, "payment")
    payment = GatewayPayment.query.filter_by(gateway_order_id=entity.get("order_id")).first()
    if not payment:
        logger.warning("%s for unknown order %s", event, entity.get("order_id"))
        return False
    payment.status = GatewayPaymentStatusEnum.failed
    payment.gateway_payment_id = entity.get("id")
    payment.touch()
    return True


def _subscription_for(event, payload):
    entity = _entity(payload, "subscription")
    subscription = Subscription.query.filter_by(gateway_subscription_id=entity.get("id")).first()
    if not subscription:
        logger.warning("%s for unknown subscription %s", event, entity.get("id"))
    return subscription


def _on_subscription_activated(event, payload, audit):
    subscription = _subscription_for(event, payload)
    if not subscription:
        return False
    subscription.status = SubscriptionStatusEnum.active
    subscription.touch()
    db.session.get(School, subscription.school_id).is_active = True
    return True


def _on_subscription_charged(event, payload, audit):
    subscription = _subscription_for(event, payload)
    if not subscription:
        return False
    entity = _entity(payload, "payment")
    db.session.add(GatewayPayment(
        school_id=subscription.school_id,
        gateway_payment_id=entity.get("id"),
        gateway_order_id=entity.get("order_id"),
        amount=_minor_units(entity.get("amount")),
        currency=entity.get("currency") or subscription.currency,
        status=GatewayPaymentStatusEnum.completed,
        payment_method=entity.get("method"),
        paid_at=_from_epoch(entity.get("created_at")),
    ))
    return True


def _on_subscription_ended(event, payload, audit):
    subscription = _subscription_for(event, payload)
    if not subscription:
        return False

    now = datetime.utcnow()
    Subscription.query.filter_by(school_id=subscription.school_id, status=SubscriptionStatusEnum.active).update(
        {"status": SubscriptionStatusEnum.cancelled, "cancelled_at": now}, synchronize_session="fetch"
    )
    subscription.status = SubscriptionStatusEnum.cancelled
    subscription.cancelled_at = now
    deactivate_school_and_users(subscription.school_id)
    audit.append(("SUBSCRIPTION_CANCELLED", subscription.school_id, event, "WARNING"))
    return True


def _on_refund(event, payload, audit):
    entity = _entity(payload, "refund")
    payment = GatewayPayment.query.filter_by(gateway_payment_id=entity.get("payment_id")).first()
    if not payment:
        logger.warning("%s for unknown payment %s", event, entity.get("payment_id"))
        return False
    payment.status = GatewayPaymentStatusEnum.refunded
    payment.refund_id = entity.get("id")
    payment.refunded_at = datetime.utcnow()
    payment.touch()
    return True


EVENT_HANDLERS = {
    "payment.authorized": _on_payment,
    "payment.captured": _on_payment,
    "payment.failed": _on_payment_failed,
    "subscription.activated": _on_subscription_activated,
    "subscription.charged": _on_subscription_charged,
    "subscription.cancelled": _on_subscription_ended,
    "subscription.completed": _on_subscription_ended,
    "subscription.halted": _on_subscription_ended,
    "refund.created": _on_refund,
    "refund.processed": _on_refund,
}


@service_operation("Failed to process gateway event", tenant_scoped=False)
def apply_gateway_event(event, payload):
    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        logger.info("Unhandled gateway event: %s", event)
        return success_response({"event": event, "handled": False}, "Event ignored")

    # audit lines are written only once the transaction has committed
    audit = []
    with transaction():
        handled = handler(event, payload, audit)

    for event_type, school_id, description, level in audit:
        log_event(event_type, school_id, description, level=level)

    return success_response({"event": event, "handled": handled}, "Webhook processed successfully")

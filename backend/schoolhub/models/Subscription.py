from schoolhub.extensions import db
from .base import TimestampMixin, SubscriptionStatusEnum, GatewayPaymentStatusEnum

class Subscription(db.Model, TimestampMixin):
    __tablename__ = 'subscriptions'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    plan_name = db.Column(db.String(80), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="INR")
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.Enum(SubscriptionStatusEnum), nullable=False, default=SubscriptionStatusEnum.active, index=True)
    gateway_subscription_id = db.Column(db.String(100), nullable=True, index=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)


class GatewayPayment(db.Model, TimestampMixin):
    __tablename__ = 'gateway_payments'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    gateway_order_id = db.Column(db.String(100), nullable=True, index=True)
    gateway_payment_id = db.Column(db.String(100), nullable=True, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="INR")
    status = db.Column(db.Enum(GatewayPaymentStatusEnum), nullable=False, default=GatewayPaymentStatusEnum.created)
    payment_method = db.Column(db.String(30), nullable=True)
    notes = db.Column(db.JSON, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    refund_id = db.Column(db.String(100), nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)

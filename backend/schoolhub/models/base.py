from datetime import datetime
from schoolhub.extensions import db
import enum

class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def touch(self):
        self.updated_at = datetime.utcnow()

class UserRoleEnum(enum.Enum):
    super_admin = "super_admin"
    school_admin = "school_admin"
    teacher = "teacher"
    student = "student"
    parent = "parent"

class StudentStatusEnum(enum.Enum):
    active = "active"
    inactive = "inactive"
    graduated = "graduated"

class AttendanceStatusEnum(enum.Enum):
    present = "present"
    absent = "absent"
    late = "late"
    excused = "excused"

class PromotionStatusEnum(enum.Enum):
    promoted = "promoted"
    failed = "failed"

class SubscriptionStatusEnum(enum.Enum):
    active = "active"
    inactive = "inactive"
    cancelled = "cancelled"
    expired = "expired"
    suspended = "suspended"

class GatewayPaymentStatusEnum(enum.Enum):
    created = "created"
    authorized = "authorized"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"

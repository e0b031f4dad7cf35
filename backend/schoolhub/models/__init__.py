from .base import (
    TimestampMixin, UserRoleEnum, StudentStatusEnum, AttendanceStatusEnum,
    PromotionStatusEnum, SubscriptionStatusEnum, GatewayPaymentStatusEnum,
)
from .School import School
from .User import User
from .AcademicYear import AcademicYear
from .SchoolClass import SchoolClass, Section, Subject
from .Student import Student, Parent, ParentStudent
from .Teacher import Teacher, TeacherAssignment
from .AttendanceRecord import AttendanceRecord
from .Exam import Exam, Mark
from .Fee import FeeStructure, FeePayment
from .PromotionLog import PromotionLog
from .Subscription import Subscription, GatewayPayment
from .AuditLog import AuditLog

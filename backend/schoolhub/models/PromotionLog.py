from datetime import datetime
from schoolhub.extensions import db
from .base import PromotionStatusEnum

class PromotionLog(db.Model):
    """Append-only record of every promotion decision."""
    __tablename__ = 'promotion_logs'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    from_class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=True)
    to_class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=True)
    from_academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=True, index=True)
    to_academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=True)
    percentage = db.Column(db.Float, nullable=True)
    status = db.Column(db.Enum(PromotionStatusEnum), nullable=False)
    remarks = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    student = db.relationship('Student')

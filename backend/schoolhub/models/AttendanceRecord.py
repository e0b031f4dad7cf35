from schoolhub.extensions import db
from .base import TimestampMixin, AttendanceStatusEnum

class AttendanceRecord(db.Model, TimestampMixin):
    __tablename__ = 'attendance_records'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=True)
    section_id = db.Column(db.Integer, db.ForeignKey('sections.id'), nullable=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=True)
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=True, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.Enum(AttendanceStatusEnum), nullable=False)
    marked_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    student = db.relationship('Student')

    # subject_id may be NULL, so uniqueness is also enforced by the upsert lookup
    __table_args__ = (
        db.UniqueConstraint('student_id', 'date', 'subject_id', name='uq_attendance_student_date_subject'),
    )

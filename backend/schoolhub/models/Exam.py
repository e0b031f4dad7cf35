from schoolhub.extensions import db
from .base import TimestampMixin

class Exam(db.Model, TimestampMixin):
    __tablename__ = 'exams'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    exam_type = db.Column(db.String(30), nullable=True, index=True)  # e.g. 'unit', 'midterm', 'final'
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    total_marks = db.Column(db.Float, nullable=True)
    passing_marks = db.Column(db.Float, nullable=True)
    description = db.Column(db.String(255), nullable=True)

    marks = db.relationship('Mark', backref='exam', lazy=True)


class Mark(db.Model, TimestampMixin):
    __tablename__ = 'marks'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    exam_id = db.Column(db.Integer, db.ForeignKey('exams.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=False)
    marks_obtained = db.Column(db.Float, nullable=False)
    total_marks = db.Column(db.Float, nullable=False)
    grade = db.Column(db.String(5), nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    __table_args__ = (
        db.UniqueConstraint('exam_id', 'student_id', 'subject_id', name='uq_mark_exam_student_subject'),
    )

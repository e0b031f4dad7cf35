from schoolhub.extensions import db
from .base import TimestampMixin

class Teacher(db.Model, TimestampMixin):
    __tablename__ = 'teachers'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    employee_id = db.Column(db.String(30), nullable=False)
    date_of_joining = db.Column(db.Date, nullable=True)
    qualification = db.Column(db.String(120), nullable=True)
    specialization = db.Column(db.String(120), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    user = db.relationship('User')
    assignments = db.relationship('TeacherAssignment', backref='teacher', lazy=True)

    __table_args__ = (
        db.UniqueConstraint('school_id', 'employee_id', name='uq_teacher_employee_id'),
    )


class TeacherAssignment(db.Model, TimestampMixin):
    __tablename__ = 'teacher_assignments'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False)
    section_id = db.Column(db.Integer, db.ForeignKey('sections.id'), nullable=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=False)
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=False)

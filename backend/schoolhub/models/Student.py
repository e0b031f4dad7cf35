from schoolhub.extensions import db
from .base import TimestampMixin, StudentStatusEnum

class Student(db.Model, TimestampMixin):
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey('sections.id'), nullable=True, index=True)
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=False, index=True)
    admission_number = db.Column(db.String(30), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=True)
    gender = db.Column(db.String(10), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    status = db.Column(db.Enum(StudentStatusEnum), nullable=False, default=StudentStatusEnum.active, index=True)

    guardian_name = db.Column(db.String(120), nullable=True)
    guardian_phone = db.Column(db.String(20), nullable=True)
    guardian_email = db.Column(db.String(120), nullable=True)

    user = db.relationship('User')
    school_class = db.relationship('SchoolClass')
    section = db.relationship('Section')
    parent_links = db.relationship('ParentStudent', back_populates='student', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint('school_id', 'admission_number', name='uq_student_admission_number'),
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Parent(db.Model, TimestampMixin):
    __tablename__ = 'parents'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(20), nullable=True)

    student_links = db.relationship('ParentStudent', back_populates='parent', lazy=True, cascade="all, delete-orphan")


class ParentStudent(db.Model):
    __tablename__ = 'parent_students'

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('parents.id'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    relationship = db.Column(db.String(30), nullable=False, default="guardian")
    is_primary = db.Column(db.Boolean, default=False, nullable=False)

    parent = db.relationship('Parent', back_populates='student_links')
    student = db.relationship('Student', back_populates='parent_links')

    __table_args__ = (
        db.UniqueConstraint('parent_id', 'student_id', name='uq_parent_student'),
    )

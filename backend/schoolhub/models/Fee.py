from schoolhub.extensions import db
from .base import TimestampMixin

class FeeStructure(db.Model, TimestampMixin):
    __tablename__ = 'fee_structures'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    fee_type = db.Column(db.String(50), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    payments = db.relationship('FeePayment', backref='fee_structure', lazy=True)


class FeePayment(db.Model, TimestampMixin):
    __tablename__ = 'fee_payments'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    fee_structure_id = db.Column(db.Integer, db.ForeignKey('fee_structures.id'), nullable=False, index=True)
    amount_paid = db.Column(db.Numeric(10, 2), nullable=False)
    # computed once when the payment is recorded
    late_fee = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    payment_date = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(30), nullable=False)
    transaction_id = db.Column(db.String(100), nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    student = db.relationship('Student')

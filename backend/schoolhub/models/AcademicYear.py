from schoolhub.extensions import db
from .base import TimestampMixin

class AcademicYear(db.Model, TimestampMixin):
    """A school's yearly scheduling unit.

    Lifecycle is forward-only: open, optionally current, then closed. A closed
    year is never edited and never becomes current again. At most one open
    year per school is current; open years never overlap.
    """
    __tablename__ = 'academic_years'

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    is_current = db.Column(db.Boolean, default=False, nullable=False)
    is_closed = db.Column(db.Boolean, default=False, nullable=False)
    closed_at = db.Column(db.DateTime, nullable=True)

from werkzeug.security import generate_password_hash, check_password_hash
from schoolhub.extensions import db
from .base import TimestampMixin, UserRoleEnum

class User(db.Model, TimestampMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    password_hash = db.Column(db.String(512), nullable=False)
    role = db.Column(db.Enum(UserRoleEnum), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # platform operators have no school
    school_id = db.Column(db.Integer, db.ForeignKey('schools.id'), nullable=True, index=True)

    school = db.relationship('School', back_populates='users')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            "id": self.id,
            "school_id": self.school_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role.value if self.role else None,
            "is_active": self.is_active,
        }

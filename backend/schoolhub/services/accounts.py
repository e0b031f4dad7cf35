from schoolhub.errors import ConflictError, ValidationError
from schoolhub.extensions import db
from schoolhub.models import User


def create_account(school_id, user_data, role):
    """
    Insert the login row for a student, parent or teacher inside the
    caller's transaction. user_data carries email, password, name and phone.
    """
    email = (user_data.get("email") or "").strip().lower()
    password = user_data.get("password")
    if not email or not password:
        raise ValidationError("User account requires email and password")
    if User.query.filter_by(email=email).first():
        raise ConflictError("Email already exists")

    user = User(
        school_id=school_id,
        name=user_data.get("name") or email,
        email=email,
        phone=user_data.get("phone"),
        role=role,
        is_active=True,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    return user

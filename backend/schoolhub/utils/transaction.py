from contextlib import contextmanager
from schoolhub.extensions import db


@contextmanager
def transaction():
    """
    Unit of work around the scoped session.

    Commits when the block finishes, rolls back and re-raises on any
    exception so a multi-row write is never left half-applied.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

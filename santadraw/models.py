from datetime import datetime, timezone
from .extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredDraw(db.Model):
    """
    Organizer-side lookup from short code to draw token.
    Only the encrypted token is kept; assignments never hit the database in plaintext.
    """
    __tablename__ = "draws"

    code = db.Column(db.String(6), primary_key=True)
    draw_id = db.Column(db.String(64), unique=True, nullable=False)
    token = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

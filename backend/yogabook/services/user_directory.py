from typing import Optional
from sqlalchemy.orm import Session
from yogabook.models.user import User


class UserDirectory:
    """Resolves the caller's external identity to an internal user id. Never creates users."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, open_id: str) -> Optional[int]:
        row = self.db.query(User.id).filter(User.open_id == open_id).first()
        return row[0] if row else None

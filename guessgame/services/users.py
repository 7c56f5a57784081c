from typing import Any, Dict

from sqlalchemy.exc import IntegrityError

from guessgame import db
from guessgame.models import User


class SqlUserStore:
    """User and score collaborator backed by the ``users`` table.

    Each call runs in its own app context so it can be used from socket
    handlers and background tasks alike.
    """

    def __init__(self, app):
        self.app = app

    def upsert_user(self, username: str) -> Dict[str, Any]:
        """Return the user for ``username``, creating it on first sight.

        Idempotent: an existing user keeps its id and score.
        """
        with self.app.app_context():
            user = User.query.filter_by(username=username).first()
            if user:
                return user.to_dict()
            user = User(username=username, score=0)
            db.session.add(user)
            try:
                db.session.commit()
            except IntegrityError:
                # Another connection inserted the same username first
                db.session.rollback()
                user = User.query.filter_by(username=username).one()
            return user.to_dict()

    def add_score(self, user_id: int, delta: int) -> None:
        with self.app.app_context():
            try:
                User.query.filter_by(id=user_id).update(
                    {User.score: User.score + delta}, synchronize_session=False
                )
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise

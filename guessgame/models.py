from guessgame import db


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    score = db.Column(db.Integer, nullable=False, default=0, server_default='0')

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'score': self.score or 0,
        }

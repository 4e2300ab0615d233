from datetime import datetime
from models.db import db

ROLE_ADMIN = "ADMIN"
ROLE_STUDENT = "MAHASISWA"
ROLES = (ROLE_ADMIN, ROLE_STUDENT)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(20), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    nim = db.Column(db.String(30), unique=True, nullable=True)  # student number

    role = db.Column(db.String(20), nullable=False, default=ROLE_STUDENT)

    # Lockout state, mutated only by security.bruteforce
    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    locked_until = db.Column(db.DateTime, nullable=True)

    # Only the digest of the reset token is stored, never the raw token
    reset_token_hash = db.Column(db.String(128), nullable=True, index=True)
    reset_token_expiry = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "nim": self.nim,
            "role": self.role,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

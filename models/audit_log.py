from datetime import datetime

from sqlalchemy import event

from models.db import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)  # nullable for unauth events
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. LOGIN_FAILED, CREATE_USER
    description = db.Column(db.Text, nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "action": self.action,
            "description": self.description,
            "ipAddress": self.ip,
            "userAgent": self.user_agent,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@event.listens_for(AuditLog, "before_update")
@event.listens_for(AuditLog, "before_delete")
def _refuse_mutation(mapper, connection, target):
    # audit trail is append-only
    raise ValueError("audit log entries are immutable")

from .db import db
from .user import User, ROLE_ADMIN, ROLE_STUDENT, ROLES
from .audit_log import AuditLog

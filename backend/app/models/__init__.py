from app.models.user import User
from app.models.account_deletion import AccountDeletionJob
from app.models.audit_log import AuditLog

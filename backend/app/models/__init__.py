from app.core.database import Base
from app.models.admin_user import AdminUser
from app.models.partner import PartnerAccount
from app.models.fee_schedule import FeeScheduleEntry
from app.models.partner_transaction import PartnerTransaction
from app.models.audit_log import AuditLog
from app.models.notification import Notification

__all__ = [
    "Base",
    "AdminUser",
    "PartnerAccount",
    "FeeScheduleEntry",
    "PartnerTransaction",
    "AuditLog",
    "Notification",
]

from streamcoin.models.user import UserAccount
from streamcoin.models.recharge_transaction import RechargeTransaction
from streamcoin.models.audit_log import AuditLog
from streamcoin.models.failed_job import FailedJob

__all__ = [
    "UserAccount",
    "RechargeTransaction",
    "AuditLog",
    "FailedJob",
]

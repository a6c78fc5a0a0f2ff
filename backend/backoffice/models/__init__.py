from backoffice.models.base import Base  # noqa: F401
from backoffice.models.company import Company  # noqa: F401
from backoffice.models.user import User  # noqa: F401
from backoffice.models.invitation import Invitation  # noqa: F401
from backoffice.models.audit_log import AuditLog  # noqa: F401

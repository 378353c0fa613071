# Models package: import all models here so Alembic can discover them.

from saleflow.models.user import User  # noqa: F401
from saleflow.models.draft import SaleDraft  # noqa: F401
from saleflow.models.sale import Sale, Item  # noqa: F401
from saleflow.models.promotion import Promotion  # noqa: F401
from saleflow.models.stripe_event import StripeWebhookEvent  # noqa: F401
from saleflow.models.email_log import EmailLog  # noqa: F401
from saleflow.models.audit import AuditEvent  # noqa: F401

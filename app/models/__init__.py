# Importing every model registers its table on Base.metadata.
from app.models.user import User  # noqa: F401
from app.models.unit_inventory import InventoryUnit  # noqa: F401
from app.models.order import Order  # noqa: F401
from app.models.deed import Deed  # noqa: F401
from app.models.referral_earning import ReferralEarning  # noqa: F401
from app.models.audit_log import AdminActionLog  # noqa: F401
from app.models.payment_transaction import PaymentTransaction  # noqa: F401

# Models package: import all models here so Alembic can discover them.

from membership_gateway.models.member import Member  # noqa: F401
from membership_gateway.models.membership import Membership, Coupon  # noqa: F401
from membership_gateway.models.subscription import Subscription  # noqa: F401
from membership_gateway.models.invoice import Invoice  # noqa: F401
from membership_gateway.models.event import MembershipEvent  # noqa: F401
from membership_gateway.models.stripe_event import StripeEvent  # noqa: F401
from membership_gateway.models.sync_cache import SyncCacheEntry  # noqa: F401

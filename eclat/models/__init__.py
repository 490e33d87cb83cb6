# eclat/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from eclat.models.profile import Profile  # noqa: F401
from eclat.models.coupon import Coupon  # noqa: F401
from eclat.models.coupon_usage import CouponUsage  # noqa: F401
from eclat.models.order import Order  # noqa: F401

"""Paid-join saga exports."""

from . import audit, processor, service, signature, sweeper  # noqa: F401
from .models import PAYMENT_ORDERS, OrderStatus, PaymentOrder  # noqa: F401
from .processor import CheckoutSession, build_checkout_session  # noqa: F401
from .service import ConfirmResult, PaymentGate  # noqa: F401
from .sweeper import PaymentSweeper  # noqa: F401

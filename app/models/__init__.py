"""PharaohVault — Database Models"""

from app.models.user import User
from app.models.subscription import Subscription
from app.models.cancellation_request import CancellationRequest
from app.models.withdrawal_request import WithdrawalRequest
from app.models.order import Order
from app.models.metal_price import MetalPrice

__all__ = ["User", "Subscription", "CancellationRequest", "WithdrawalRequest", "Order", "MetalPrice"]

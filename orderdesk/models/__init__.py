from orderdesk.models.bot_integration import BotIntegration
from orderdesk.models.branch import Branch
from orderdesk.models.business import Business
from orderdesk.models.chat_session import ChatSession
from orderdesk.models.message_log import MessageLog
from orderdesk.models.order import Order, OrderStatusHistory
from orderdesk.models.reservation import DiningTable, Reservation

__all__ = [
    "Business",
    "Branch",
    "BotIntegration",
    "Order",
    "OrderStatusHistory",
    "ChatSession",
    "MessageLog",
    "DiningTable",
    "Reservation",
]

"""Re-export all models so Base.metadata sees them."""

from riskmapper.db.models.answer import Answer
from riskmapper.db.models.checkout_session import CheckoutSession, PaymentStatus
from riskmapper.db.models.payment_event import PaymentEvent
from riskmapper.db.models.question import QuestionDefinition
from riskmapper.db.models.report import PENDING_STATUSES, TERMINAL_STATUSES, Report, ReportStatus
from riskmapper.db.models.risk_result import RiskResult

__all__ = [
    "Answer",
    "CheckoutSession",
    "PaymentEvent",
    "PaymentStatus",
    "PENDING_STATUSES",
    "QuestionDefinition",
    "Report",
    "ReportStatus",
    "RiskResult",
    "TERMINAL_STATUSES",
]

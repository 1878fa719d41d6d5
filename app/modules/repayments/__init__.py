# Repayments module
from app.modules.repayments.services import RepaymentService, RepaymentResult, LenderPayment

__all__ = ["RepaymentService", "RepaymentResult", "LenderPayment"]

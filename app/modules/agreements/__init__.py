# Agreements module
from app.modules.agreements.models import LoanAgreement, AgreementType, AgreementStatus

__all__ = ["LoanAgreement", "AgreementType", "AgreementStatus"]

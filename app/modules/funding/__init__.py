# Funding module
from app.modules.funding.services import FundingService, FundingResult

__all__ = ["FundingService", "FundingResult"]

"""SQLAlchemy ORM models."""

from award_payroll.models.award import (
    AwardModel,
    OvertimeRuleModel,
    PenaltyRuleModel,
    PublicHolidayModel,
)
from award_payroll.models.base import Base, TimestampMixin
from award_payroll.models.pay_period import PayPeriodExtraModel, PayPeriodModel
from award_payroll.models.shift import BreakPeriodModel, ShiftModel, ShiftSegmentModel
from award_payroll.models.tax import (
    MedicareConfigModel,
    StudyLoanThresholdModel,
    TaxCoefficientModel,
    TaxSettingsModel,
    YearToDateTaxModel,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "AwardModel",
    "PenaltyRuleModel",
    "OvertimeRuleModel",
    "PublicHolidayModel",
    "ShiftModel",
    "BreakPeriodModel",
    "ShiftSegmentModel",
    "PayPeriodModel",
    "PayPeriodExtraModel",
    "TaxSettingsModel",
    "YearToDateTaxModel",
    "TaxCoefficientModel",
    "StudyLoanThresholdModel",
    "MedicareConfigModel",
]

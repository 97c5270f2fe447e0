"""Pledges module - pledges, payment plans and installment schedules."""
from app.data.pledges.models import Pledge, PaymentPlan, InstallmentSchedule

__all__ = ["Pledge", "PaymentPlan", "InstallmentSchedule"]

"""Scouting data: alliance partner deduction."""

from ftcmetrics.scouting.deduction import (
    AllianceDeductionService,
    DeductionOutcome,
    DeductionStatus,
    deduce_partner_scores,
)

__all__ = [
    "AllianceDeductionService",
    "DeductionOutcome",
    "DeductionStatus",
    "deduce_partner_scores",
]

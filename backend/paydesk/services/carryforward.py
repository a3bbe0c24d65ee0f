# backend/paydesk/services/carryforward.py
"""
Deduction cascade with carry-forward.

Gross salary is the budget. Tiers are applied in fixed priority order
(mandatory, attendance, advances, penalties+other):

    budget >= tier  -> apply the whole tier
    0 < budget      -> apply the remaining budget, carry the rest
    budget == 0     -> carry the whole tier

Once the budget hits zero every later tier is carried in full. A partially
applied advances tier is split pro-rata across its lines so each advance
keeps its own carry-forward entry. Tiers totalling zero leave no trace.

All amounts are cent-quantized Decimals; splits are done in whole cents
(largest remainder) so `applied + carried == requested` holds exactly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from typing import Dict, List, Sequence

from paydesk.schemas.payroll import (
    AdvanceLine,
    CarryforwardDetail,
    CarryforwardDetails,
    DeductionTier,
)
from paydesk.services.money import CENT, ZERO, q2, qsum
from paydesk.services.payroll_errors import CarryforwardInvariantError

logger = logging.getLogger(__name__)

TIER_ORDER = ("mandatory", "attendance", "advance", "other")


@dataclass(frozen=True)
class Allocation:
    gross: Decimal
    requested: Decimal
    applied: Decimal
    carried: Decimal
    details: CarryforwardDetails
    applied_by_category: Dict[str, Decimal] = field(default_factory=dict)
    # advance_id -> amount actually deducted this month (regular + carried lines)
    applied_by_advance: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def net(self) -> Decimal:
        return q2(self.gross - self.applied)


def split_pro_rata(budget: Decimal, amounts: Sequence[Decimal]) -> List[Decimal]:
    """
    Split `budget` across `amounts` in proportion to each amount.

    Works in whole cents: every share is floored, then the leftover cents go
    to the largest fractional remainders (earliest line wins ties). No share
    exceeds its own amount when budget <= sum(amounts).
    """
    total = sum(amounts, ZERO)
    if budget <= 0 or total <= 0:
        return [ZERO for _ in amounts]
    if budget >= total:
        return [q2(a) for a in amounts]

    exact = [budget * a / total for a in amounts]
    shares = [e.quantize(CENT, rounding=ROUND_FLOOR) for e in exact]
    leftover = int(((budget - sum(shares, ZERO)) / CENT).to_integral_value())

    order = sorted(range(len(amounts)), key=lambda i: (-(exact[i] - shares[i]), i))
    for i in order[:leftover]:
        shares[i] += CENT
    return shares


def _tier_detail(tier: DeductionTier, total: Decimal, applied: Decimal) -> CarryforwardDetail:
    return CarryforwardDetail(
        category=tier.category,
        type=tier.category,
        original_amount=total,
        deducted_this_month=applied,
        remaining_to_carryforward=q2(total - applied),
        reason=tier.reason,
    )


def _advance_details(lines: List[AdvanceLine], applied: List[Decimal]) -> List[CarryforwardDetail]:
    out: List[CarryforwardDetail] = []
    for ln, got in zip(lines, applied):
        remaining = q2(ln.amount - got)
        if remaining <= 0:
            continue
        out.append(
            CarryforwardDetail(
                category="advance",
                type="advance",
                advance_id=ln.advance_id,
                original_amount=ln.amount,
                deducted_this_month=got,
                remaining_to_carryforward=remaining,
                reason=ln.reason,
            )
        )
    return out


def _check_invariants(alloc: Allocation, tiers: Sequence[DeductionTier]) -> None:
    if alloc.applied + alloc.carried != alloc.requested:
        raise CarryforwardInvariantError(
            f"applied {alloc.applied} + carried {alloc.carried} != requested {alloc.requested}",
            expected=alloc.requested,
            actual=alloc.applied + alloc.carried,
        )
    if alloc.details.total != alloc.carried:
        raise CarryforwardInvariantError(
            f"carry-forward details sum {alloc.details.total} != carried {alloc.carried}",
            expected=alloc.carried,
            actual=alloc.details.total,
        )
    if alloc.applied > alloc.gross or alloc.net < 0:
        raise CarryforwardInvariantError(
            f"applied {alloc.applied} exceeds gross {alloc.gross}",
            expected=alloc.gross,
            actual=alloc.applied,
        )
    for tier in tiers:
        tier_total = q2(tier.total)
        applied = alloc.applied_by_category.get(tier.category, ZERO)
        carried = sum(
            (d.remaining_to_carryforward for d in alloc.details.all() if d.category == tier.category),
            ZERO,
        )
        if applied < 0 or carried < 0 or applied + carried != tier_total:
            raise CarryforwardInvariantError(
                f"tier {tier.category}: applied {applied} + carried {carried} != {tier_total}",
                category=tier.category,
                expected=tier_total,
                actual=applied + carried,
            )


def allocate_deductions(gross: Decimal, tiers: Sequence[DeductionTier]) -> Allocation:
    """Run the priority cascade of `tiers` against `gross`."""
    gross = q2(gross)
    if gross < 0:
        raise CarryforwardInvariantError(f"gross salary is negative: {gross}", actual=gross)

    ordered = sorted(tiers, key=lambda t: TIER_ORDER.index(t.category))
    budget = gross
    details = CarryforwardDetails()
    applied_by_category: Dict[str, Decimal] = {}
    applied_by_advance: Dict[str, Decimal] = {}

    for tier in ordered:
        total = q2(tier.total)
        if total <= 0:
            applied_by_category[tier.category] = ZERO
            continue

        if budget >= total:
            applied = total
        elif budget > 0:
            applied = budget
        else:
            applied = ZERO
        budget = q2(budget - applied)
        applied_by_category[tier.category] = applied

        logger.debug(
            "cascade tier=%s total=%s applied=%s budget_left=%s",
            tier.category, total, applied, budget,
        )

        if tier.category == "advance":
            lines = [ln for ln in tier.lines if isinstance(ln, AdvanceLine)]
            shares = split_pro_rata(applied, [ln.amount for ln in lines])
            for ln, got in zip(lines, shares):
                if ln.advance_id:
                    applied_by_advance[ln.advance_id] = q2(
                        applied_by_advance.get(ln.advance_id, ZERO) + got
                    )
            if applied < total:
                details.advances.extend(_advance_details(lines, shares))
        elif applied < total:
            details.deductions.append(_tier_detail(tier, total, applied))

    requested = qsum(q2(t.total) for t in ordered)
    applied_total = qsum(applied_by_category.values())
    carried_total = q2(details.total)

    alloc = Allocation(
        gross=gross,
        requested=requested,
        applied=applied_total,
        carried=carried_total,
        details=details,
        applied_by_category=applied_by_category,
        applied_by_advance=applied_by_advance,
    )
    _check_invariants(alloc, ordered)

    if carried_total > 0:
        logger.warning(
            "deductions exceed gross: gross=%s requested=%s applied=%s carried=%s",
            gross, requested, applied_total, carried_total,
        )
    return alloc


__all__ = ["Allocation", "TIER_ORDER", "allocate_deductions", "split_pro_rata"]

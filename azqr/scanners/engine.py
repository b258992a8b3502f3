"""Recommendation engine.

Runs an ordered rule table against one resource and turns every outcome into
a ResultRow. The engine knows nothing about rule semantics.
"""

import logging
from collections.abc import Sequence
from enum import Enum
from typing import Any

from azqr.scanners.context import ScanContext
from azqr.scanners.models import (
    Indeterminate,
    Recommendation,
    ResourceTarget,
    ResultRow,
)

logger = logging.getLogger(__name__)

# Raised by predicates reading a field the resource does not populate
SHAPE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)

NOT_EVALUATED_DETAIL = "Not evaluated: requires a detailed scan"


def text(value: Any) -> str:
    """Render an SDK scalar for comparisons and row details.

    SDK enums are ``str, Enum`` subclasses whose ``str()`` is the member name,
    so their value is used instead.
    """
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class RecommendationEngine:
    """Evaluates rule tables against resources."""

    def evaluate(
        self,
        rules: Sequence[Recommendation],
        resource: Any,
        context: ScanContext,
        target: ResourceTarget,
    ) -> list[ResultRow]:
        """Evaluate a rule table against one resource.

        Args:
            rules: Rule table in declared order
            resource: The SDK model of the resource
            context: The subscription's read-only scan context
            target: Location metadata stamped on each row

        Returns:
            One row per rule, in table order. Detailed-only rules outside a
            detailed scan yield a not-evaluated row.
        """
        rows = []
        for rule in rules:
            if not rule.is_applicable(context.detailed_scan):
                rows.append(self._not_evaluated_row(rule, target))
                continue
            rows.append(self._evaluate_rule(rule, resource, context, target))
        return rows

    def _evaluate_rule(
        self,
        rule: Recommendation,
        resource: Any,
        context: ScanContext,
        target: ResourceTarget,
    ) -> ResultRow:
        try:
            outcome = rule.predicate(resource, context)
        except SHAPE_ERRORS as e:
            logger.warning(
                f"Rule {rule.recommendation_id} could not be evaluated for "
                f"{target.resource_name}: {type(e).__name__}: {e}"
            )
            outcome = Indeterminate(f"Not evaluated: {type(e).__name__}")

        if isinstance(outcome, Indeterminate):
            broken, detail, indeterminate = True, outcome.reason, True
        else:
            broken, detail = outcome
            indeterminate = False

        return self._row(rule, target, broken, detail, indeterminate)

    def _not_evaluated_row(self, rule: Recommendation, target: ResourceTarget) -> ResultRow:
        # Not broken: the rule was skipped, not decided
        return self._row(rule, target, False, NOT_EVALUATED_DETAIL, True)

    def _row(
        self,
        rule: Recommendation,
        target: ResourceTarget,
        broken: bool,
        detail: str,
        indeterminate: bool,
    ) -> ResultRow:
        return ResultRow(
            subscription_id=target.subscription_id,
            subscription_name=target.subscription_name,
            resource_group=target.resource_group,
            resource_name=target.resource_name,
            resource_type=target.resource_type,
            location=target.location,
            rule_id=rule.recommendation_id,
            category=rule.category,
            impact=rule.impact,
            description=rule.description,
            learn_more_url=rule.learn_more_url,
            broken=bool(broken),
            detail=detail or "",
            indeterminate=indeterminate,
        )

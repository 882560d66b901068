"""
Constraint Validator - Business rules applied to every outgoing reply.

This module:
1. Holds a global constraint pool plus one pool per agent
2. Checks every applicable constraint once on the reply
3. Applies the fixes of failing constraints in severity order
   (high, medium, low; registration order within a severity)
4. Re-checks once for audit: still-failing ids go to ``residual_violations``

Corrections are single-pass: a fix is never re-validated to a fixpoint.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from agent.models import Response

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SEVERITY_ORDER = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


@dataclass
class Constraint:
    """A named business rule with an optional automatic correction."""

    id: str
    name: str
    description: str
    severity: Severity
    check: Callable[[Response], bool]
    suggested_fix: Optional[Callable[[Response], str]] = None


class ConstraintValidator:
    """Validates and corrects responses against registered constraints."""

    def __init__(self):
        self._global: List[Constraint] = []
        self._by_agent: Dict[str, List[Constraint]] = {}

    def register_constraint(self, constraint: Constraint) -> None:
        """Adds a constraint that applies to every agent (ids are unique)."""
        if any(c.id == constraint.id for c in self._global):
            return
        self._global.append(constraint)
        logger.debug(f"Global constraint registered: {constraint.id}")

    def register_agent_constraints(
        self, agent_id: str, constraints: List[Constraint]
    ) -> None:
        """Adds constraints that apply only to ``agent_id``."""
        pool = self._by_agent.setdefault(agent_id, [])
        known = {c.id for c in pool}
        for constraint in constraints:
            if constraint.id not in known:
                pool.append(constraint)
                known.add(constraint.id)
        logger.debug(
            f"[{agent_id}] constraints registered: {[c.id for c in constraints]}"
        )

    def constraints_for(self, agent_id: Optional[str]) -> List[Constraint]:
        return list(self._global) + list(self._by_agent.get(agent_id or "", []))

    def _passes(self, constraint: Constraint, response: Response) -> Optional[bool]:
        """True/False from the check, None if the check raised."""
        try:
            return bool(constraint.check(response))
        except Exception as e:
            logger.error(
                f"Constraint '{constraint.id}' check raised: {e}", exc_info=True
            )
            return None

    def validate(self, response: Response, agent_id: Optional[str] = None) -> Response:
        """
        Validates ``response`` and applies corrections.

        Args:
            response: Reply built by a handler or the fallback bridge
            agent_id: Agent whose scoped constraints apply besides the global ones

        Returns:
            New Response with corrected content and metadata keys
            constraint_violations, constraints_fixed, residual_violations
        """
        applicable = self.constraints_for(agent_id)
        metadata = dict(response.metadata)

        # 1. Single check on the incoming content
        failing = []
        for constraint in applicable:
            result = self._passes(constraint, response)
            if result is not True:
                failing.append((constraint, result is None))

        violations = [c.id for c, _ in failing]
        fixed: List[str] = []
        content = response.content

        # 2. Fixes by severity (sorted() is stable: registration order within a level)
        ordered = sorted(failing, key=lambda f: SEVERITY_ORDER[Severity(f[0].severity)])
        for constraint, check_raised in ordered:
            if check_raised or constraint.suggested_fix is None:
                continue

            current = Response(content=content, metadata=metadata)
            if self._passes(constraint, current) is True:
                logger.debug(f"Constraint '{constraint.id}' satisfied by earlier fix")
                continue

            try:
                new_content = constraint.suggested_fix(current)
            except Exception as e:
                logger.error(
                    f"Constraint '{constraint.id}' fix raised: {e}", exc_info=True
                )
                continue

            if not isinstance(new_content, str):
                logger.warning(
                    f"Constraint '{constraint.id}' fix returned {type(new_content).__name__}"
                )
                continue

            content = new_content
            fixed.append(constraint.id)
            logger.info(f"Constraint '{constraint.id}' fixed ({Severity(constraint.severity).value})")

        # 3. Audit pass, no further fixing
        final = Response(content=content, metadata=metadata)
        residual = [c.id for c in applicable if self._passes(c, final) is not True]
        if residual:
            logger.warning(f"Residual constraint violations: {residual}")

        metadata["constraint_violations"] = violations
        metadata["constraints_fixed"] = fixed
        metadata["residual_violations"] = residual
        return Response(content=content, metadata=metadata)


# Built-in constraints

EMPTY_RESPONSE_FALLBACK = (
    "I want to make sure I give you the right answer! "
    "Could you rephrase that or give me a bit more detail?"
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def _drop_sentences(text: str, pattern: re.Pattern, note: str) -> str:
    """Removes sentences matching ``pattern`` and appends ``note``."""
    kept = [s for s in _SENTENCE_SPLIT.split(text.strip()) if s and not pattern.search(s)]
    body = " ".join(kept).strip()
    return f"{body}\n\n{note}" if body else note


def no_empty_response() -> Constraint:
    return Constraint(
        id="no-empty-response",
        name="No Empty Response",
        description="Every reply must contain some text",
        severity=Severity.HIGH,
        check=lambda r: bool(r.content and r.content.strip()),
        suggested_fix=lambda r: EMPTY_RESPONSE_FALLBACK,
    )


# Task manager

_ASKS_CONFIRMATION = ("?", "confirm", "would you like")

TASK_DELETE_REPLY = (
    "I can't delete tasks myself, only staff members can. "
    "Would you like me to mark it as cancelled instead, or flag it for a staff member?"
)


_DELETE = re.compile(r"\bdelet", re.IGNORECASE)
# A sentence about deleting is fine when it asks, or when it declines
_DELETE_NOT_PROMISED = re.compile(
    r"\bconfirm|\bwould you like|\b(can[’']t|cannot|can not|won[’']t|will not|unable to|"
    r"not able to|not allowed to|only staff)\b",
    re.IGNORECASE,
)


def _asks_confirmation(lower: str) -> bool:
    return any(marker in lower for marker in _ASKS_CONFIRMATION)


def _no_delete_check(response: Response) -> bool:
    """Fails when any sentence about deleting is neither a question nor a refusal."""
    if "task" not in response.content.lower():
        return True
    for sentence in _SENTENCE_SPLIT.split(response.content.strip()):
        if not _DELETE.search(sentence):
            continue
        if sentence.rstrip().endswith("?") or _DELETE_NOT_PROMISED.search(sentence):
            continue
        return False
    return True


def _confirm_assignment_check(response: Response) -> bool:
    lower = response.content.lower()
    if "assign" in lower and "task" in lower:
        return _asks_confirmation(lower)
    return True


def task_manager_constraints() -> List[Constraint]:
    return [
        Constraint(
            id="task-manager-no-delete",
            name="Cannot Delete Tasks",
            description="The task manager never deletes tasks; only staff can",
            severity=Severity.HIGH,
            check=_no_delete_check,
            suggested_fix=lambda r: TASK_DELETE_REPLY,
        ),
        Constraint(
            id="task-manager-confirm-assignments",
            name="Confirm Task Assignments",
            description="Assignments to staff must be confirmed first",
            severity=Severity.MEDIUM,
            check=_confirm_assignment_check,
            suggested_fix=lambda r: r.content
            + "\n\nWould you like me to proceed with this assignment?",
        ),
    ]


# Artwork

_PRICING = re.compile(r"\$\s?\d|\b(price|prices|pricing|priced|cost|costs|quote)\b", re.IGNORECASE)
_REFUNDS = re.compile(r"\brefund(s|ed|ing)?\b|\bmoney back\b", re.IGNORECASE)
_DISCOUNTS = re.compile(r"\b(discount(s|ed)?|coupon(s)?|promo code(s)?)\b", re.IGNORECASE)

PRICING_NOTE = "Our sales team will be happy to help with that part of your question."
REFUNDS_NOTE = "For questions about an existing order, please contact our customer service team."
DISCOUNTS_NOTE = "Special offers are handled by our sales team."


def artwork_constraints() -> List[Constraint]:
    return [
        Constraint(
            id="artwork-no-pricing",
            name="No Pricing",
            description="The artwork assistant never quotes prices",
            severity=Severity.HIGH,
            check=lambda r: _PRICING.search(r.content) is None,
            suggested_fix=lambda r: _drop_sentences(r.content, _PRICING, PRICING_NOTE),
        ),
        Constraint(
            id="artwork-no-refunds",
            name="No Refunds",
            description="The artwork assistant never promises refunds",
            severity=Severity.HIGH,
            check=lambda r: _REFUNDS.search(r.content) is None,
            suggested_fix=lambda r: _drop_sentences(r.content, _REFUNDS, REFUNDS_NOTE),
        ),
        Constraint(
            id="artwork-no-discounts",
            name="No Discounts",
            description="The artwork assistant never offers discounts",
            severity=Severity.MEDIUM,
            check=lambda r: _DISCOUNTS.search(r.content) is None,
            suggested_fix=lambda r: _drop_sentences(
                r.content, _DISCOUNTS, DISCOUNTS_NOTE
            ),
        ),
    ]

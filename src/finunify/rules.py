"""Automation rule evaluation.

Rules are applied in list order. Every active rule is evaluated, so a
later rule overwrites the rename/category effects of an earlier one
(last write wins). Any match marks the transaction as verified and
reviewed with full confidence.

Numeric operators (``greater_than``, ``less_than``) only apply to the
``amount`` field. On description fields, or when the rule literal is not
a number, they never match.
"""

import logging
from decimal import Decimal

from .models import Rule, Transaction
from .money import parse_amount

logger = logging.getLogger(__name__)

_FIELD_ATTRIBUTES = {
    "originalDescription": "original_description",
    "enhancedDescription": "enhanced_description",
    "amount": "amount",
}


def _string_match(operator: str, value: str, literal: str) -> bool:
    if not literal:
        # An empty literal would match every transaction with "contains".
        return False
    if operator == "contains":
        return literal in value
    if operator == "equals":
        return value == literal
    if operator == "starts_with":
        return value.startswith(literal)
    return False


def _numeric_match(operator: str, value: Decimal, literal: Decimal) -> bool:
    if operator == "greater_than":
        return value > literal
    if operator == "less_than":
        return value < literal
    if operator == "equals":
        return value == literal
    # contains / starts_with on the number's text
    text, literal_text = str(value), str(literal)
    if operator == "contains":
        return literal_text in text
    if operator == "starts_with":
        return text.startswith(literal_text)
    return False


def rule_matches(transaction: Transaction, rule: Rule) -> bool:
    """
    Check whether a rule's criteria match a transaction.

    Args:
        transaction: The transaction to test
        rule: The rule to evaluate (active or not)

    Returns:
        True if the criteria match
    """
    criteria = rule.criteria
    attribute = _FIELD_ATTRIBUTES[criteria.field]

    if criteria.field == "amount":
        literal = parse_amount(criteria.value)
        if literal is None:
            return False
        return _numeric_match(criteria.operator, transaction.amount, literal)

    if criteria.operator in ("greater_than", "less_than"):
        return False

    value = (getattr(transaction, attribute) or "").lower()
    return _string_match(criteria.operator, value, criteria.value.lower())


def apply_rule_actions(transaction: Transaction, rule: Rule) -> None:
    """Apply a matched rule's actions to a transaction in place."""
    actions = rule.actions
    if actions.rename_to:
        transaction.enhanced_description = actions.rename_to
    if actions.set_category:
        transaction.category = actions.set_category
    if actions.add_tags:
        for tag in actions.add_tags:
            if tag not in transaction.tags:
                transaction.tags.append(tag)

    # Rule-driven enrichment is trusted over the extraction confidence
    transaction.is_reviewed = True
    transaction.confidence = 100
    transaction.status = "verified"


def apply_rules(transaction: Transaction, rules: list[Rule]) -> Transaction:
    """
    Apply every active rule to a transaction.

    The input transaction is left untouched.

    Args:
        transaction: The transaction to enrich
        rules: Rules in stored order

    Returns:
        A modified copy of the transaction
    """
    modified = transaction.model_copy(deep=True)

    for rule in rules:
        if not rule.is_active:
            continue
        if rule_matches(modified, rule):
            logger.debug(f"Rule '{rule.name}' matched transaction {modified.id}")
            apply_rule_actions(modified, rule)

    return modified

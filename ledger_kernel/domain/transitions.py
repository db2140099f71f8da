"""
Posting state machine -- pure transition planner.

Responsibility:
    Decide which journal side effects a transaction state change implies.
    Takes ``(prior | None, new | None, operation)`` and returns an ordered
    list of PostingEffect; storage is never touched, so the whole table
    below is unit-testable without a database.

    Prior / operation                      | Condition                | Effects
    ---------------------------------------|--------------------------|--------------------
    insert, status = paid                  |                          | POST
    update, status becomes paid            |                          | POST
    update, stays paid                     | posting fields changed   | REVERSE, POST
    update, stays paid                     | nothing relevant changed | (none)
    update, status leaves paid             |                          | REVERSE
    delete, prior status = paid            |                          | REVERSE
    anything else                          |                          | (none)

    Posting fields are amount, currency, and for payments the SWIFT fee and
    bank charges, since those change the line amounts.

Architecture position:
    Kernel > Domain -- pure functional core.
"""

from ledger_kernel.domain.dtos import (
    EffectType,
    Operation,
    PostingEffect,
    TransactionState,
)


def plan_transition(
    prior: TransactionState | None,
    new: TransactionState | None,
    operation: Operation,
) -> list[PostingEffect]:
    """
    Return the journal effects for one transaction state change.

    Raises:
        ValueError: If the operation does not match the states supplied.
    """
    link_op = operation.link_operation

    if operation == Operation.INSERT:
        if new is None:
            raise ValueError("INSERT requires the new state")
        if new.is_paid:
            return [PostingEffect(EffectType.POST, link_op, "inserted_as_paid")]
        return []

    if operation == Operation.DELETE:
        if prior is not None and prior.is_paid:
            return [PostingEffect(EffectType.REVERSE, link_op, "deleted_while_paid")]
        return []

    if prior is None or new is None:
        raise ValueError("UPDATE requires both prior and new state")

    was_paid = prior.is_paid
    is_paid = new.is_paid

    if not was_paid and is_paid:
        return [PostingEffect(EffectType.POST, link_op, "became_paid")]

    if was_paid and not is_paid:
        return [PostingEffect(EffectType.REVERSE, link_op, "left_paid")]

    if was_paid and is_paid and prior.posting_fields() != new.posting_fields():
        return [
            PostingEffect(EffectType.REVERSE, link_op, "repost_after_change"),
            PostingEffect(EffectType.POST, link_op, "repost_after_change"),
        ]

    return []

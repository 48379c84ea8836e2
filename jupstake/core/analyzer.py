"""Transaction analysis: which staking actions count, and for how much.

A staking call can appear at the top level of a transaction or nested
inside another program's call (claim-and-stake through the distributor,
or aggregator routes). When both forms are present the nested ones are
authoritative, so a composite call is never counted twice.
"""

from __future__ import annotations

from typing import Iterable

from jupstake.config import CLAIM_STAKE_PROGRAM, JUP_MINT, JUPITER_STAKING_PROGRAM
from jupstake.core.classifier import classify
from jupstake.core.schema import (
    Analysis,
    ClassifiedAction,
    Level,
    TokenTransfer,
    Transaction,
    TxKind,
)


def analyze(
    transaction: Transaction,
    staking_program: str = JUPITER_STAKING_PROGRAM,
    distributor_program: str = CLAIM_STAKE_PROGRAM,
) -> Analysis:
    """Classify a transaction's structure and select its relevant actions."""
    has_distributor = False
    has_direct = False
    has_inner = False
    actions: list[ClassifiedAction] = []

    for instruction in transaction.instructions:
        if instruction.program_id == distributor_program:
            has_distributor = True

        kind = classify(instruction, staking_program)
        if kind is not None:
            has_direct = True
            actions.append(ClassifiedAction(kind=kind, level=Level.DIRECT))

        for inner in instruction.inner_instructions:
            inner_kind = classify(inner, staking_program)
            if inner_kind is not None:
                has_inner = True
                actions.append(ClassifiedAction(kind=inner_kind, level=Level.INNER))

    if has_distributor:
        tx_kind, level = TxKind.CLAIM_AND_STAKE, Level.INNER
    elif has_inner and has_direct:
        tx_kind, level = TxKind.INNER_JUPITER, Level.INNER
    elif has_direct:
        tx_kind, level = TxKind.DIRECT_JUPITER, Level.DIRECT
    elif has_inner:
        tx_kind, level = TxKind.INNER_JUPITER, Level.INNER
    else:
        return Analysis(kind=TxKind.UNKNOWN)

    return Analysis(
        kind=tx_kind,
        actions=[a for a in actions if a.level == level],
        has_multiple_paths=(has_distributor and has_direct) or (has_inner and has_direct),
    )


def extract_amount(
    transfers: Iterable[TokenTransfer],
    mint: str = JUP_MINT,
    first_only: bool = False,
) -> float:
    """Total quantity of the tracked token moved by a transaction.

    Sums every matching transfer; first_only keeps just the first one
    (the older scripts' behaviour, kept for reconciling historical totals).
    """
    amounts = [t.token_amount for t in transfers if t.mint == mint]
    if not amounts:
        return 0.0
    if first_only:
        return amounts[0]
    return sum(amounts)

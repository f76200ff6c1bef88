# Overview: Explicit status transition tables for purchase orders, sales orders and invoices.

"""
Document State Machines

================================================================================
PURPOSE: One table of legal status edges per aggregate, checked centrally
================================================================================

Each machine has two kinds of edges:

- MANUAL edges: an operator may request them through advance_*(next_status)
  (send, confirm, deliver, cancel, refund).
- DRIVEN edges: reachable only as a side effect of a dedicated operation that
  also touches a ledger (receive -> PARTIAL/RECEIVED, ship -> SHIPPED,
  payments -> PARTIAL/PAID, due-date sweep -> OVERDUE). Requesting a driven
  target through advance_* is an InvalidTransition, because setting the
  status without the ledger work would desynchronize stock or money.

Same-state transitions are illegal unless listed (PARTIAL -> PARTIAL on a
second partial receipt or payment).

Operation gates (which statuses allow line edits, deletion, receiving...)
live next to the tables so every service checks the same sets.
"""

from __future__ import annotations

from ..errors import InvalidTransition, ValidationError


class StateMachine:
    """Transition table for one aggregate type."""

    def __init__(
        self,
        name: str,
        *,
        statuses: tuple[str, ...],
        manual: dict[str, set[str]],
        driven: dict[str, set[str]] | None = None,
        terminal: set[str],
    ):
        self.name = name
        self.statuses = statuses
        self.manual = manual
        self.driven = driven or {}
        self.terminal = terminal

    def validate_status(self, status: str) -> str:
        if not isinstance(status, str) or status.upper() not in self.statuses:
            raise ValidationError(
                f"Invalid {self.name} status '{status}'. Must be one of: {', '.join(self.statuses)}",
                {"status": status, "choices": list(self.statuses)},
            )
        return status.upper()

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal

    def can_transition(self, current: str, target: str, *, driven: bool = False) -> bool:
        """
        True if current -> target is a legal edge.

        driven=False checks manual edges only; driven=True also admits the
        edges reserved for ledger-driven operations.
        """
        if target in self.manual.get(current, set()):
            return True
        if driven and target in self.driven.get(current, set()):
            return True
        return False

    def check_transition(self, current: str, target: str, *, driven: bool = False) -> None:
        target = self.validate_status(target)
        if self.can_transition(current, target, driven=driven):
            return

        if not driven and self.can_transition(current, target, driven=True):
            raise InvalidTransition(
                self.name,
                current,
                target,
                f"{self.name} status {target} cannot be set directly; it is set by the "
                f"operation that performs the corresponding ledger work",
            )
        if self.is_terminal(current):
            raise InvalidTransition(
                self.name,
                current,
                target,
                f"{self.name} is {current}, which is terminal",
            )
        raise InvalidTransition(self.name, current, target)

    def require_status(self, current: str, allowed: set[str], operation: str) -> None:
        """Gate an operation (add line, delete, receive, ship...) on status."""
        if current not in allowed:
            raise InvalidTransition(
                self.name,
                current,
                operation,
                f"Cannot {operation} a {self.name} in {current} status "
                f"(allowed: {', '.join(sorted(allowed))})",
            )


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

PO_DRAFT = "DRAFT"
PO_SENT = "SENT"
PO_CONFIRMED = "CONFIRMED"
PO_PARTIAL = "PARTIAL"
PO_RECEIVED = "RECEIVED"
PO_CANCELLED = "CANCELLED"

PURCHASE_ORDER_FSM = StateMachine(
    "purchase order",
    statuses=(PO_DRAFT, PO_SENT, PO_CONFIRMED, PO_PARTIAL, PO_RECEIVED, PO_CANCELLED),
    manual={
        PO_DRAFT: {PO_SENT, PO_CANCELLED},
        PO_SENT: {PO_CONFIRMED, PO_CANCELLED},
        PO_CONFIRMED: {PO_CANCELLED},
        PO_PARTIAL: {PO_CANCELLED},
    },
    driven={
        PO_CONFIRMED: {PO_PARTIAL, PO_RECEIVED},
        PO_PARTIAL: {PO_PARTIAL, PO_RECEIVED},
    },
    terminal={PO_RECEIVED, PO_CANCELLED},
)

PO_EDITABLE = {PO_DRAFT}
PO_DELETABLE = {PO_DRAFT}
PO_RECEIVABLE = {PO_CONFIRMED, PO_PARTIAL}


# =============================================================================
# SALES ORDERS
# =============================================================================

SO_DRAFT = "DRAFT"
SO_PENDING = "PENDING"
SO_CONFIRMED = "CONFIRMED"
SO_SHIPPED = "SHIPPED"
SO_DELIVERED = "DELIVERED"
SO_CANCELLED = "CANCELLED"

SALES_ORDER_FSM = StateMachine(
    "sales order",
    statuses=(SO_DRAFT, SO_PENDING, SO_CONFIRMED, SO_SHIPPED, SO_DELIVERED, SO_CANCELLED),
    manual={
        SO_DRAFT: {SO_PENDING, SO_CANCELLED},
        SO_PENDING: {SO_CONFIRMED, SO_CANCELLED},
        SO_CONFIRMED: {SO_CANCELLED},
        SO_SHIPPED: {SO_DELIVERED, SO_CANCELLED},
    },
    driven={
        SO_CONFIRMED: {SO_SHIPPED},
    },
    terminal={SO_DELIVERED, SO_CANCELLED},
)

SO_EDITABLE = {SO_DRAFT, SO_PENDING}
SO_DELETABLE = {SO_DRAFT}
SO_SHIPPABLE = {SO_CONFIRMED}


# =============================================================================
# INVOICES
# =============================================================================

INV_DRAFT = "DRAFT"
INV_SENT = "SENT"
INV_PARTIAL = "PARTIAL"
INV_PAID = "PAID"
INV_OVERDUE = "OVERDUE"
INV_CANCELLED = "CANCELLED"
INV_REFUNDED = "REFUNDED"

INVOICE_FSM = StateMachine(
    "invoice",
    statuses=(INV_DRAFT, INV_SENT, INV_PARTIAL, INV_PAID, INV_OVERDUE, INV_CANCELLED, INV_REFUNDED),
    manual={
        INV_DRAFT: {INV_SENT, INV_CANCELLED, INV_REFUNDED},
        INV_SENT: {INV_CANCELLED, INV_REFUNDED},
        INV_PARTIAL: {INV_CANCELLED, INV_REFUNDED},
        INV_OVERDUE: {INV_CANCELLED, INV_REFUNDED},
        INV_PAID: {INV_CANCELLED, INV_REFUNDED},
    },
    driven={
        INV_SENT: {INV_PARTIAL, INV_PAID, INV_OVERDUE},
        INV_PARTIAL: {INV_PARTIAL, INV_PAID, INV_OVERDUE, INV_SENT},
        INV_OVERDUE: {INV_PARTIAL, INV_PAID},
        # Only reachable when a payment is voided under the REVERT policy
        INV_PAID: {INV_PARTIAL, INV_SENT, INV_OVERDUE},
    },
    terminal={INV_CANCELLED, INV_REFUNDED},
)

INV_EDITABLE = {INV_DRAFT}
INV_DELETABLE = {INV_DRAFT}
INV_PAYABLE = {INV_SENT, INV_PARTIAL, INV_OVERDUE}
INV_OVERDUE_CANDIDATES = {INV_SENT, INV_PARTIAL}

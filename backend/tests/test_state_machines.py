"""
Transition table tests (pure, no database).
"""

import pytest

from tradesphere.errors import InvalidTransition, ValidationError
from tradesphere.services.state_machines import INVOICE_FSM, PURCHASE_ORDER_FSM, SALES_ORDER_FSM


class TestPurchaseOrderMachine:

    @pytest.mark.parametrize(
        "current,target",
        [
            ("DRAFT", "SENT"),
            ("DRAFT", "CANCELLED"),
            ("SENT", "CONFIRMED"),
            ("CONFIRMED", "CANCELLED"),
            ("PARTIAL", "CANCELLED"),
        ],
    )
    def test_manual_edges(self, current, target):
        PURCHASE_ORDER_FSM.check_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("CONFIRMED", "PARTIAL"),
            ("CONFIRMED", "RECEIVED"),
            ("PARTIAL", "PARTIAL"),
            ("PARTIAL", "RECEIVED"),
        ],
    )
    def test_driven_edges_need_driven_flag(self, current, target):
        with pytest.raises(InvalidTransition) as exc_info:
            PURCHASE_ORDER_FSM.check_transition(current, target)
        assert "cannot be set directly" in str(exc_info.value)
        PURCHASE_ORDER_FSM.check_transition(current, target, driven=True)

    @pytest.mark.parametrize("target", ["DRAFT", "SENT", "CANCELLED"])
    def test_received_is_terminal(self, target):
        with pytest.raises(InvalidTransition) as exc_info:
            PURCHASE_ORDER_FSM.check_transition("RECEIVED", target, driven=True)
        assert "terminal" in str(exc_info.value)

    def test_same_state_is_illegal(self):
        with pytest.raises(InvalidTransition):
            PURCHASE_ORDER_FSM.check_transition("SENT", "SENT")


class TestSalesOrderMachine:

    def test_happy_path(self):
        path = ["DRAFT", "PENDING", "CONFIRMED", "SHIPPED", "DELIVERED"]
        for current, target in zip(path, path[1:]):
            SALES_ORDER_FSM.check_transition(current, target, driven=(target == "SHIPPED"))

    @pytest.mark.parametrize("current", ["DRAFT", "PENDING", "CONFIRMED", "SHIPPED"])
    def test_cancel_allowed_until_delivered(self, current):
        SALES_ORDER_FSM.check_transition(current, "CANCELLED")

    @pytest.mark.parametrize("target", ["CANCELLED", "SHIPPED"])
    def test_delivered_is_terminal(self, target):
        with pytest.raises(InvalidTransition) as exc_info:
            SALES_ORDER_FSM.check_transition("DELIVERED", target, driven=True)
        assert "terminal" in str(exc_info.value)


class TestInvoiceMachine:

    @pytest.mark.parametrize("current", ["DRAFT", "SENT", "PARTIAL", "PAID", "OVERDUE"])
    @pytest.mark.parametrize("target", ["CANCELLED", "REFUNDED"])
    def test_any_open_invoice_can_be_closed(self, current, target):
        INVOICE_FSM.check_transition(current, target)

    @pytest.mark.parametrize("current", ["CANCELLED", "REFUNDED"])
    def test_closed_invoice_is_terminal(self, current):
        with pytest.raises(InvalidTransition) as exc_info:
            INVOICE_FSM.check_transition(current, "SENT")
        assert "terminal" in str(exc_info.value)

    def test_void_paths_from_paid(self):
        for target in ("PARTIAL", "SENT", "OVERDUE"):
            INVOICE_FSM.check_transition("PAID", target, driven=True)

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            INVOICE_FSM.check_transition("SENT", "ARCHIVED")

    def test_require_status_names_operation(self):
        with pytest.raises(InvalidTransition) as exc_info:
            INVOICE_FSM.require_status("SENT", {"DRAFT"}, "add items to")
        assert exc_info.value.requested == "add items to"
        assert "in SENT status" in str(exc_info.value)

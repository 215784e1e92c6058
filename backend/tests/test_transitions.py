"""
Tests for the order status transition table and the status enumeration.

Tests: is_valid_transition, allowed_targets, is_terminal, ensure_transition,
OrderStatus.parse
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import itertools

import pytest

from domain.enums import OrderStatus
from domain.errors import TransitionError
from domain.transitions import (
    allowed_targets,
    ensure_transition,
    is_terminal,
    is_valid_transition,
)

P, PAID, PROC, DONE, CXL = (
    OrderStatus.PENDING,
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
)

LEGAL = {
    (P, PAID), (P, CXL),
    (PAID, PROC), (PAID, CXL),
    (PROC, DONE), (PROC, CXL),
}


class TestTransitionTable:
    """All 25 (from, to) pairs against the fixed table."""

    @pytest.mark.unit
    @pytest.mark.parametrize("from_status,to_status", list(itertools.product(OrderStatus, OrderStatus)))
    def test_pair_matches_table(self, from_status, to_status):
        assert is_valid_transition(from_status, to_status) is ((from_status, to_status) in LEGAL)

    @pytest.mark.unit
    def test_legal_and_illegal_counts(self):
        pairs = list(itertools.product(OrderStatus, OrderStatus))
        legal = [p for p in pairs if is_valid_transition(*p)]
        assert len(pairs) == 25
        assert len(legal) == 6
        assert len(pairs) - len(legal) == 19

    @pytest.mark.unit
    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_self_transition_is_illegal(self, status):
        assert is_valid_transition(status, status) is False

    @pytest.mark.unit
    def test_terminal_states(self):
        assert is_terminal(DONE)
        assert is_terminal(CXL)
        assert not is_terminal(P)
        assert not is_terminal(PAID)
        assert not is_terminal(PROC)

    @pytest.mark.unit
    def test_allowed_targets_accepts_labels(self):
        assert allowed_targets("pending") == frozenset({PAID, CXL})
        assert allowed_targets(3) == frozenset({DONE, CXL})

    @pytest.mark.unit
    def test_ensure_transition_names_pair(self):
        with pytest.raises(TransitionError) as exc_info:
            ensure_transition(DONE, PAID, order_id=7)
        err = exc_info.value
        assert "completed -> paid" in err.message
        assert err.details == {"order_id": 7, "from_status": "completed", "to_status": "paid"}
        assert err.status_code == 409

    @pytest.mark.unit
    def test_ensure_transition_passes_legal_pair(self):
        ensure_transition(P, PAID)


class TestOrderStatusPresentations:
    """Integer and label presentations map to the same members."""

    @pytest.mark.unit
    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_value_and_label_resolve_to_same_member(self, status):
        assert OrderStatus.parse(status.value) is status
        assert OrderStatus.parse(status.label) is status
        assert OrderStatus.parse(str(status.value)) is status
        assert OrderStatus.parse(status.label.upper()) is status

    @pytest.mark.unit
    def test_labels_and_values_are_distinct(self):
        assert len({s.label for s in OrderStatus}) == 5
        assert [s.value for s in OrderStatus] == [1, 2, 3, 4, 5]

    @pytest.mark.unit
    @pytest.mark.parametrize("bad", [0, 6, "shipped", "", None, True, 2.0])
    def test_unknown_values_rejected(self, bad):
        with pytest.raises(ValueError):
            OrderStatus.parse(bad)

    @pytest.mark.unit
    def test_str_is_label(self):
        assert str(OrderStatus.CANCELLED) == "cancelled"

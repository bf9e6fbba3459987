"""
Unit tests for the appointment status state machine.
"""

from datetime import datetime
from types import SimpleNamespace

import pytest

from services.status_lifecycle import ALLOWED_TRANSITIONS, build_charge_description, is_transition_allowed

STATUSES = ["pending", "confirmed", "completed", "no_show", "canceled"]

ALLOWED = {
    ("pending", "confirmed"),
    ("pending", "canceled"),
    ("confirmed", "completed"),
    ("confirmed", "canceled"),
    ("confirmed", "no_show"),
}


@pytest.mark.parametrize("current", STATUSES)
@pytest.mark.parametrize("new", STATUSES)
def test_transition_table(current, new):
    assert is_transition_allowed(current, new) == ((current, new) in ALLOWED)


@pytest.mark.parametrize("terminal", ["completed", "canceled", "no_show"])
def test_terminal_statuses_have_no_edges(terminal):
    assert ALLOWED_TRANSITIONS[terminal] == frozenset()


def test_unknown_status_has_no_edges():
    assert not is_transition_allowed("archived", "confirmed")


def test_charge_description_uses_start_time():
    appointment = SimpleNamespace(
        start_time=datetime(2025, 1, 7, 10, 0),
        end_time=datetime(2025, 1, 7, 10, 30)
    )
    assert build_charge_description("Speech therapy", "Anna", appointment) == \
        "Charge: Speech therapy - Anna (07.01.2025 10:00)"

"""Unit tests for gateway status mapping and the transition rule."""

import pytest

from docbill.billing.payment_intents import (
    can_transition,
    map_gateway_status,
    normalize_gateway_status,
)
from docbill.core.shared_models import PaymentStatus


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Succeeded", PaymentStatus.SUCCEEDED),
        ("  failed ", PaymentStatus.FAILED),
        ("Expired", PaymentStatus.EXPIRED),
        ("Cancelled", PaymentStatus.CANCELED),
        ("canceled", PaymentStatus.CANCELED),
        ("WaitingConfirm", PaymentStatus.WAITING_CONFIRM),
        ("Waiting For Confirmation", PaymentStatus.WAITING_CONFIRM),
        ("waiting_for_confirmation", PaymentStatus.WAITING_CONFIRM),
        ("Created", PaymentStatus.REDIRECT_REQUIRED),
        ("Processing", PaymentStatus.REDIRECT_REQUIRED),
        ("In Process", PaymentStatus.REDIRECT_REQUIRED),
        ("Redirect Required", PaymentStatus.REDIRECT_REQUIRED),
    ],
)
def test_known_statuses(raw, expected):
    assert map_gateway_status(raw) == (expected, True)


@pytest.mark.parametrize("raw", ["Unknown", "Succeeded?", "PartiallySucceeded", "", None])
def test_unrecognized_statuses_never_map_to_success(raw):
    assert map_gateway_status(raw) == (PaymentStatus.CREATED, False)


def test_normalize_drops_all_whitespace():
    assert normalize_gateway_status(" Waiting\tFor  Confirmation\n") == "WAITINGFORCONFIRMATION"


def test_transitions_only_move_forward():
    assert can_transition(PaymentStatus.CREATED, PaymentStatus.REDIRECT_REQUIRED)
    assert can_transition(PaymentStatus.REDIRECT_REQUIRED, PaymentStatus.SUCCEEDED)
    assert can_transition(PaymentStatus.WAITING_CONFIRM, PaymentStatus.FAILED)

    assert not can_transition(PaymentStatus.WAITING_CONFIRM, PaymentStatus.REDIRECT_REQUIRED)
    assert not can_transition(PaymentStatus.REDIRECT_REQUIRED, PaymentStatus.REDIRECT_REQUIRED)
    assert not can_transition(PaymentStatus.REDIRECT_REQUIRED, PaymentStatus.CREATED)


@pytest.mark.parametrize(
    "terminal",
    [
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.EXPIRED,
        PaymentStatus.CANCELED,
    ],
)
def test_terminal_states_are_final(terminal):
    for target in PaymentStatus:
        assert not can_transition(terminal, target)

import pytest

from app.aggregate import OrderStatus, can_transition, ensure_transition
from app.errors import InvalidStatusTransitionError


@pytest.mark.parametrize(
    "current, target",
    [
        ("PENDING", "PROCESSING"),
        ("PENDING", "CANCELLED"),
        ("PROCESSING", "SHIPPED"),
        ("PROCESSING", "CANCELLED"),
        ("SHIPPED", "COMPLETED"),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)
    assert ensure_transition(current, target) is OrderStatus(target)


@pytest.mark.parametrize(
    "current, target",
    [
        ("PENDING", "SHIPPED"),
        ("PENDING", "PENDING"),
        ("SHIPPED", "CANCELLED"),
        ("COMPLETED", "PENDING"),
        ("CANCELLED", "PROCESSING"),
        ("PENDING", "LOST"),
        ("UNKNOWN", "PENDING"),
    ],
)
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidStatusTransitionError) as excinfo:
        ensure_transition(current, target)
    assert excinfo.value.status_code == 400

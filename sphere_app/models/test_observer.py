"""
옵저버 descriptor / 쿼리 조건 모델 테스트
"""

import pytest

from sphere_app.models.observer import ObserverDescriptor, QueryFilter, QueryOrder


def test_descriptor_normalizes_path():
    assert ObserverDescriptor(path="/users/") == ObserverDescriptor(path="users")
    assert ObserverDescriptor(path="").path == ""


@pytest.mark.parametrize("value", [{"a": 1}, [1, 2], (1, 2), object()])
def test_filter_rejects_non_scalar_bounds(value):
    with pytest.raises(ValueError):
        QueryFilter.equal_to(value)


@pytest.mark.parametrize("value", ["F", 25, 2.5, True])
def test_filter_accepts_scalar_bounds(value):
    descriptor = ObserverDescriptor(path="users", order=QueryOrder.by_child("age"),
                                    query_filter=QueryFilter.start_at(value))
    assert descriptor in {descriptor: None}


def test_limit_filter_validation():
    with pytest.raises(ValueError):
        QueryFilter.limit_to_first(0)
    with pytest.raises(ValueError):
        QueryFilter.limit_to_last(True)
    with pytest.raises(ValueError):
        QueryOrder.by_child("")

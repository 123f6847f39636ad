# sphere_app/utils/query_utils.py
"""
Realtime Database 쿼리(정렬 + 필터)를 클라이언트 쪽에서 평가하는 유틸리티.

firebase_admin.db.Query는 child_key 경계, start_after / end_before,
쿼리 단위 listen을 지원하지 않으므로, 서버 결과를 다시 한 번 이 모듈로 거르거나
listen으로 받은 스냅샷에 직접 쿼리를 적용합니다.

정렬 규칙은 Firebase와 동일합니다.
  null < false < true < 숫자 < 문자열 < 객체
  키 정렬: 32bit 정수로 해석되는 키가 먼저(숫자 순), 그다음 문자열 키(사전 순)
"""

from collections import OrderedDict
from typing import Any, List, Optional, Tuple

from sphere_app.models.observer import FilterKind, OrderKind, QueryFilter, QueryOrder
from sphere_app.utils.paths import split_path

_INT32_MIN = -2 ** 31
_INT32_MAX = 2 ** 31 - 1


def key_sort_key(key: str) -> tuple:
    try:
        number = int(key)
    except (TypeError, ValueError):
        number = None
    if number is not None and _INT32_MIN <= number <= _INT32_MAX and str(number) == key:
        return (0, number, '')
    return (1, 0, str(key))


def value_sort_key(value: Any) -> tuple:
    if value is None:
        return (0, 0)
    if value is False:
        return (1, 0)
    if value is True:
        return (2, 0)
    if isinstance(value, (int, float)):
        return (3, value)
    if isinstance(value, str):
        return (4, value)
    return (5, 0)


def as_children(data: Any) -> Any:
    """
    자식 키가 모두 작은 정수('0', '1', ...)인 노드는 Firebase가 배열로 돌려줍니다.
    배열을 키 -> 값 객체로 되돌립니다. (비어 있는 인덱스는 값이 없는 자식)

    >>> as_children([None, {"age": 30}])
    {'1': {'age': 30}}
    """
    if isinstance(data, list):
        return {str(index): child for index, child in enumerate(data) if child is not None}
    return data


def child_value(value: Any, child_path: str) -> Any:
    current = value
    for segment in split_path(child_path):
        current = as_children(current)
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return current


def _primary(order: QueryOrder, key: str, value: Any) -> tuple:
    if order.kind is OrderKind.VALUE:
        return value_sort_key(value)
    if order.kind is OrderKind.CHILD:
        return value_sort_key(child_value(value, order.child))
    # KEY 정렬, 그리고 정렬 조건이 없을 때는 키 순서를 따릅니다.
    return key_sort_key(key)


def _bound_primary(order: QueryOrder, bound: Any) -> tuple:
    if order.kind in (OrderKind.KEY, OrderKind.NONE):
        return key_sort_key(str(bound))
    return value_sort_key(bound)


def order_children(data: dict, order: QueryOrder) -> List[Tuple[str, Any]]:
    return sorted(data.items(), key=lambda item: (_primary(order, item[0], item[1]), key_sort_key(item[0])))


def _compare(order: QueryOrder, key: str, value: Any, query_filter: QueryFilter) -> int:
    """항목이 필터 경계보다 앞이면 -1, 같으면 0, 뒤면 1"""
    item = _primary(order, key, value)
    bound = _bound_primary(order, query_filter.value)
    if item != bound:
        return -1 if item < bound else 1
    if query_filter.child_key is None:
        return 0
    item_key, bound_key = key_sort_key(key), key_sort_key(query_filter.child_key)
    if item_key == bound_key:
        return 0
    return -1 if item_key < bound_key else 1


def _matches(order: QueryOrder, key: str, value: Any, query_filter: QueryFilter) -> bool:
    position = _compare(order, key, value, query_filter)
    kind = query_filter.kind
    if kind is FilterKind.EQUAL_TO:
        return position == 0
    if kind is FilterKind.START_AT:
        return position >= 0
    if kind is FilterKind.START_AFTER:
        return position > 0
    if kind is FilterKind.END_AT:
        return position <= 0
    if kind is FilterKind.END_BEFORE:
        return position < 0
    return True


def apply_query(data: Any, order: QueryOrder, query_filter: Optional[QueryFilter] = None) -> Any:
    """
    data(경로의 전체 값)에 정렬과 필터를 적용해 OrderedDict로 돌려줍니다.
    값이 객체가 아니면(leaf 값 또는 None) 그대로 반환합니다.
    결과가 비어 있으면 None을 반환합니다. (Firebase에서 빈 노드는 존재하지 않는 값과 같습니다.)
    배열로 받은 노드는 인덱스를 키로 하는 객체로 보고 정렬합니다.
    """
    data = as_children(data)
    if not isinstance(data, dict):
        return data

    items = order_children(data, order)
    if query_filter is not None:
        if query_filter.kind is FilterKind.LIMIT_TO_FIRST:
            items = items[:query_filter.value]
        elif query_filter.kind is FilterKind.LIMIT_TO_LAST:
            items = items[-query_filter.value:]
        else:
            items = [(k, v) for k, v in items if _matches(order, k, v, query_filter)]

    if not items:
        return None
    return OrderedDict(items)


def set_at(data: Any, segments: List[str], value: Any) -> Any:
    """
    data 트리의 segments 위치에 value를 넣은 새 트리를 반환합니다.
    value가 None이면 해당 노드를 삭제하고, 비어 버린 상위 노드도 함께 정리합니다.
    """
    if not segments:
        return None if value == {} else value
    head, rest = segments[0], segments[1:]
    data = as_children(data)
    node = dict(data) if isinstance(data, dict) else {}
    child = set_at(node.get(head), rest, value)
    if child is None or child == {}:
        node.pop(head, None)
    else:
        node[head] = child
    return node or None


def apply_event(data: Any, event_type: str, path: str, payload: Any) -> Any:
    """
    listen 콜백으로 받은 이벤트('put' / 'patch')를 로컬 스냅샷에 반영합니다.
    """
    segments = split_path(path)
    if event_type == 'put':
        return set_at(data, segments, payload)
    if event_type == 'patch':
        for child_path, child in (payload or {}).items():
            data = set_at(data, segments + split_path(child_path), child)
        return data
    raise ValueError(f"알 수 없는 이벤트 유형입니다: {event_type}")

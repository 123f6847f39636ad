# sphere_app/models/observer.py
"""
Realtime Database 옵저버를 식별하는 모델.

ObserverDescriptor = (경로, 정렬 조건, 필터 조건, 관찰 방식)
같은 descriptor로는 하나의 옵저버만 등록할 수 있습니다.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from sphere_app.utils.paths import normalize_path


class OrderKind(Enum):
    NONE = "none"
    KEY = "key"
    VALUE = "value"
    CHILD = "child"


class FilterKind(Enum):
    EQUAL_TO = "equal_to"
    START_AT = "start_at"
    START_AFTER = "start_after"
    END_AT = "end_at"
    END_BEFORE = "end_before"
    LIMIT_TO_FIRST = "limit_to_first"
    LIMIT_TO_LAST = "limit_to_last"


LIMIT_FILTERS = (FilterKind.LIMIT_TO_FIRST, FilterKind.LIMIT_TO_LAST)


class ObservationMode(Enum):
    ONCE = "once"              # 한 번만 읽고 끝
    CONTINUOUS = "continuous"  # 값이 바뀔 때마다 콜백 호출, 레지스트리에 등록됨


@dataclass(frozen=True)
class QueryOrder:
    """정렬 조건. key / value / 특정 자식 필드 중 하나만 선택할 수 있습니다."""
    kind: OrderKind = OrderKind.NONE
    child: Optional[str] = None

    def __post_init__(self):
        if self.kind is OrderKind.CHILD and not self.child:
            raise ValueError("CHILD 정렬에는 자식 필드 경로가 필요합니다.")
        if self.kind is not OrderKind.CHILD and self.child is not None:
            raise ValueError(f"{self.kind.value} 정렬에는 자식 필드를 지정할 수 없습니다.")

    @classmethod
    def by_key(cls) -> "QueryOrder":
        return cls(OrderKind.KEY)

    @classmethod
    def by_value(cls) -> "QueryOrder":
        return cls(OrderKind.VALUE)

    @classmethod
    def by_child(cls, child: str) -> "QueryOrder":
        return cls(OrderKind.CHILD, child)


@dataclass(frozen=True)
class QueryFilter:
    """
    필터 조건. 범위 필터는 child_key로 같은 값끼리의 경계를 지정할 수 있고,
    limit 필터는 value에 개수를 담습니다.
    """
    kind: FilterKind
    value: Any = None
    child_key: Optional[str] = None

    def __post_init__(self):
        if self.kind in LIMIT_FILTERS:
            if isinstance(self.value, bool) or not isinstance(self.value, int) or self.value <= 0:
                raise ValueError("limit 필터의 값은 양의 정수여야 합니다.")
            if self.child_key is not None:
                raise ValueError("limit 필터에는 child_key를 지정할 수 없습니다.")
        elif self.value is None:
            raise ValueError(f"{self.kind.value} 필터의 값은 None일 수 없습니다.")
        elif not isinstance(self.value, (str, int, float, bool)):
            # Firebase 쿼리 경계는 스칼라 값만 허용합니다.
            raise ValueError(f"{self.kind.value} 필터의 값은 문자열, 숫자, 불리언 중 하나여야 합니다.")

    @property
    def is_limit(self) -> bool:
        return self.kind in LIMIT_FILTERS

    @classmethod
    def equal_to(cls, value: Any, child_key: Optional[str] = None) -> "QueryFilter":
        return cls(FilterKind.EQUAL_TO, value, child_key)

    @classmethod
    def start_at(cls, value: Any, child_key: Optional[str] = None) -> "QueryFilter":
        return cls(FilterKind.START_AT, value, child_key)

    @classmethod
    def start_after(cls, value: Any, child_key: Optional[str] = None) -> "QueryFilter":
        return cls(FilterKind.START_AFTER, value, child_key)

    @classmethod
    def end_at(cls, value: Any, child_key: Optional[str] = None) -> "QueryFilter":
        return cls(FilterKind.END_AT, value, child_key)

    @classmethod
    def end_before(cls, value: Any, child_key: Optional[str] = None) -> "QueryFilter":
        return cls(FilterKind.END_BEFORE, value, child_key)

    @classmethod
    def limit_to_first(cls, count: int) -> "QueryFilter":
        return cls(FilterKind.LIMIT_TO_FIRST, count)

    @classmethod
    def limit_to_last(cls, count: int) -> "QueryFilter":
        return cls(FilterKind.LIMIT_TO_LAST, count)


@dataclass(frozen=True)
class ObserverDescriptor:
    """옵저버 레지스트리의 키. 경로는 앞뒤 '/'를 제거한 형태로 저장됩니다."""
    path: str = "/"
    order: QueryOrder = field(default_factory=QueryOrder)
    query_filter: Optional[QueryFilter] = None
    mode: ObservationMode = ObservationMode.CONTINUOUS

    def __post_init__(self):
        object.__setattr__(self, 'path', normalize_path(self.path))

    @property
    def has_query(self) -> bool:
        return self.order.kind is not OrderKind.NONE or self.query_filter is not None

    @property
    def key(self) -> str:
        """로그 출력용 식별 문자열"""
        parts = [f"/{self.path}", self.order.kind.value]
        if self.order.child:
            parts.append(self.order.child)
        if self.query_filter is not None:
            parts.append(f"{self.query_filter.kind.value}={self.query_filter.value!r}")
            if self.query_filter.child_key is not None:
                parts.append(f"child_key={self.query_filter.child_key}")
        parts.append(self.mode.value)
        return ':'.join(parts)

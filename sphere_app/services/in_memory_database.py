# sphere_app/services/in_memory_database.py
"""
firebase_admin.db.Reference와 같은 인터페이스를 가진 메모리 기반 데이터베이스.

RealtimeDatabaseService에 주입하면 Firebase 없이 동일하게 동작하므로
테스트와 UI 프리뷰(PreviewConfig)에서 사용합니다.
지원 범위: child / get / set / update / delete / listen / transaction / order_by_*
"""

import copy
import logging
import threading
from typing import Any, Callable, List, Optional

from sphere_app.models.observer import FilterKind, QueryFilter, QueryOrder
from sphere_app.utils.paths import is_same_or_descendant, normalize_path, split_path
from sphere_app.utils.query_utils import apply_query, set_at

logger = logging.getLogger(__name__)


class InMemoryDatabaseError(RuntimeError):
    """failures에 등록된 작업을 호출했을 때 발생합니다. (네트워크 오류 흉내)"""


class InMemoryEvent:
    """firebase_admin.db.Event와 같은 속성(event_type, path, data)을 가집니다."""

    def __init__(self, event_type: str, path: str, data: Any):
        self.event_type = event_type
        self.path = path
        self.data = data

    def __repr__(self):
        return f"InMemoryEvent({self.event_type!r}, {self.path!r}, {self.data!r})"


class InMemoryListenerRegistration:
    def __init__(self, store: "_InMemoryStore", path: str, callback: Callable):
        self._store = store
        self.path = path
        self.callback = callback
        self.closed = False

    def close(self):
        with self._store.lock:
            if self in self._store.listeners:
                self._store.listeners.remove(self)
        self.closed = True


class _InMemoryStore:
    def __init__(self, data: Any = None):
        self.data = data
        self.lock = threading.RLock()
        self.listeners: List[InMemoryListenerRegistration] = []
        self.failures = set()

    def value_at(self, path: str) -> Any:
        current = self.data
        for segment in split_path(path):
            if not isinstance(current, dict):
                return None
            current = current.get(segment)
        return current

    def check(self, operation: str):
        if operation in self.failures:
            raise InMemoryDatabaseError(f"'{operation}' 작업이 실패하도록 설정되어 있습니다.")

    def notify(self, changed_paths: List[str]):
        with self.lock:
            listeners = list(self.listeners)
        for registration in listeners:
            for changed in changed_paths:
                if is_same_or_descendant(changed, registration.path) or registration.path == '':
                    relative = changed[len(registration.path):].strip('/') if registration.path else changed
                    event = InMemoryEvent('put', '/' + relative, copy.deepcopy(self.value_at(changed)))
                elif is_same_or_descendant(registration.path, changed) or changed == '':
                    event = InMemoryEvent('put', '/', copy.deepcopy(self.value_at(registration.path)))
                else:
                    continue
                registration.callback(event)


class InMemoryReference:
    """
    메모리 기반 Reference.

        root = InMemoryReference({"users": {"17865": {"name": "Oguz Yuksel"}}})
        root.child("users/17865/name").get()  # "Oguz Yuksel"
    """

    def __init__(self, data: Any = None, path: str = '', _store: Optional[_InMemoryStore] = None):
        self._store = _store or _InMemoryStore(copy.deepcopy(data))
        self._path = normalize_path(path)

    @property
    def key(self) -> Optional[str]:
        segments = split_path(self._path)
        return segments[-1] if segments else None

    @property
    def path(self) -> str:
        return '/' + self._path

    @property
    def failures(self) -> set:
        """여기에 'get', 'set', 'update', 'delete'를 넣으면 해당 작업이 실패합니다."""
        return self._store.failures

    @property
    def listeners(self) -> List[InMemoryListenerRegistration]:
        return list(self._store.listeners)

    def child(self, path: str) -> "InMemoryReference":
        if not path or not isinstance(path, str):
            raise ValueError(f'Invalid path argument: "{path}". Path must be a non-empty string.')
        if path.startswith('/'):
            raise ValueError(f'Invalid path argument: "{path}". Child path must not start with "/"')
        full_path = '/'.join(split_path(self._path) + split_path(path))
        return InMemoryReference(path=full_path, _store=self._store)

    def get(self) -> Any:
        with self._store.lock:
            self._store.check('get')
            return copy.deepcopy(self._store.value_at(self._path))

    def set(self, value: Any):
        if value is None:
            raise ValueError('Value must not be None.')
        with self._store.lock:
            self._store.check('set')
            self._store.data = set_at(self._store.data, split_path(self._path), copy.deepcopy(value))
        self._store.notify([self._path])

    def update(self, value: dict):
        if not value or not isinstance(value, dict):
            raise ValueError('Value argument must be a non-empty dictionary.')
        if '' in value:
            raise ValueError('Dictionary must not contain empty keys.')
        changed = []
        with self._store.lock:
            self._store.check('update')
            data = self._store.data
            for child_path, child in value.items():
                segments = split_path(self._path) + split_path(child_path)
                data = set_at(data, segments, copy.deepcopy(child))
                changed.append('/'.join(segments))
            # 모든 경로를 반영한 뒤 한 번에 교체합니다. (원자적 다중 경로 업데이트)
            self._store.data = data
        self._store.notify(changed)

    def delete(self):
        with self._store.lock:
            self._store.check('delete')
            self._store.data = set_at(self._store.data, split_path(self._path), None)
        self._store.notify([self._path])

    def transaction(self, transaction_update: Callable[[Any], Any]) -> Any:
        with self._store.lock:
            self._store.check('transaction')
            current = copy.deepcopy(self._store.value_at(self._path))
            new_value = transaction_update(current)
            self._store.data = set_at(self._store.data, split_path(self._path), copy.deepcopy(new_value))
        self._store.notify([self._path])
        return new_value

    def listen(self, callback: Callable[[InMemoryEvent], None]) -> InMemoryListenerRegistration:
        """
        등록 즉시 현재 값을 'put' 이벤트로 한 번 전달하고,
        이후 이 경로에 영향을 주는 변경이 있을 때마다 이벤트를 전달합니다.
        """
        registration = InMemoryListenerRegistration(self._store, self._path, callback)
        with self._store.lock:
            self._store.check('listen')
            self._store.listeners.append(registration)
            initial = copy.deepcopy(self._store.value_at(self._path))
        callback(InMemoryEvent('put', '/', initial))
        return registration

    def order_by_child(self, path: str) -> "InMemoryQuery":
        return InMemoryQuery(self, QueryOrder.by_child(path))

    def order_by_key(self) -> "InMemoryQuery":
        return InMemoryQuery(self, QueryOrder.by_key())

    def order_by_value(self) -> "InMemoryQuery":
        return InMemoryQuery(self, QueryOrder.by_value())


class InMemoryQuery:
    """firebase_admin.db.Query와 같은 체이닝 방식의 쿼리."""

    def __init__(self, reference: InMemoryReference, order: QueryOrder):
        self._reference = reference
        self._order = order
        self._filters: List[QueryFilter] = []

    def _add(self, query_filter: QueryFilter) -> "InMemoryQuery":
        self._filters.append(query_filter)
        return self

    def limit_to_first(self, limit: int) -> "InMemoryQuery":
        return self._add(QueryFilter.limit_to_first(limit))

    def limit_to_last(self, limit: int) -> "InMemoryQuery":
        return self._add(QueryFilter.limit_to_last(limit))

    def start_at(self, start: Any) -> "InMemoryQuery":
        return self._add(QueryFilter.start_at(start))

    def end_at(self, end: Any) -> "InMemoryQuery":
        return self._add(QueryFilter.end_at(end))

    def equal_to(self, value: Any) -> "InMemoryQuery":
        return self._add(QueryFilter.equal_to(value))

    def get(self) -> Any:
        result = self._reference.get()
        # 범위 필터를 먼저, limit은 마지막에 적용합니다.
        ordered = sorted(self._filters, key=lambda f: f.kind in (FilterKind.LIMIT_TO_FIRST, FilterKind.LIMIT_TO_LAST))
        result = apply_query(result, self._order)
        for query_filter in ordered:
            result = apply_query(result, self._order, query_filter)
        return result

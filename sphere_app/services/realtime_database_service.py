# sphere_app/services/realtime_database_service.py
"""
Firebase Realtime Database를 타입이 있는 CRUD + 변경 관찰(observer) 연산으로 감싸는 서비스.

데이터 구조 예시

    /users
        /17865
            /name: "Oguz Yuksel"
            /gender: "M"
            /age: 27
        /29894
            /name: "Ela Twin"
            /gender: "F"
            /age: 25

쿼리 예시

    descriptor = ObserverDescriptor(
        path="users",
        order=QueryOrder.by_child("gender"),
        query_filter=QueryFilter.equal_to("F", child_key="29894"),
        mode=ObservationMode.ONCE,
    )
    service.add_observer(descriptor, lambda value, error: ...)
    # value -> OrderedDict([("29894", {...})])

주의: create / update는 "읽고 나서 쓰는" 두 번의 왕복이므로 원자적이지 않습니다.
같은 경로에 동시에 create를 호출하면 둘 다 빈 경로를 보고 쓰기를 진행할 수 있고,
나중에 도착한 쓰기가 최종 값이 됩니다. 원자적 갱신이 필요하면 transact를 사용하세요.
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

from firebase_admin import db
from marshmallow import Schema

from sphere_app.core.exceptions import (
    DatabaseServiceError,
    ObserverExistsError,
    ObserverMissingError,
    PathConflictError,
    PathMissingError,
    ReadFailedError,
    RemoveFailedError,
    WriteFailedError,
)
from sphere_app.models.observer import FilterKind, ObservationMode, ObserverDescriptor, OrderKind
from sphere_app.utils.codec import decode_value, encode_value
from sphere_app.utils.paths import compose_paths, normalize_path
from sphere_app.utils.query_utils import apply_event, apply_query

logger = logging.getLogger(__name__)

ObserverCallback = Callable[[Any, Optional[Exception]], None]


class RealtimeDatabaseService:
    """
    Realtime Database 서비스.

    :param reference: 루트 Reference. 기본값은 firebase_admin.db.reference('/')이며,
                      테스트에서는 InMemoryReference를 주입합니다.
    """

    def __init__(self, reference=None):
        self.root = reference if reference is not None else db.reference('/')
        # descriptor -> ListenerRegistration. listen 콜백은 SDK 백그라운드 스레드에서 실행되므로 락으로 보호합니다.
        self.ref_observers: Dict[ObserverDescriptor, Any] = {}
        self._lock = threading.RLock()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.teardown()
        return False

    def _ref(self, path: str):
        normalized = normalize_path(path)
        return self.root.child(normalized) if normalized else self.root

    def _read_raw(self, path: str) -> Any:
        try:
            return self._ref(path).get()
        except Exception as e:
            logger.error(f"데이터 조회 실패 (path: {path}): {e}", exc_info=True)
            raise ReadFailedError(path=path) from e

    # --- CRUD ---
    def create(self, path: str, value: Any, schema: Optional[Schema] = None) -> None:
        """경로가 비어 있을 때만 값을 씁니다. 이미 값이 있으면 PathConflictError."""
        if self._read_raw(path) is not None:
            raise PathConflictError(path=path)
        self.write(path, value, schema=schema)

    def create_many(self, paths: Iterable[str], value: Any, schema: Optional[Schema] = None) -> None:
        """모든 경로가 비어 있어야 합니다. 하나라도 값이 있으면 아무것도 쓰지 않습니다."""
        paths = list(paths)
        for path in paths:
            if self._read_raw(path) is not None:
                raise PathConflictError(path=path)
        self.write_many(paths, value, schema=schema)

    def update(self, path: str, value: Any, schema: Optional[Schema] = None) -> None:
        """경로에 값이 있을 때만 덮어씁니다. 값이 없으면 PathMissingError."""
        if self._read_raw(path) is None:
            raise PathMissingError(path=path)
        self.write(path, value, schema=schema)

    def update_many(self, paths: Iterable[str], value: Any, schema: Optional[Schema] = None) -> None:
        paths = list(paths)
        for path in paths:
            if self._read_raw(path) is None:
                raise PathMissingError(path=path)
        self.write_many(paths, value, schema=schema)

    def write(self, path: str, value: Any, schema: Optional[Schema] = None) -> None:
        """값의 존재 여부와 관계없이 씁니다."""
        encoded = encode_value(value, schema)
        try:
            self._ref(path).set(encoded)
        except Exception as e:
            logger.error(f"데이터 쓰기 실패 (path: {path}): {e}", exc_info=True)
            raise WriteFailedError(path=path) from e

    def write_many(self, paths: Iterable[str], value: Any, schema: Optional[Schema] = None) -> None:
        """
        여러 경로에 같은 값을 한 번의 다중 경로 업데이트로 씁니다.
        모두 성공하거나 모두 실패합니다.
        """
        composed = compose_paths(paths)
        if not composed:
            raise ValueError("쓸 경로가 하나 이상 필요합니다.")
        keys = [normalize_path(path) for path in composed]
        if '' in keys:
            raise ValueError("루트 경로는 다중 경로 쓰기에 포함할 수 없습니다. write('/')를 사용하세요.")
        encoded = encode_value(value, schema)
        logger.info(f"다중 경로 쓰기: {keys}")
        try:
            self.root.update({key: encoded for key in keys})
        except Exception as e:
            logger.error(f"다중 경로 쓰기 실패 (paths: {keys}): {e}", exc_info=True)
            raise WriteFailedError(path=', '.join(keys)) from e

    def remove(self, path: str) -> None:
        try:
            self._ref(path).delete()
        except Exception as e:
            logger.error(f"데이터 삭제 실패 (path: {path}): {e}", exc_info=True)
            raise RemoveFailedError(path=path) from e

    def transact(self, path: str, update_fn: Callable[[Any], Any]) -> Any:
        """
        경로의 현재 값을 update_fn에 넘기고 그 반환값을 원자적으로 씁니다.
        다른 클라이언트와 경합하면 SDK가 update_fn을 다시 호출합니다.
        """
        try:
            return self._ref(path).transaction(update_fn)
        except Exception as e:
            logger.error(f"트랜잭션 실패 (path: {path}): {e}", exc_info=True)
            raise WriteFailedError(path=path) from e

    def get_data(self, path: str = '/', schema: Optional[Schema] = None, many: bool = False) -> Any:
        """
        경로의 현재 값을 읽습니다.
        값이 없으면 None, 변환에 실패하면 DecodeFailedError를 발생시킵니다.
        """
        raw = self._read_raw(path)
        value = decode_value(raw, schema, many=many, path=path)
        logger.debug(f"get_data({path}): {value!r}")
        return value

    # --- Observers ---
    def _build_query(self, descriptor: ObserverDescriptor):
        """
        firebase_admin Query를 만듭니다.
        child_key 경계와 start_after / end_before는 서버에서 지원하지 않으므로
        포함 범위로 넓혀 요청하고, 결과를 apply_query로 다시 거릅니다.
        """
        ref = self._ref(descriptor.path)
        if not descriptor.has_query:
            return ref

        order = descriptor.order
        if order.kind is OrderKind.VALUE:
            query = ref.order_by_value()
        elif order.kind is OrderKind.CHILD:
            query = ref.order_by_child(order.child)
        else:
            # 필터만 있고 정렬 조건이 없으면 key 정렬로 요청합니다.
            query = ref.order_by_key()

        query_filter = descriptor.query_filter
        if query_filter is None:
            return query
        value = query_filter.value
        if order.kind in (OrderKind.KEY, OrderKind.NONE) and not query_filter.is_limit:
            value = str(value)

        kind = query_filter.kind
        if kind is FilterKind.EQUAL_TO:
            return query.equal_to(value)
        if kind in (FilterKind.START_AT, FilterKind.START_AFTER):
            return query.start_at(value)
        if kind in (FilterKind.END_AT, FilterKind.END_BEFORE):
            return query.end_at(value)
        if kind is FilterKind.LIMIT_TO_FIRST:
            return query.limit_to_first(value)
        return query.limit_to_last(value)

    def _deliver(self, descriptor: ObserverDescriptor, raw: Any, callback: ObserverCallback,
                 schema: Optional[Schema], many: bool) -> None:
        if descriptor.has_query:
            raw = apply_query(raw, descriptor.order, descriptor.query_filter)
        try:
            value = decode_value(raw, schema, many=many, path=descriptor.path)
        except DatabaseServiceError as e:
            logger.warning(f"옵저버 값 변환 실패 ({descriptor.key}): {e}")
            callback(None, e)
            return
        callback(value, None)

    def add_observer(self, descriptor: ObserverDescriptor, callback: ObserverCallback,
                     schema: Optional[Schema] = None, many: bool = False) -> None:
        """
        descriptor에 따라 경로를 관찰합니다.

        - ONCE: 한 번 읽고 callback을 호출합니다. 레지스트리에 등록되지 않습니다.
        - CONTINUOUS: 값이 바뀔 때마다 callback을 호출하며 레지스트리에 등록됩니다.

        callback(value, error) 형태로 호출되며, 변환 실패나 조회 실패는 error로 전달됩니다.

        :raises ObserverExistsError: 같은 descriptor가 이미 등록된 경우
        """
        with self._lock:
            if descriptor in self.ref_observers:
                raise ObserverExistsError(path=descriptor.path)

            if descriptor.mode is ObservationMode.ONCE:
                try:
                    raw = self._build_query(descriptor).get()
                except Exception as e:
                    logger.error(f"옵저버 조회 실패 ({descriptor.key}): {e}", exc_info=True)
                    callback(None, ReadFailedError(path=descriptor.path))
                    return
                self._deliver(descriptor, raw, callback, schema, many)
                return

            # listen은 경로 전체의 변경을 'put'/'patch' 이벤트로 보내므로
            # 스냅샷을 직접 유지하면서 매번 쿼리를 적용합니다.
            snapshot = {'data': None}

            def on_event(event):
                snapshot['data'] = apply_event(snapshot['data'], event.event_type, event.path, event.data)
                self._deliver(descriptor, snapshot['data'], callback, schema, many)

            registration = self._ref(descriptor.path).listen(on_event)
            self.ref_observers[descriptor] = registration
            logger.info(f"옵저버 등록: {descriptor.key}")

    def remove_observer(self, descriptor: ObserverDescriptor) -> None:
        """등록된 옵저버 하나를 해제합니다."""
        with self._lock:
            registration = self.ref_observers.pop(descriptor, None)
            if registration is None:
                raise ObserverMissingError(path=descriptor.path)
        self._close(registration)
        logger.debug(f"옵저버 해제: {descriptor.key}")

    def remove_all_observers(self, path: str = '/') -> None:
        """
        경로가 정확히 일치하는 옵저버를 모두 해제합니다.
        하위 경로에 등록된 옵저버는 해제되지 않습니다.
        """
        normalized = normalize_path(path)
        with self._lock:
            removed = {d: r for d, r in self.ref_observers.items() if d.path == normalized}
            if not removed:
                raise ObserverMissingError(path=path)
            for descriptor in removed:
                del self.ref_observers[descriptor]
        self._cancel_path(normalized, list(removed.values()))
        logger.debug(f"옵저버 {len(removed)}개 해제: {[d.key for d in removed]}")

    def _cancel_path(self, path: str, registrations: List[Any]) -> None:
        """한 경로에 걸린 구독을 한 번에 해제합니다."""
        for registration in registrations:
            self._close(registration)

    def teardown(self) -> None:
        """
        소유 객체가 정리될 때 반드시 호출해야 합니다.
        등록된 모든 경로에 대해 한 번씩 일괄 해제합니다.
        """
        with self._lock:
            by_path: Dict[str, List[Any]] = {}
            for descriptor, registration in self.ref_observers.items():
                by_path.setdefault(descriptor.path, []).append(registration)
            self.ref_observers.clear()
        for path, registrations in by_path.items():
            self._cancel_path(path, registrations)
        if by_path:
            logger.info(f"옵저버 정리 완료: {list(by_path)}")

    @staticmethod
    def _close(registration) -> None:
        """
        ListenerRegistration.close()는 listener 스레드를 join 합니다.
        옵저버 콜백 안(= listener 스레드)에서 해제하면 자기 자신을 join 하게 되므로
        별도 스레드에서 닫습니다.
        """
        if getattr(registration, '_thread', None) is threading.current_thread():
            threading.Thread(target=registration.close, daemon=True).start()
            return
        registration.close()

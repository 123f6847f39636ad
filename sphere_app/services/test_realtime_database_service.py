"""
Realtime Database 서비스 테스트 (메모리 기반 Reference 사용)

사용법: python -m pytest sphere_app/services/test_realtime_database_service.py -v
"""

import threading
from unittest import mock

import pytest
from marshmallow import Schema, fields

from sphere_app.core.exceptions import (
    DecodeFailedError,
    ObserverExistsError,
    ObserverMissingError,
    PathConflictError,
    PathMissingError,
    ReadFailedError,
    RemoveFailedError,
    WriteFailedError,
)
from sphere_app.models.observer import ObservationMode, ObserverDescriptor, QueryFilter, QueryOrder
from sphere_app.services.in_memory_database import InMemoryReference
from sphere_app.services.realtime_database_service import RealtimeDatabaseService


class ProfileSchema(Schema):
    name = fields.Str(required=True)
    age = fields.Int(required=True)


@pytest.fixture
def root():
    return InMemoryReference({
        "users": {
            "17865": {"name": "Oguz Yuksel", "gender": "M", "age": 27},
            "29894": {"name": "Ela Twin", "gender": "F", "age": 25},
        }
    })


@pytest.fixture
def service(root):
    return RealtimeDatabaseService(root)


class Recorder:
    """옵저버 콜백으로 받은 (value, error)를 기록합니다."""

    def __init__(self):
        self.calls = []

    def __call__(self, value, error):
        self.calls.append((value, error))

    @property
    def values(self):
        return [value for value, error in self.calls if error is None]

    @property
    def errors(self):
        return [error for value, error in self.calls if error is not None]


# --- create / update / write / remove ---

def test_create_on_empty_path(service):
    service.create("posts/92", {"title": "First Post"})
    assert service.get_data("posts/92") == {"title": "First Post"}


def test_create_on_existing_path_conflicts(service):
    with pytest.raises(PathConflictError):
        service.create("users/17865/name", "Clark Kent")
    assert service.get_data("users/17865/name") == "Oguz Yuksel"


def test_update_overwrites_existing_value(service):
    service.update("users/29894/age", 26)
    assert service.get_data("users/29894/age") == 26


def test_update_on_empty_path_writes_nothing(service):
    with pytest.raises(PathMissingError):
        service.update("users/99999", {"name": "Nobody"})
    assert service.get_data("users/99999") is None


def test_write_is_unconditional(service):
    service.write("users/17865/age", 28)
    service.write("users/30000/name", "Nancy Brown")
    assert service.get_data("users/17865/age") == 28
    assert service.get_data("users/30000/name") == "Nancy Brown"


def test_create_many_is_all_or_nothing(service):
    with pytest.raises(PathConflictError):
        service.create_many(["flags/a", "users/17865", "flags/b"], True)
    assert service.get_data("flags") is None


def test_update_many_is_all_or_nothing(service):
    with pytest.raises(PathMissingError):
        service.update_many(["users/17865/age", "users/00000/age"], 30)
    assert service.get_data("users/17865/age") == 27


def test_update_many_writes_every_path(service):
    service.update_many(["users/17865/gender", "users/29894/gender"], "X")
    assert service.get_data("users/17865/gender") == "X"
    assert service.get_data("users/29894/gender") == "X"


def test_write_many_composes_overlapping_paths(service, root):
    with mock.patch.object(root, 'update', wraps=root.update) as update:
        service.write_many(["rooms/1", "rooms/1/owner", "rooms/2", "rooms/1"], {"owner": "17865"})
    update.assert_called_once_with({"rooms/1": {"owner": "17865"}, "rooms/2": {"owner": "17865"}})
    assert service.get_data("rooms") == {"1": {"owner": "17865"}, "2": {"owner": "17865"}}


def test_write_many_mixed_slashes_do_not_nest(service, root):
    with mock.patch.object(root, 'update', wraps=root.update) as update:
        service.write_many(["/rooms/1", "rooms/1/owner"], {"owner": "17865"})
    update.assert_called_once_with({"rooms/1": {"owner": "17865"}})
    assert service.get_data("rooms/1") == {"owner": "17865"}


def test_write_many_rejects_root(service):
    with pytest.raises(ValueError):
        service.write_many(["/", "a"], 1)


def test_remove(service):
    service.remove("users/17865")
    assert service.get_data("users/17865") is None
    assert service.get_data("users/29894/name") == "Ela Twin"


def test_backend_failures_are_typed(service, root):
    root.failures.update({'get', 'set', 'update', 'delete'})
    with pytest.raises(ReadFailedError):
        service.get_data("users")
    with pytest.raises(WriteFailedError):
        service.write("users/1", 1)
    with pytest.raises(WriteFailedError):
        service.write_many(["a", "b"], 1)
    with pytest.raises(RemoveFailedError):
        service.remove("users")


def test_concurrent_create_race_last_write_wins(root):
    """
    create는 읽기와 쓰기가 별도의 왕복이라 원자적이지 않음 (알려진 제약).
    두 호출이 모두 빈 경로를 보고 쓰기에 성공하며, 나중에 쓴 값이 남습니다.
    """
    first, second = RealtimeDatabaseService(root), RealtimeDatabaseService(root)
    original_write = first.write

    def interleaved_write(path, value, schema=None):
        second.create(path, "second")
        original_write(path, value, schema=schema)

    first.write = interleaved_write
    first.create("race", "first")
    assert root.child("race").get() == "first"


def test_transact(service):
    service.write("counters/likes", 1)
    result = service.transact("counters/likes", lambda current: (current or 0) + 1)
    assert result == 2
    assert service.get_data("counters/likes") == 2


# --- get_data ---

def test_get_data_absent_is_none(service):
    assert service.get_data("nothing/here") is None


def test_get_data_with_schema(service):
    profile = service.get_data("users/17865", schema=ProfileSchema(partial=False, unknown='exclude'))
    assert profile == {"name": "Oguz Yuksel", "age": 27}

    profiles = service.get_data("users", schema=ProfileSchema(unknown='exclude'), many=True)
    assert set(profiles) == {"17865", "29894"}


def test_get_data_decode_failure(service):
    with pytest.raises(DecodeFailedError):
        service.get_data("users/17865/name", schema=ProfileSchema())


# --- observers ---

def test_continuous_observer_receives_changes(service):
    recorder = Recorder()
    descriptor = ObserverDescriptor(path="users/29894/age")
    service.add_observer(descriptor, recorder)
    service.write("users/29894/age", 26)

    assert recorder.values == [25, 26]
    assert descriptor in service.ref_observers


def test_continuous_query_observer(service):
    recorder = Recorder()
    descriptor = ObserverDescriptor(
        path="/users/",
        order=QueryOrder.by_child("gender"),
        query_filter=QueryFilter.equal_to("F"),
    )
    service.add_observer(descriptor, recorder)
    service.create("users/29874", {"name": "Nancy Brown", "gender": "F", "age": 52})

    assert [list(value) for value in recorder.values] == [["29894"], ["29874", "29894"]]


def test_continuous_query_observer_on_array_node():
    service = RealtimeDatabaseService(InMemoryReference({"scores": [None, {"age": 30}, {"age": 20}]}))
    recorder = Recorder()
    descriptor = ObserverDescriptor(
        path="scores",
        order=QueryOrder.by_child("age"),
        query_filter=QueryFilter.limit_to_first(1),
    )
    service.add_observer(descriptor, recorder)
    service.write("scores/3", {"age": 10})

    assert recorder.values == [{"2": {"age": 20}}, {"3": {"age": 10}}]


def test_once_observer_is_not_registered(service):
    recorder = Recorder()
    descriptor = ObserverDescriptor(
        path="users",
        order=QueryOrder.by_child("age"),
        query_filter=QueryFilter.limit_to_first(1),
        mode=ObservationMode.ONCE,
    )
    service.add_observer(descriptor, recorder)
    service.write("users/00001", {"name": "Baby", "age": 1})

    assert len(recorder.calls) == 1
    assert list(recorder.values[0]) == ["29894"]
    assert descriptor not in service.ref_observers


def test_once_observer_refines_child_key_on_key_order(service):
    recorder = Recorder()
    descriptor = ObserverDescriptor(
        path="users",
        order=QueryOrder.by_key(),
        query_filter=QueryFilter.start_after("17865"),
        mode=ObservationMode.ONCE,
    )
    service.add_observer(descriptor, recorder)
    assert list(recorder.values[0]) == ["29894"]


def test_observer_decode_failure_goes_to_callback(service):
    recorder = Recorder()
    service.add_observer(ObserverDescriptor(path="users/17865/name"), recorder, schema=ProfileSchema())

    assert recorder.values == []
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], DecodeFailedError)


def test_observer_read_failure_goes_to_callback(service, root):
    recorder = Recorder()
    root.failures.add('get')
    service.add_observer(ObserverDescriptor(path="users", mode=ObservationMode.ONCE), recorder)
    assert isinstance(recorder.errors[0], ReadFailedError)


def test_duplicate_observer_fails_without_touching_registration(service):
    descriptor = ObserverDescriptor(path="users")
    service.add_observer(descriptor, Recorder())
    registration = service.ref_observers[descriptor]

    with pytest.raises(ObserverExistsError):
        service.add_observer(ObserverDescriptor(path="/users"), Recorder())

    assert service.ref_observers == {descriptor: registration}
    assert not registration.closed


def test_remove_observer(service, root):
    kept = ObserverDescriptor(path="users", order=QueryOrder.by_key())
    removed = ObserverDescriptor(path="users")
    service.add_observer(kept, Recorder())
    service.add_observer(removed, Recorder())
    kept_registration = service.ref_observers[kept]
    removed_registration = service.ref_observers[removed]

    service.remove_observer(removed)

    assert list(service.ref_observers) == [kept]
    assert removed_registration.closed
    assert not kept_registration.closed
    assert root.listeners == [kept_registration]


def test_remove_missing_observer(service):
    with pytest.raises(ObserverMissingError):
        service.remove_observer(ObserverDescriptor(path="users"))


def test_remove_all_observers_only_matches_exact_path(service):
    same_a = ObserverDescriptor(path="users")
    same_b = ObserverDescriptor(path="users", order=QueryOrder.by_child("age"))
    child = ObserverDescriptor(path="users/17865")
    service.add_observer(same_a, Recorder())
    service.add_observer(same_b, Recorder())
    service.add_observer(child, Recorder())
    child_registration = service.ref_observers[child]

    service.remove_all_observers("/users")

    assert list(service.ref_observers) == [child]
    assert not child_registration.closed

    with pytest.raises(ObserverMissingError):
        service.remove_all_observers("users")


def test_teardown_cancels_each_path_once(service, root):
    descriptors = [
        ObserverDescriptor(path="users"),
        ObserverDescriptor(path="users", order=QueryOrder.by_key()),
        ObserverDescriptor(path="users/17865"),
        ObserverDescriptor(path="posts"),
    ]
    for descriptor in descriptors:
        service.add_observer(descriptor, Recorder())

    with mock.patch.object(service, '_cancel_path', wraps=service._cancel_path) as cancel:
        service.teardown()

    cancelled_paths = [call.args[0] for call in cancel.call_args_list]
    assert sorted(cancelled_paths) == ["posts", "users", "users/17865"]
    assert service.ref_observers == {}
    assert root.listeners == []


def test_context_manager_tears_down(root):
    with RealtimeDatabaseService(root) as service:
        service.add_observer(ObserverDescriptor(path="users"), Recorder())
    assert service.ref_observers == {}
    assert root.listeners == []


class ThreadBoundRegistration:
    """listener 스레드를 join 하는 firebase_admin ListenerRegistration 흉내"""

    def __init__(self, thread):
        self._thread = thread
        self.closed_on = None
        self.closed = threading.Event()

    def close(self):
        if threading.current_thread() is self._thread:
            raise RuntimeError("cannot join current thread")
        self.closed_on = threading.current_thread()
        self.closed.set()


def test_remove_observer_from_its_own_callback_thread(service):
    descriptor = ObserverDescriptor(path="users")
    registration = ThreadBoundRegistration(threading.current_thread())
    service.ref_observers[descriptor] = registration

    service.remove_observer(descriptor)

    assert registration.closed.wait(timeout=1)
    assert registration.closed_on is not threading.current_thread()
    assert descriptor not in service.ref_observers


def test_remove_observer_from_another_thread_closes_inline(service):
    descriptor = ObserverDescriptor(path="users")
    registration = ThreadBoundRegistration(threading.Thread(target=lambda: None))
    service.ref_observers[descriptor] = registration

    service.remove_observer(descriptor)

    assert registration.closed.is_set()
    assert registration.closed_on is threading.current_thread()

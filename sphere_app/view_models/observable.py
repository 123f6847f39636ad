# sphere_app/view_models/observable.py
from typing import Any, Callable, List, Optional

FieldCallback = Callable[[str, Any], None]
Dispatcher = Callable[[Callable[[], None]], None]


def _call_now(fn: Callable[[], None]) -> None:
    fn()


class Published:
    """
    값이 바뀌면 구독자에게 (필드 이름, 새 값)을 알리는 속성.

        class VM(ObservableObject):
            is_logged_in = Published(False)
    """

    def __init__(self, default: Any = None):
        self.default = default

    def __set_name__(self, owner, name):
        self.name = name
        self.storage_name = f"_published_{name}"

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return obj.__dict__.get(self.storage_name, self.default)

    def __set__(self, obj, value):
        old = self.__get__(obj)
        obj.__dict__[self.storage_name] = value
        if old != value:
            obj._notify(self.name, value)


class ObservableObject:
    """
    Published 속성의 변경을 구독할 수 있는 객체.
    dispatcher를 넘기면 알림을 호스트의 스케줄링 컨텍스트(예: UI 스레드)에서 실행할 수 있습니다.
    """

    def __init__(self, dispatcher: Optional[Dispatcher] = None):
        self._field_observers: List[FieldCallback] = []
        self._dispatcher = dispatcher or _call_now

    def subscribe(self, callback: FieldCallback) -> Callable[[], None]:
        self._field_observers.append(callback)

        def unsubscribe():
            if callback in self._field_observers:
                self._field_observers.remove(callback)
        return unsubscribe

    def _notify(self, name: str, value: Any) -> None:
        for callback in list(self._field_observers):
            self._dispatcher(lambda cb=callback: cb(name, value))

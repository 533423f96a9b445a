import collections
from typing import Any, Callable, Iterable

EventListener = Callable[..., Any]


class EventEmitter:
    """
    Synchronous listener registry.

    Listeners run in registration order on the caller's stack,
    and their exceptions propagate to whoever emitted the event.
    """

    listeners: dict[str, list[EventListener]]

    def __init__(self, names: Iterable[str] | None = None):
        self.listeners = collections.defaultdict(list)
        self._names = frozenset(names) if names is not None else None

    def _check_name(self, name: str) -> None:
        if self._names is not None and name not in self._names:
            raise ValueError(f"Unknown event {name!r}")

    def add_listener(
        self,
        name: str,
        fn: EventListener,
        prepend: bool = False,
    ) -> None:
        self._check_name(name)
        listeners = self.listeners[name]

        if prepend:
            listeners.insert(0, fn)
        else:
            listeners.append(fn)

    def remove_listener(self, name: str, fn: EventListener) -> bool:
        """Remove the first registration of fn. Return whether it was found."""
        self._check_name(name)
        listeners = self.listeners.get(name)
        if not listeners:
            return False

        try:
            listeners.remove(fn)
        except ValueError:
            return False

        return True

    def listener_count(self, name: str) -> int:
        return len(self.listeners.get(name, ()))

    def emit(
        self,
        /,
        name: str,
        args: tuple[Any, ...],
        kwargs: dict[str, Any] | None = None,
    ) -> None:
        self._check_name(name)
        listeners = self.listeners.get(name)
        if not listeners:
            return
        if kwargs is None:
            kwargs = {}
        # a listener may unsubscribe itself while running
        for fn in tuple(listeners):
            fn(*args, **kwargs)

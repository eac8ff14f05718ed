"""Watch events, event filters and an event handler that maps objects to requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol


@dataclass(frozen=True)
class Request:
    """A request to reconcile the object with this namespace and name."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass
class CreateEvent:
    """An object was created."""

    object: Any


@dataclass
class UpdateEvent:
    """An object was changed from ``object_old`` to ``object_new``."""

    object_old: Any
    object_new: Any


@dataclass
class DeleteEvent:
    """An object was deleted."""

    object: Any
    delete_state_unknown: bool = False


@dataclass
class GenericEvent:
    """An event that did not come from the API server."""

    object: Any


@dataclass
class Predicate:
    """Filters events; a missing function lets every event of that type through."""

    create_func: Callable[[CreateEvent], bool] | None = None
    update_func: Callable[[UpdateEvent], bool] | None = None
    delete_func: Callable[[DeleteEvent], bool] | None = None
    generic_func: Callable[[GenericEvent], bool] | None = None

    def create(self, event: CreateEvent) -> bool:
        return self.create_func is None or self.create_func(event)

    def update(self, event: UpdateEvent) -> bool:
        return self.update_func is None or self.update_func(event)

    def delete(self, event: DeleteEvent) -> bool:
        return self.delete_func is None or self.delete_func(event)

    def generic(self, event: GenericEvent) -> bool:
        return self.generic_func is None or self.generic_func(event)


def _predicate_from_filter(accept: Callable[[Any], bool]) -> Predicate:
    return Predicate(
        create_func=lambda e: accept(e.object),
        update_func=lambda e: accept(e.object_new),
        delete_func=lambda e: accept(e.object),
        generic_func=lambda e: accept(e.object),
    )


NEVER_ENQUEUE = _predicate_from_filter(lambda obj: False)


class Queue(Protocol):
    def add(self, item: Request) -> None: ...


class EnqueueRequestsFromMapFunc:
    """Enqueues the requests that ``to_requests`` maps an event's object to.

    Unlike the usual handler, an update only maps the new object, never the old.
    """

    def __init__(self, to_requests: Callable[[Any], Iterable[Request]]) -> None:
        self.to_requests = to_requests

    def _map_and_enqueue(self, queue: Queue, obj: Any) -> None:
        for request in self.to_requests(obj):
            queue.add(request)

    def create(self, event: CreateEvent, queue: Queue) -> None:
        self._map_and_enqueue(queue, event.object)

    def update(self, event: UpdateEvent, queue: Queue) -> None:
        self._map_and_enqueue(queue, event.object_new)

    def delete(self, event: DeleteEvent, queue: Queue) -> None:
        self._map_and_enqueue(queue, event.object)

    def generic(self, event: GenericEvent, queue: Queue) -> None:
        self._map_and_enqueue(queue, event.object)
"""
Change-event dispatch

Handlers run after the originating batch has committed. A failing handler
is logged and never reaches the writer.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from hr_access.store.base import ChangeEvent

logger = logging.getLogger(__name__)

TriggerHandler = Callable[["DocumentStore", ChangeEvent], None]  # noqa: F821

WRITE_KINDS = ("create", "update", "delete")


class TriggerDispatcher:
    """
    Routes committed change events to registered handlers

    ``mode="inline"`` runs handlers in the writer's thread once the write has
    returned from the store; ``mode="background"`` submits them to a thread pool.
    """

    def __init__(self, mode: str = "inline", max_workers: int = 4):
        if mode not in ("inline", "background"):
            raise ValueError(f"Unknown trigger mode: {mode}")
        self.mode = mode
        self._handlers: Dict[str, List[Tuple[Tuple[str, ...], str, TriggerHandler]]] = {}
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []
        # Pool threads submit cascaded events too
        self._pending_lock = threading.Lock()
        if mode == "background":
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="trigger")

    def register(self, collection: str, handler: TriggerHandler, kinds: Sequence[str] = WRITE_KINDS,
                 name: Optional[str] = None) -> None:
        self._handlers.setdefault(collection, []).append(
            (tuple(kinds), name or handler.__name__, handler)
        )

    def on_write(self, collection: str, name: Optional[str] = None):
        """Decorator: handler runs for creates, updates and deletes"""
        def decorator(handler: TriggerHandler) -> TriggerHandler:
            self.register(collection, handler, WRITE_KINDS, name)
            return handler
        return decorator

    def on_update(self, collection: str, name: Optional[str] = None):
        """Decorator: handler runs for updates only"""
        def decorator(handler: TriggerHandler) -> TriggerHandler:
            self.register(collection, handler, ("update",), name)
            return handler
        return decorator

    def handlers_for(self, event: ChangeEvent) -> List[Tuple[str, TriggerHandler]]:
        return [
            (name, handler)
            for kinds, name, handler in self._handlers.get(event.collection, [])
            if event.kind in kinds
        ]

    def dispatch(self, store, events: Sequence[ChangeEvent]) -> None:
        for event in events:
            for name, handler in self.handlers_for(event):
                if self._executor is not None:
                    future = self._executor.submit(self._run, name, handler, store, event)
                    with self._pending_lock:
                        self._pending = [f for f in self._pending if not f.done()]
                        self._pending.append(future)
                else:
                    self._run(name, handler, store, event)

    @staticmethod
    def _run(name: str, handler: TriggerHandler, store, event: ChangeEvent) -> None:
        try:
            handler(store, event)
        except Exception:
            logger.exception(
                "Trigger %s failed for %s/%s (%s)",
                name, event.collection, event.doc_id, event.kind,
            )

    def wait(self) -> None:
        """Block until every submitted background handler has finished"""
        while True:
            with self._pending_lock:
                pending, self._pending = self._pending, []
            if not pending:
                return
            for future in pending:
                future.result()

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

"""
Change Feed
In-process publish/subscribe hub for row-level change events
"""
import logging
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """One committed change to a row"""
    kind: str
    table: str
    row: Dict[str, Any]


@dataclass(eq=False)
class Subscription:
    """Handle returned by ChangeFeed.subscribe"""
    table: str
    filters: Dict[str, str]
    callback: Callable[[ChangeEvent], None]
    kinds: frozenset = frozenset({INSERT, UPDATE, DELETE})
    _feed: "ChangeFeed" = field(default=None, repr=False)
    active: bool = True

    def matches(self, event: ChangeEvent) -> bool:
        if not self.active or event.table != self.table or event.kind not in self.kinds:
            return False
        return all(str(event.row.get(column)) == value for column, value in self.filters.items())

    def unsubscribe(self):
        """Stop receiving events; safe to call more than once"""
        if self._feed is not None:
            self._feed._remove(self)
        self.active = False


class ChangeFeed:
    """
    Delivers change events to subscribers of a table

    Filters are column equality predicates. Events are delivered
    synchronously, in publish order, on the publishing thread.
    """

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        table: str,
        callback: Callable[[ChangeEvent], None],
        kinds=(INSERT, UPDATE, DELETE),
        **filters,
    ) -> Subscription:
        subscription = Subscription(
            table=table,
            filters={column: str(value) for column, value in filters.items()},
            callback=callback,
            kinds=frozenset(kinds),
            _feed=self,
        )
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug("Subscribed to %s %s", table, subscription.filters)
        return subscription

    def _remove(self, subscription: Subscription):
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, event: ChangeEvent):
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(event)]

        for subscription in targets:
            try:
                subscription.callback(event)
            except Exception:
                logger.exception("Change feed subscriber failed for %s %s", event.kind, event.table)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


@lru_cache
def get_change_feed() -> ChangeFeed:
    """Process-wide change feed used by the HTTP layer"""
    return ChangeFeed()

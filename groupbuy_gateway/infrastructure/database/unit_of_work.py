"""Transaction boundary for engine operations

One call to ``UnitOfWork.run`` is one database transaction. The operation is
replayed from scratch when a versioned row was changed underneath it, and
the notifications it emitted are delivered only once the commit succeeds.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from groupbuy_gateway.config import settings
from groupbuy_gateway.domain.exceptions import DomainException, UnavailableError
from groupbuy_gateway.infrastructure.notifications.notifier import Notifier
from groupbuy_gateway.infrastructure.observability.metrics import transaction_retry_counter

logger = logging.getLogger(__name__)

T = TypeVar("T")

BROADCAST = None


@dataclass
class PendingEvent:
    channel_id: Optional[str]  # None means broadcast
    event: str
    payload: Dict[str, Any]


class UnitOfWork:
    """Runs an operation atomically with optimistic-concurrency retries"""

    def __init__(self, db: Session, notifier: Notifier, max_retries: int | None = None):
        self.db = db
        self.notifier = notifier
        self.max_retries = max_retries or settings.max_transaction_retries
        self._events: List[PendingEvent] = []

    def notify(self, channel_id, event: str, payload: Dict[str, Any]) -> None:
        """Queue a notification for a group channel, sent after commit"""
        self._events.append(PendingEvent(str(channel_id), event, payload))

    def broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        """Queue a notification for every listener, sent after commit"""
        self._events.append(PendingEvent(BROADCAST, event, payload))

    def run(
        self,
        operation: str,
        work: Callable[[], T],
        on_integrity_error: Callable[[], DomainException] | None = None,
    ) -> T:
        """
        Execute ``work`` inside a transaction and commit it.

        Retry strategy:
        - StaleDataError (a versioned row moved on): rollback, replay on fresh
          state, up to max_retries attempts
        - IntegrityError: mapped through on_integrity_error when given
        - Domain errors propagate unchanged after rollback
        - Any other SQLAlchemy error becomes UnavailableError
        """
        attempt = 0
        while True:
            attempt += 1
            self._events.clear()
            try:
                result = work()
                self.db.commit()
            except StaleDataError as e:
                self.db.rollback()
                transaction_retry_counter.labels(operation=operation).inc()
                if attempt >= self.max_retries:
                    logger.error(
                        "Concurrent modification, giving up",
                        extra={"operation": operation, "attempts": attempt},
                    )
                    raise UnavailableError(f"{operation} kept conflicting with concurrent updates") from e
                logger.info(
                    "Concurrent modification, retrying",
                    extra={"operation": operation, "attempt": attempt},
                )
                continue
            except IntegrityError as e:
                self.db.rollback()
                if on_integrity_error is not None:
                    raise on_integrity_error() from e
                raise UnavailableError(f"{operation} violated a storage constraint") from e
            except DomainException:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Storage error during {operation}: {e}", extra={"operation": operation})
                raise UnavailableError(f"{operation} failed: storage unavailable") from e
            except Exception:
                self.db.rollback()
                raise

            self._flush_events()
            return result

    def _flush_events(self) -> None:
        events, self._events = self._events, []
        for pending in events:
            if pending.channel_id is BROADCAST:
                self.notifier.broadcast(pending.event, pending.payload)
            else:
                self.notifier.notify_channel(pending.channel_id, pending.event, pending.payload)

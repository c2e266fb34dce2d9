"""Plumbing shared by the domain services: ledger calls, atomic boundaries, event publication."""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from bloodchain.core.clock import Clock, normalize_timestamp, utcnow
from bloodchain.core.exceptions import BloodChainError, ConcurrentUpdate, LedgerFailure
from bloodchain.services.events import EventBus
from bloodchain.services.ledger import Ledger
from bloodchain.services.locks import LockRegistry

logger = logging.getLogger(__name__)


class LedgerBackedService:

    def __init__(self, ledger: Ledger, events: EventBus, locks: LockRegistry, clock: Clock = utcnow):
        self.ledger = ledger
        self.events = events
        self.locks = locks
        self.clock = clock

    def now(self) -> datetime:
        return normalize_timestamp(self.clock())

    def _ledger(self, operation: str, *args, **kwargs):
        """Call the ledger, turning any collaborator error into LedgerFailure."""
        try:
            return getattr(self.ledger, operation)(*args, **kwargs)
        except BloodChainError:
            raise
        except Exception as e:
            logger.error(f"Ledger {operation} failed: {e}")
            raise LedgerFailure(operation, str(e)) from e

    def _commit(self, operation: str, *args, entity: Optional[str] = None, conflict: Optional[BloodChainError] = None):
        """
        Ledger commit where losing a race on ``entity`` is reported as ``conflict``.

        A ConcurrentUpdate on any other entity propagates as is.
        """
        try:
            return self._ledger(operation, *args)
        except ConcurrentUpdate as e:
            if conflict is None or e.entity != entity:
                raise
            logger.warning(f"Ledger {operation} lost a concurrent update: {e.message}")
            raise conflict from e

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        """
        Run the body inside one ledger transaction.

        Errors raised by the body propagate unchanged after the ledger rolls
        back; errors raised while opening or committing the transaction are
        reported as LedgerFailure, except a ConcurrentUpdate from a refused
        commit, which propagates as is.
        """
        transaction = self.ledger.transaction()
        try:
            transaction.__enter__()
        except Exception as e:
            logger.error(f"Ledger transaction for {operation} could not start: {e}")
            raise LedgerFailure(operation, str(e)) from e
        try:
            yield
        except BaseException as body_error:
            try:
                transaction.__exit__(type(body_error), body_error, body_error.__traceback__)
            except BaseException as rollback_error:
                if rollback_error is not body_error:
                    logger.error(f"Ledger rollback for {operation} failed: {rollback_error}")
            raise
        try:
            transaction.__exit__(None, None, None)
        except BloodChainError:
            raise
        except Exception as e:
            logger.error(f"Ledger commit for {operation} failed: {e}")
            raise LedgerFailure(operation, str(e)) from e

    def _publish(self, events) -> None:
        self.events.publish(events)

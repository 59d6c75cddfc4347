"""Registry holding the single active transaction."""

import logging
import threading

from webauth.auth.transaction import BaseTransaction

logger = logging.getLogger(__name__)


class TransactionRegistry:
    """Holds at most one active transaction and routes redirects to it.

    ``store`` (login start) and ``resume`` (redirect delivery) may be called from
    different threads, so the slot is guarded by a lock. The lock is never held
    while a transaction runs its callback or awaits the code exchange.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: BaseTransaction | None = None

    @property
    def current(self) -> BaseTransaction | None:
        with self._lock:
            return self._current

    def store(self, transaction: BaseTransaction) -> None:
        """Make ``transaction`` the active one.

        A previously active transaction is dropped without any callback; callers
        that need it reported must cancel it first.
        """
        with self._lock:
            previous, self._current = self._current, transaction
        if previous is not None and previous is not transaction:
            previous.bind(None)
            if previous.is_pending:
                logger.warning("Replacing a pending transaction without cancelling it")
        transaction.bind(self.discard)

    def discard(self, transaction: BaseTransaction) -> None:
        """Remove ``transaction`` if it is still the active one."""
        with self._lock:
            if self._current is transaction:
                self._current = None

    def clear(self) -> None:
        """Remove the active transaction without firing any callback."""
        with self._lock:
            previous, self._current = self._current, None
        if previous is not None:
            previous.bind(None)

    async def resume(self, url: str) -> bool:
        """Forward a redirect URL to the active transaction.

        Returns:
            True if the active transaction consumed the URL.
        """
        transaction = self.current
        if transaction is None:
            logger.debug("No active transaction for redirect")
            return False
        consumed = await transaction.resume(url)
        if consumed:
            self.discard(transaction)
        return consumed

    def cancel(self) -> bool:
        """Cancel the active transaction.

        Returns:
            True if there was a transaction to cancel.
        """
        transaction = self.current
        if transaction is None:
            return False
        transaction.cancel()
        self.discard(transaction)
        return True

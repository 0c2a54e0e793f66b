"""Async IMAP mailbox session wrapping stdlib imaplib with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import imaplib
from collections.abc import AsyncIterator
from types import TracebackType

import structlog

from .config import ImapConfig
from .models import MessageRange

logger = structlog.get_logger()

FETCH_ITEMS = "(RFC822)"
DELETED_FLAG = "(\\Deleted)"

_FETCH_DONE = object()


class MailboxError(Exception):
    """Any IMAP transport or protocol failure."""


class MailboxSession:
    """One authenticated IMAP session with a selected mailbox.

    Use as an async context manager: entering connects, logs in and
    selects the configured mailbox; leaving always closes the mailbox
    and logs out, also when the body raised.  All blocking ``imaplib``
    calls run in a worker thread.
    """

    def __init__(self, config: ImapConfig) -> None:
        self._config = config
        self._conn: imaplib.IMAP4_SSL | None = None
        self._message_count: int = 0
        self._selected = False

    @property
    def message_count(self) -> int:
        """Number of messages reported by SELECT when the session opened."""
        return self._message_count

    async def __aenter__(self) -> MailboxSession:
        try:
            await self.connect()
        except BaseException:
            await self.disconnect()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> int:
        """Connect over TLS, login, select the mailbox; return its message count."""
        self._message_count = await asyncio.to_thread(self._connect_sync)
        logger.info(
            "imap_connected",
            host=self._config.host,
            mailbox=self._config.mailbox,
            messages=self._message_count,
        )
        return self._message_count

    def _connect_sync(self) -> int:
        host, port = self._config.host, self._config.port
        try:
            self._conn = imaplib.IMAP4_SSL(host, port)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxError(f"cannot connect to {host}:{port}: {exc}") from exc

        try:
            self._conn.login(self._config.username, self._config.password.get_secret_value())
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxError(f"login failed for {self._config.username}: {exc}") from exc

        try:
            status, data = self._conn.select(self._config.mailbox)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxError(f"cannot select {self._config.mailbox}: {exc}") from exc
        if status != "OK":
            raise MailboxError(f"cannot select {self._config.mailbox}: {_describe(data)}")

        self._selected = True
        try:
            return int(data[0])
        except (TypeError, ValueError, IndexError) as exc:
            raise MailboxError(f"unexpected SELECT response: {_describe(data)}") from exc

    async def disconnect(self) -> None:
        """Close mailbox and logout.  Safe to call more than once."""
        if self._conn is not None:
            await asyncio.to_thread(self._disconnect_sync)
            self._conn = None
            logger.info("imap_disconnected")

    def _disconnect_sync(self) -> None:
        assert self._conn is not None
        if self._selected:
            try:
                self._conn.close()
            except (imaplib.IMAP4.error, OSError) as exc:
                logger.debug("imap_close_failed", error=str(exc))
            self._selected = False
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError) as exc:
            logger.debug("imap_logout_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Message retrieval
    # ------------------------------------------------------------------

    async def fetch(self, message_range: MessageRange, count: int) -> AsyncIterator[bytes | None]:
        """Yield the raw RFC 822 bytes of every message in *message_range*.

        The blocking FETCH runs in a background task that feeds a queue
        bounded by *count*; items are yielded in the order the server
        delivered them.  ``None`` stands for a message whose body the
        server did not return.  A transport failure is raised here as
        :class:`MailboxError`.
        """
        queue: asyncio.Queue[object] = asyncio.Queue(maxsize=count + 1)
        producer = asyncio.create_task(self._produce(message_range, queue))
        try:
            while True:
                item = await queue.get()
                if item is _FETCH_DONE:
                    break
                if isinstance(item, Exception):
                    raise item
                yield item  # type: ignore[misc]
        finally:
            if not producer.done():
                producer.cancel()

    async def _produce(self, message_range: MessageRange, queue: asyncio.Queue[object]) -> None:
        try:
            bodies = await asyncio.to_thread(self._fetch_sync, message_range)
        except Exception as exc:
            # Handed to the consumer, which re-raises it
            await queue.put(exc)
            return
        for body in bodies:
            await queue.put(body)
        await queue.put(_FETCH_DONE)

    def _fetch_sync(self, message_range: MessageRange) -> list[bytes | None]:
        assert self._conn is not None, "Not connected"
        try:
            status, data = self._conn.fetch(str(message_range), FETCH_ITEMS)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxError(f"fetch {message_range} failed: {exc}") from exc
        if status != "OK":
            raise MailboxError(f"fetch {message_range} failed: {_describe(data)}")

        bodies: list[bytes | None] = []
        for item in data:
            if isinstance(item, tuple):
                bodies.append(item[1])
            elif isinstance(item, bytes) and item[:1].isdigit() and b"RFC822" in item.upper():
                # FETCH response for a message whose body came back as NIL
                bodies.append(None)

        logger.debug("imap_fetch_complete", range=str(message_range), fetched=len(bodies))
        return bodies

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def flag_deleted(self, message_range: MessageRange) -> None:
        """Add the ``\\Deleted`` flag to every message in *message_range*."""
        await asyncio.to_thread(self._store_deleted_sync, message_range)

    def _store_deleted_sync(self, message_range: MessageRange) -> None:
        assert self._conn is not None, "Not connected"
        try:
            status, data = self._conn.store(str(message_range), "+FLAGS.SILENT", DELETED_FLAG)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxError(f"store {message_range} failed: {exc}") from exc
        if status != "OK":
            raise MailboxError(f"store {message_range} failed: {_describe(data)}")

    async def expunge(self) -> None:
        """Permanently remove all messages flagged ``\\Deleted``."""
        await asyncio.to_thread(self._expunge_sync)

    def _expunge_sync(self) -> None:
        assert self._conn is not None, "Not connected"
        try:
            status, data = self._conn.expunge()
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxError(f"expunge failed: {exc}") from exc
        if status != "OK":
            raise MailboxError(f"expunge failed: {_describe(data)}")


def _describe(data: object) -> str:
    """Render an imaplib response payload for an error message."""
    if isinstance(data, list):
        return " ".join(
            item.decode(errors="replace") if isinstance(item, bytes) else str(item) for item in data
        )
    return str(data)

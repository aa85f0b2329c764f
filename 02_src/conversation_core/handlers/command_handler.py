"""Command handling: decide, append and publish as one unit of work."""

import asyncio
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Protocol

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..aggregate import DEFAULT_POLICY, Conversation, ConversationPolicy, decide, replay
from ..errors import ConversationError
from ..event_bus import IEventBus
from ..event_log import IEventLog
from ..logging_config import get_logger, log_context
from ..models import Command, RecordedEvent

logger = get_logger(__name__)


class ICommandHandler(Protocol):
    """Entry point for every state change of a conversation."""

    async def handle(self, command: Command) -> list[RecordedEvent]:
        """Apply a command. Return the appended events or raise a rejection."""
        ...


class ConversationCommandHandler:
    """Runs commands against the event log.

    Commands for the same conversation are serialized in-process; appends use
    optimistic concurrency so several processes can share one log. Retryable
    failures (ConcurrencyConflict, StorageUnavailable) are retried with
    exponential backoff, then re-raised. A bounded LRU cache of folded
    state saves replaying whole conversations on every command.
    """

    def __init__(
        self,
        event_log: IEventLog,
        event_bus: IEventBus | None = None,
        policy: ConversationPolicy = DEFAULT_POLICY,
        max_attempts: int = 5,
        retry_base_delay: float = 0.05,
        retry_max_delay: float = 1.0,
        clock: Callable[[], datetime] | None = None,
        snapshot_cache_size: int = 1024,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if snapshot_cache_size < 0:
            raise ValueError("snapshot_cache_size must not be negative")
        self._event_log = event_log
        self._event_bus = event_bus
        self._policy = policy
        self._max_attempts = max_attempts
        # Waits base * 2**(n-1) after attempt n, capped at retry_max_delay.
        self.retry_wait = wait_exponential(
            multiplier=retry_base_delay, max=retry_max_delay
        )
        self._clock = clock
        self._snapshot_cache_size = snapshot_cache_size

        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._snapshots: OrderedDict[str, Conversation] = OrderedDict()

    async def handle(self, command: Command) -> list[RecordedEvent]:
        """Apply a command. Return the appended events or raise a rejection.

        An accepted command that changes nothing returns an empty list.
        """
        async with self._serialized(command.conversation_id):
            records = await self._handle_with_retry(command)
            # Publishing inside the lock keeps egress in append order.
            if records and self._event_bus is not None:
                await self._event_bus.publish(records)
        return records

    async def load(self, conversation_id: str) -> Conversation | None:
        """Current aggregate state, folded from the log."""
        async with self._serialized(conversation_id):
            return await self._load(conversation_id)

    def forget(self, conversation_id: str | None = None) -> None:
        """Drop cached aggregate state (all of it when no id is given)."""
        if conversation_id is None:
            self._snapshots.clear()
        else:
            self._snapshots.pop(conversation_id, None)

    async def _handle_with_retry(self, command: Command) -> list[RecordedEvent]:
        cid = command.conversation_id
        command_name = type(command).__name__

        def log_retry(retry_state: RetryCallState) -> None:
            # A conflict means the cached state is stale.
            self.forget(cid)
            error = retry_state.outcome.exception()
            logger.warning(
                "Retrying %s in %.3fs after %s",
                command_name,
                retry_state.next_action.sleep,
                error.code,
                extra=log_context(
                    conversation_id=cid,
                    command=command_name,
                    error=error.code,
                    attempt=retry_state.attempt_number,
                ),
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._max_attempts),
            wait=self.retry_wait,
            before_sleep=log_retry,
            reraise=True,
        )
        attempt_number = 0
        try:
            async for attempt in retrying:
                attempt_number = attempt.retry_state.attempt_number
                with attempt:
                    records = await self._decide_and_append(command)
        except ConversationError as e:
            ctx = log_context(
                conversation_id=cid,
                command=command_name,
                error=e.code,
                attempt=attempt_number,
            )
            if not e.retryable:
                logger.info("Command %s rejected: %s", command_name, e, extra=ctx)
                raise
            self.forget(cid)
            logger.error(
                "Command %s failed after %d attempts: %s",
                command_name,
                attempt_number,
                e,
                extra=ctx,
            )
            raise
        return records

    async def _decide_and_append(self, command: Command) -> list[RecordedEvent]:
        cid = command.conversation_id
        state = await self._load(cid)
        now = self._clock() if self._clock else None
        events = decide(command, state, policy=self._policy, now=now)
        if not events:
            logger.debug(
                "Command %s changed nothing",
                type(command).__name__,
                extra=log_context(conversation_id=cid),
            )
            return []

        expected = state.version if state else 0
        records = await self._event_log.append(cid, expected, events)
        self._remember(cid, replay(records, state))

        logger.info(
            "Command %s accepted",
            type(command).__name__,
            extra=log_context(
                conversation_id=cid,
                events=[r.event_type for r in records],
                last_sequence=records[-1].sequence,
            ),
        )
        return records

    async def _load(self, conversation_id: str) -> Conversation | None:
        cached = self._snapshots.get(conversation_id)
        after = cached.version if cached else 0
        records = await self._event_log.read(conversation_id, after)
        state = replay(records, cached)
        if state is not None:
            self._remember(conversation_id, state)
        return state

    def _remember(self, conversation_id: str, state: Conversation) -> None:
        self._snapshots[conversation_id] = state
        self._snapshots.move_to_end(conversation_id)
        while len(self._snapshots) > self._snapshot_cache_size:
            self._snapshots.popitem(last=False)

    @asynccontextmanager
    async def _serialized(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the per-conversation lock; drop it once nobody needs it."""
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._lock_users[conversation_id] = self._lock_users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[conversation_id] -= 1
            if not self._lock_users[conversation_id]:
                del self._lock_users[conversation_id]
                self._locks.pop(conversation_id, None)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, ConversationError) and error.retryable

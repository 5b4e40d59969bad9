"""
Conversation State Store.

Holds one ConversationState per conversation id and serializes every
mutation per conversation through a turn sequencer, so that turns are
committed in request arrival order even when a later request finishes
its dispatch first.

Protocol:
    ticket = store.reserve_turn(conversation_id)   # at request arrival
    ...                                           # dispatch (any duration)
    await store.append(conversation_id, turn, ticket)   # waits for earlier tickets

    # A request that will never append must give its ticket back:
    store.release_turn(ticket)
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..domain.entities import ConversationState, Turn
from ..domain.ports import IEvictionPolicy
from .derived_context import update_derived_context
from .eviction import NoEviction

logger = logging.getLogger(__name__)


# ============================================
# Turn sequencing
# ============================================


@dataclass(frozen=True)
class TurnTicket:
    """Place in a conversation's commit queue."""

    conversation_id: str
    number: int
    generation: int = 0


@dataclass
class _Lane:
    generation: int
    next_ticket: int = 0
    head: int = 0
    finished: set[int] = field(default_factory=set)
    waiters: dict[int, asyncio.Future] = field(default_factory=dict)

    @property
    def idle(self) -> bool:
        return self.head == self.next_ticket


class TurnSequencer:
    """Per-conversation single-writer queue.

    Tickets are issued in arrival order; a ticket may commit only once
    every earlier ticket has committed or been released. All bookkeeping
    is synchronous, so it is atomic on the event loop.
    """

    def __init__(self):
        self._lanes: dict[str, _Lane] = {}
        self._generations = itertools.count(1)

    def reserve(self, conversation_id: str) -> TurnTicket:
        lane = self._lanes.get(conversation_id)
        if lane is None:
            lane = _Lane(generation=next(self._generations))
            self._lanes[conversation_id] = lane
        ticket = TurnTicket(conversation_id, lane.next_ticket, lane.generation)
        lane.next_ticket += 1
        return ticket

    def _active_lane(self, ticket: TurnTicket) -> Optional[_Lane]:
        lane = self._lanes.get(ticket.conversation_id)
        if lane is None or lane.generation != ticket.generation:
            return None
        if ticket.number < lane.head or ticket.number in lane.finished:
            return None
        return lane

    async def wait_turn(self, ticket: TurnTicket) -> None:
        """Wait until every earlier ticket has finished.

        Raises:
            ValueError: If the ticket was already finished
        """
        lane = self._active_lane(ticket)
        if lane is None:
            raise ValueError(f"Turn ticket {ticket} is no longer active")
        if lane.head == ticket.number:
            return

        future = asyncio.get_running_loop().create_future()
        lane.waiters[ticket.number] = future
        try:
            await future
        except asyncio.CancelledError:
            lane.waiters.pop(ticket.number, None)
            self.finish(ticket)
            raise

    def finish(self, ticket: TurnTicket) -> None:
        """Mark a ticket committed or released and wake the next one."""
        lane = self._active_lane(ticket)
        if lane is None:
            return

        lane.finished.add(ticket.number)
        while lane.head in lane.finished:
            lane.finished.discard(lane.head)
            lane.head += 1

        if lane.idle:
            del self._lanes[ticket.conversation_id]
            return

        waiter = lane.waiters.pop(lane.head, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    def active_conversations(self) -> set[str]:
        """Conversation ids with outstanding tickets."""
        return set(self._lanes)

    def pending(self, conversation_id: str) -> int:
        lane = self._lanes.get(conversation_id)
        if lane is None:
            return 0
        return lane.next_ticket - lane.head - len(lane.finished)


# ============================================
# Store
# ============================================


class ConversationStore:
    """In-process conversation state store.

    Usage:
        store = ConversationStore()
        state = store.get_or_create("conv_1", user_id="u1")

        ticket = store.reserve_turn("conv_1")
        await store.append("conv_1", Turn(message="hi", request_id="req_1"), ticket)

        store.get_by_id("conv_1").interaction_count  # 1

    Eviction:
        The default policy keeps everything. Pass LRUTTLEviction to bound
        memory; conversations with reserved tickets are never evicted.
    """

    def __init__(
        self,
        eviction_policy: Optional[IEvictionPolicy] = None,
        clock=time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the conversation store.

        Args:
            eviction_policy: Policy deciding which conversations may be dropped
            clock: Monotonic clock in seconds
            logger: Logger to use (defaults to the module logger)
        """
        self.eviction_policy = eviction_policy or NoEviction()
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._conversations: dict[str, ConversationState] = {}
        self._last_access: dict[str, float] = {}
        self._sequencer = TurnSequencer()
        self._evicted_total = 0

    def get_or_create(
        self,
        conversation_id: str,
        user_id: Optional[str] = None,
    ) -> ConversationState:
        """Return the conversation, creating it on first use."""
        state = self._conversations.get(conversation_id)
        if state is None:
            state = ConversationState(id=conversation_id, user_id=user_id or "guest")
            self._conversations[conversation_id] = state
            self._logger.debug(
                f"Created conversation {conversation_id} for user {state.user_id}"
            )
        self._last_access[conversation_id] = self._clock()
        return state

    def get_by_id(self, conversation_id: str) -> Optional[ConversationState]:
        return self._conversations.get(conversation_id)

    def reserve_turn(self, conversation_id: str) -> TurnTicket:
        """Reserve the next commit slot for a conversation (call at arrival)."""
        return self._sequencer.reserve(conversation_id)

    def release_turn(self, ticket: TurnTicket) -> None:
        """Give up a reserved slot without appending."""
        self._sequencer.finish(ticket)

    async def append(
        self,
        conversation_id: str,
        turn: Turn,
        ticket: Optional[TurnTicket] = None,
        user_id: Optional[str] = None,
    ) -> ConversationState:
        """Commit a turn once every earlier ticket has finished.

        Increments interaction_count, appends to turn_history and refreshes
        derived_context. This is the only mutator of conversation state.

        Args:
            conversation_id: Conversation to append to
            turn: The committed turn
            ticket: Slot from reserve_turn (None reserves one now)
            user_id: Owner used if the conversation has to be created

        Returns:
            The updated ConversationState
        """
        if ticket is None:
            ticket = self.reserve_turn(conversation_id)
        elif ticket.conversation_id != conversation_id:
            raise ValueError(
                f"Ticket belongs to {ticket.conversation_id}, not {conversation_id}"
            )

        await self._sequencer.wait_turn(ticket)
        try:
            state = self.get_or_create(conversation_id, user_id)
            state.turn_history.append(turn)
            state.interaction_count += 1
            state.last_interaction_at = datetime.utcnow()
            state.derived_context = update_derived_context(
                state.derived_context,
                turn.message,
                turn.intent,
                state.interaction_count,
            )
        finally:
            self._sequencer.finish(ticket)

        self.evict_expired()
        return state

    def evict_expired(self) -> list[str]:
        """Apply the eviction policy now.

        Returns:
            Evicted conversation ids
        """
        evicted = self.eviction_policy.select_evictions(
            self._conversations,
            self._sequencer.active_conversations(),
            self._clock(),
            self._last_access,
        )
        for cid in evicted:
            self._conversations.pop(cid, None)
            self._last_access.pop(cid, None)
        if evicted:
            self._evicted_total += len(evicted)
            self._logger.info(f"Evicted {len(evicted)} conversations")
        return evicted

    def get_stats(self) -> dict[str, Any]:
        return {
            "conversations": len(self._conversations),
            "total_turns": sum(s.interaction_count for s in self._conversations.values()),
            "conversations_with_pending_turns": len(self._sequencer.active_conversations()),
            "evicted_total": self._evicted_total,
            "eviction_policy": self.eviction_policy.__class__.__name__,
        }

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

"""
Delivery queue for campaign emails.

An email id is released once its ``scheduled_for`` time has passed; among the
emails that are due, higher ``priority`` goes first, then the earliest
schedule. Only email_queue row ids travel through the queue and the worker
loads the row itself. Redis keeps due times in a sorted set and priorities in
a hash beside it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

DEFAULT_PRIORITY = 5
# How many due emails Redis hands back per dequeue to choose the top priority from.
DUE_WINDOW = 50


@dataclass(frozen=True)
class QueuedEmail:
    email_id: str
    scheduled_for: float
    priority: int = DEFAULT_PRIORITY

    def sort_key(self) -> tuple:
        return (-self.priority, self.scheduled_for)


class EmailQueue(Protocol):
    def enqueue(
        self, email_id: str, *, scheduled_for: Optional[float] = None, priority: int = DEFAULT_PRIORITY
    ) -> None:
        ...

    def dequeue(self, *, now: Optional[float] = None) -> Optional[str]:
        """Pop the next due email id, or None if nothing is due yet."""
        ...


@dataclass
class InMemoryEmailQueue:
    items: list[QueuedEmail] = field(default_factory=list)

    def enqueue(
        self, email_id: str, *, scheduled_for: Optional[float] = None, priority: int = DEFAULT_PRIORITY
    ) -> None:
        when = time.time() if scheduled_for is None else scheduled_for
        self.items.append(QueuedEmail(email_id, when, priority))

    def dequeue(self, *, now: Optional[float] = None) -> Optional[str]:
        now = time.time() if now is None else now
        due = [item for item in self.items if item.scheduled_for <= now]
        if not due:
            return None
        chosen = min(due, key=QueuedEmail.sort_key)
        self.items.remove(chosen)
        return chosen.email_id


@dataclass
class RedisEmailQueue:
    url: str
    queue_key: str = "chorepulse:emails"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    @property
    def priority_key(self) -> str:
        return f"{self.queue_key}:priority"

    def enqueue(
        self, email_id: str, *, scheduled_for: Optional[float] = None, priority: int = DEFAULT_PRIORITY
    ) -> None:
        when = time.time() if scheduled_for is None else scheduled_for
        pipe = self.client.pipeline()
        pipe.zadd(self.queue_key, {email_id: when})
        pipe.hset(self.priority_key, email_id, priority)
        pipe.execute()

    def dequeue(self, *, now: Optional[float] = None) -> Optional[str]:
        now = time.time() if now is None else now
        try:
            due = self.client.zrangebyscore(
                self.queue_key, "-inf", now, start=0, num=DUE_WINDOW, withscores=True
            )
            if not due:
                return None
            priorities = self.client.hmget(self.priority_key, [member for member, _ in due])
            candidates = [
                QueuedEmail(
                    member.decode("utf-8"),
                    score,
                    int(raw) if raw is not None else DEFAULT_PRIORITY,
                )
                for (member, score), raw in zip(due, priorities)
            ]
            for item in sorted(candidates, key=QueuedEmail.sort_key):
                # Another worker may have claimed it between the read and the remove.
                if self.client.zrem(self.queue_key, item.email_id):
                    self.client.hdel(self.priority_key, item.email_id)
                    return item.email_id
            return None
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections; reconnect and report empty.
            self.client = redis.Redis.from_url(self.url)
            return None

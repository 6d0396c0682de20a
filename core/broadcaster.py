# core/broadcaster.py
import logging
from typing import Dict
from config.settings import Settings, settings as default_settings
from core.streaming import Subscriber
from model.api import StreamEvent

logger = logging.getLogger(__name__)


class Broadcaster:
    """
    Keeps at most one live Subscriber per job/batch id; a new subscription
    replaces (and closes) the previous one. Publishing never waits on the
    subscriber.
    """

    def __init__(self, config: Settings = default_settings) -> None:
        self._max_pending = config.STREAM_QUEUE_SIZE
        self._max_lifetime = config.STREAM_MAX_LIFETIME_SECONDS
        self._heartbeat = config.STREAM_HEARTBEAT_SECONDS
        self._subscribers: Dict[str, Subscriber] = {}

    def subscribe(self, subject_id: str) -> Subscriber:
        sub = Subscriber(
            subject_id,
            max_pending=self._max_pending,
            max_lifetime=self._max_lifetime,
            heartbeat=self._heartbeat,
            on_close=self._discard,
        )
        prior = self._subscribers.get(subject_id)
        self._subscribers[subject_id] = sub
        if prior is not None:
            logger.info("stream.replace id=%s", subject_id)
            prior.close()
        sub.push(StreamEvent.connection(subject_id))
        return sub

    def publish(self, subject_id: str, event: StreamEvent) -> bool:
        sub = self._subscribers.get(subject_id)
        if sub is None:
            logger.debug("stream.publish.no_subscriber id=%s type=%s", subject_id, event.type)
            return False
        delivered = sub.push(event)
        logger.debug(
            "stream.publish id=%s type=%s delivered=%s", subject_id, event.type, delivered
        )
        return delivered

    def close(self, subject_id: str) -> None:
        sub = self._subscribers.pop(subject_id, None)
        if sub is not None:
            sub.close()

    def close_all(self) -> None:
        for subject_id in list(self._subscribers):
            self.close(subject_id)

    def has_subscriber(self, subject_id: str) -> bool:
        return subject_id in self._subscribers

    def connection_count(self) -> int:
        return len(self._subscribers)

    def _discard(self, sub: Subscriber) -> None:
        if self._subscribers.get(sub.subject_id) is sub:
            del self._subscribers[sub.subject_id]

"""Append-only audit of messages the consumer failed to process."""

from __future__ import annotations

from datetime import datetime
import logging

from .connection import ConnectionManager
from .contracts import ConsumerMessage, as_text, format_timestamp, utc_now


logger = logging.getLogger("results_aggregator.storage.consumer_errors")


class ConsumerErrorRecorder:
    def __init__(self, manager: ConnectionManager) -> None:
        self.manager = manager

    def record_error(
        self,
        topic: str,
        partition: int,
        offset: int,
        key: bytes | str | None,
        produced_at: datetime | None,
        consumed_at: datetime | None,
        payload: bytes | str | None,
        error_text: str,
    ) -> None:
        """Insert one error row; a repeated (topic, partition, offset) raises ConstraintViolationError."""
        with self.manager.connection() as conn:
            self.manager.execute(
                conn,
                """
                INSERT INTO consumer_error (
                    topic, partition, topic_offset, key, produced_at, consumed_at, message, error
                ) VALUES ({p1}, {p2}, {p3}, {p4}, {p5}, {p6}, {p7}, {p8})
                """,
                (
                    str(topic),
                    int(partition),
                    int(offset),
                    as_text(key, errors="backslashreplace") if key is not None else None,
                    format_timestamp(produced_at) if produced_at else None,
                    format_timestamp(consumed_at or utc_now()),
                    as_text(payload, errors="backslashreplace") if payload is not None else None,
                    str(error_text),
                ),
            )
        logger.info("Consumer error recorded topic=%s partition=%s offset=%s", topic, partition, offset)

    def record_consumer_error(self, message: ConsumerMessage, error: BaseException) -> None:
        self.record_error(
            topic=message.topic,
            partition=message.partition,
            offset=message.offset,
            key=message.key,
            produced_at=message.timestamp,
            consumed_at=utc_now(),
            payload=message.value,
            error_text=str(error),
        )

from __future__ import annotations

import logging
from collections.abc import Sequence
from time import perf_counter
from typing import Any

import httpx

from app.services.events import REMOTE_OPTIMIZER_FAILED, GenerationEventHub, event_hub as default_event_hub

logger = logging.getLogger(__name__)

REQUIRED_ENTRY_FIELDS = ("course_id", "room_id", "lecturer_id", "day", "time_slot_id")


def is_complete_entry(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    for key in REQUIRED_ENTRY_FIELDS:
        value = entry.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
    return True


class RemoteOptimizerClient:
    """POSTs ``{courses, rooms, lecturers, constraints}`` to the remote optimizer.

    ``optimize`` returns the list of entry objects, or ``None`` on any network error,
    non-2xx status, or a body that is not a JSON array holding at least one complete entry.
    Each of those failures publishes ``remote_optimizer_failed`` on the event hub.
    """

    def __init__(
        self,
        url: str | None,
        *,
        timeout: float = 30.0,
        events: GenerationEventHub | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.events = events or default_event_hub
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def _fail(self, reason: str, *, job_id: str | None, context: dict[str, Any], **extra: Any) -> None:
        logger.warning("Remote optimizer failed for job %s: %s", job_id, reason)
        self.events.publish(
            REMOTE_OPTIMIZER_FAILED,
            job_id=job_id,
            reason=reason,
            url=self.url,
            **context,
            **extra,
        )

    def optimize(
        self,
        payload: dict[str, Sequence[Any]],
        *,
        job_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]] | None:
        if not self.configured:
            logger.debug("Remote optimizer not configured; skipping for job %s", job_id)
            return None

        context = context or {}
        body = {
            "courses": list(payload.get("courses") or []),
            "rooms": list(payload.get("rooms") or []),
            "lecturers": list(payload.get("lecturers") or []),
            "constraints": list(payload.get("constraints") or []),
        }
        logger.info(
            "Calling remote optimizer for job %s (courses=%d, rooms=%d, lecturers=%d, constraints=%d)",
            job_id,
            len(body["courses"]),
            len(body["rooms"]),
            len(body["lecturers"]),
            len(body["constraints"]),
        )

        start = perf_counter()
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.url, json=body)
        except httpx.HTTPError as exc:
            self._fail(f"request error: {exc.__class__.__name__}: {exc}", job_id=job_id, context=context)
            return None
        duration = perf_counter() - start

        logger.info(
            "Remote optimizer responded for job %s with status %d in %.2fs",
            job_id,
            response.status_code,
            duration,
        )
        if not response.is_success:
            self._fail(
                f"HTTP {response.status_code}",
                job_id=job_id,
                context=context,
                status_code=response.status_code,
            )
            return None

        try:
            data = response.json()
        except ValueError:
            self._fail("response body is not valid JSON", job_id=job_id, context=context)
            return None

        if not isinstance(data, list) or not data:
            self._fail("response is not a non-empty JSON array", job_id=job_id, context=context)
            return None

        if not any(is_complete_entry(item) for item in data):
            self._fail("response holds no complete timetable entry", job_id=job_id, context=context)
            return None

        # Incomplete items are kept so persistence can report them as skipped entries.
        return list(data)

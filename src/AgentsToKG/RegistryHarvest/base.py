# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.RegistryHarvest.base",
#   "purpose": "Checkpointed page loop shared by registry harvesters",
#   "sections": [
#     {
#       "id": "page",
#       "name": "Page",
#       "anchor": "class-page",
#       "kind": "class"
#     },
#     {
#       "id": "harvest-result",
#       "name": "HarvestResult",
#       "anchor": "class-harvest-result",
#       "kind": "class"
#     },
#     {
#       "id": "harvester",
#       "name": "Harvester",
#       "anchor": "class-harvester",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Checkpointed, resumable page loop shared by every registry harvester.

A harvester walks one or more *streams* (most registries have one; HOL has one
per sub-registry). For each stream it:

1. Resolves the starting page from the stream's checkpoint (``reset`` writes
   the initial cursor first; ``resume=False`` starts at page 1).
2. Fetches a page. Page fetches are retried ``page_retries`` times with a
   ``min(60, attempt**2)`` second pause; after that the stream stops and the
   checkpoint still points at the failed page.
3. Maps every item with the registry's :class:`FieldSpec` table and upserts
   it. A bad item is logged and skipped; it never aborts the page.
4. Persists ``{page: next, processed, at}`` once every item of the page has
   been attempted, then pauses ``page_delay_seconds`` before the next fetch.

Because the cursor only advances after a page completes, a crash mid-page
replays that whole page on the next run. Upserts are idempotent, so replaying
is safe.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from ..errors import (
    AuthorizationError,
    ConfigurationError,
    HarvestError,
    RegistryHTTPError,
    StorageError,
    raise_for_registry_status,
)
from ..network.client import get_http_client
from ..network.retry import RetryPolicy, request_with_retry
from ..storage.base import RelationalStore
from ..storage.checkpoints import CheckpointStore
from ..storage.records import AgentRecord, upsert_agent
from ..storage.schema import ensure_schema
from .fields import FieldSpec, extract_fields

logger = logging.getLogger(__name__)

__all__ = ["Page", "HarvestResult", "Harvester"]

PAGE_FETCH_ERRORS = (RegistryHTTPError, httpx.HTTPError, ValueError)


@dataclass(frozen=True)
class Page:
    """One fetched page of registry items."""

    items: Sequence[Mapping[str, Any]]
    total: Optional[int] = None
    has_next: Optional[bool] = None


@dataclass
class HarvestResult:
    """Counters reported by :meth:`Harvester.harvest`."""

    processed: int = 0
    skipped: int = 0
    pages: int = 0
    stopped_early: bool = False
    streams: Dict[str, int] = field(default_factory=dict)


class Harvester:
    """Base class for registry harvesters.

    Subclasses set ``checkpoint_key`` and ``field_specs`` and implement
    :meth:`fetch_page`. ``registry_name`` is assigned by
    :func:`register_harvester`.
    """

    registry_name: ClassVar[str] = "abstract"
    checkpoint_key: ClassVar[str] = ""
    field_specs: ClassVar[Tuple[FieldSpec, ...]] = ()

    def __init__(
        self,
        store: RelationalStore,
        *,
        client: Optional[httpx.Client] = None,
        policy: Optional[RetryPolicy] = None,
        page_size: int = 100,
        page_delay_seconds: float = 0.2,
        page_retries: int = 6,
        page_retry_max_sleep_seconds: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.checkpoints = CheckpointStore(store)
        self.client = client or get_http_client()
        self.policy = policy or RetryPolicy()
        self.page_size = page_size
        self.page_delay_seconds = page_delay_seconds
        self.page_retries = max(1, page_retries)
        self.page_retry_max_sleep_seconds = page_retry_max_sleep_seconds
        self._sleep = sleep

    @classmethod
    def base_kwargs(cls, settings, *, client=None, **overrides) -> Dict[str, Any]:
        """Constructor keyword arguments derived from the shared settings sections."""
        kwargs: Dict[str, Any] = {
            "client": client or get_http_client(settings.http),
            "policy": RetryPolicy.from_settings(settings.retry, settings.http),
            "page_size": settings.harvest.page_size,
            "page_delay_seconds": settings.harvest.page_delay_seconds,
            "page_retries": settings.harvest.page_retries,
            "page_retry_max_sleep_seconds": settings.harvest.page_retry_max_sleep_seconds,
        }
        kwargs.update({key: value for key, value in overrides.items() if value is not None})
        return kwargs

    @classmethod
    def from_settings(cls, settings, store, *, client=None, **overrides) -> "Harvester":
        return cls(store, **cls.base_kwargs(settings, client=client, **overrides))

    # -- hooks ---------------------------------------------------------------

    def validate_configuration(self) -> None:
        """Raise :class:`ConfigurationError` when required credentials are missing."""

    def streams(self) -> List[Optional[str]]:
        """Stream identifiers walked by :meth:`harvest`; ``None`` is the single default stream."""
        return [None]

    def stream_checkpoint_key(self, stream: Optional[str]) -> str:
        return self.checkpoint_key if stream is None else f"{self.checkpoint_key}:{stream}"

    def fetch_page(self, stream: Optional[str], page: int, page_size: int) -> Page:
        raise NotImplementedError

    def finalize_fields(
        self, fields: Dict[str, Any], item: Mapping[str, Any], stream: Optional[str]
    ) -> Dict[str, Any]:
        """Adjust extracted fields before the record is built."""
        return fields

    def select_items(self, page: Page, stream: Optional[str]) -> Sequence[Mapping[str, Any]]:
        """Items of ``page`` to upsert; emptiness checks always use the unfiltered page."""
        return page.items

    def after_upsert(self, record: AgentRecord, item: Mapping[str, Any], internal_id: int) -> None:
        """Write per-record side tables."""

    def is_last_page(self, page: Page, page_number: int, page_size: int) -> bool:
        if page.has_next is not None:
            return not page.has_next
        if page.total is not None:
            return page_number * page_size >= page.total
        return len(page.items) < page_size

    # -- helpers -------------------------------------------------------------

    def auth_headers(self) -> Dict[str, str]:
        return {}

    def get_json(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """GET ``url`` through the retrying client and decode the JSON body."""
        clean = {key: value for key, value in (params or {}).items() if value is not None}
        response = request_with_retry(
            self.client,
            "GET",
            url,
            params=clean,
            headers=self.auth_headers(),
            policy=self.policy,
            sleep=self._sleep,
        )
        raise_for_registry_status(response, registry=self.registry_name)
        return response.json()

    def to_record(self, item: Mapping[str, Any], stream: Optional[str]) -> AgentRecord:
        """Map a raw registry item to an :class:`AgentRecord`.

        Raises:
            HarvestError: When the item lacks an id or fails validation.
        """
        if not isinstance(item, Mapping):
            raise HarvestError(f"expected an object, got {type(item).__name__}")
        fields = extract_fields(item, self.field_specs)
        fields = self.finalize_fields(fields, item, stream)
        if not fields.get("external_agent_id"):
            raise HarvestError("item has no usable id")
        fields.setdefault("raw_json", json.dumps(item, ensure_ascii=False, sort_keys=True, default=str))
        try:
            return AgentRecord(registry_source_id=self.registry_name, **fields)
        except ValidationError as exc:
            raise HarvestError(f"invalid record: {exc.errors(include_url=False)}") from exc

    def _fetch_with_retries(self, stream: Optional[str], page: int, page_size: int) -> Optional[Page]:
        max_sleep = self.page_retry_max_sleep_seconds
        retrying = Retrying(
            stop=stop_after_attempt(self.page_retries),
            wait=lambda state: min(max_sleep, float(state.attempt_number**2)),
            retry=retry_if_exception_type(PAGE_FETCH_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(self.fetch_page, stream, page, page_size)
        except AuthorizationError:
            raise
        except PAGE_FETCH_ERRORS as exc:
            logger.error(
                "page fetch failed after %d attempts; stopping stream: %s",
                self.page_retries,
                exc,
                extra={"registry": self.registry_name, "page": page, "stage": "harvest"},
            )
            return None

    # -- main loop -----------------------------------------------------------

    def harvest(
        self,
        *,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        resume: bool = True,
        reset: bool = False,
        streams: Optional[Sequence[str]] = None,
    ) -> HarvestResult:
        """Walk every selected stream page by page.

        Args:
            page_size: Items requested per page (defaults to the configured size).
            max_pages: Page cap per stream for this run.
            resume: Start from the stored checkpoint.
            reset: Overwrite the checkpoint with the initial cursor first.
            streams: Subset of :meth:`streams` to walk.

        Returns:
            HarvestResult: Processed/skipped counters.

        Raises:
            ConfigurationError: Before any I/O when credentials are missing.
            AuthorizationError: When the store or registry rejects credentials.
        """
        self.validate_configuration()
        ensure_schema(self.store)

        size = page_size or self.page_size
        if size < 1:
            raise ConfigurationError("page_size must be at least 1")
        selected = list(streams) if streams else self.streams()
        result = HarvestResult()

        for stream in selected:
            key = self.stream_checkpoint_key(stream)
            cursor = self.checkpoints.load_page_cursor(key, resume=resume, reset=reset)
            page_number = cursor.page
            processed = cursor.processed
            pages_this_run = 0
            log_extra = {"registry": self.registry_name, "stage": "harvest"}
            logger.info(
                "harvesting %s from page %d",
                key,
                page_number,
                extra=log_extra,
            )

            while max_pages is None or pages_this_run < max_pages:
                page = self._fetch_with_retries(stream, page_number, size)
                if page is None:
                    result.stopped_early = True
                    break
                if not page.items:
                    break

                for item in self.select_items(page, stream):
                    record_key = None
                    try:
                        record = self.to_record(item, stream)
                        record_key = record.external_agent_id
                        internal_id = upsert_agent(self.store, record)
                        self.after_upsert(record, item, internal_id)
                    except (HarvestError, StorageError) as exc:
                        result.skipped += 1
                        logger.warning(
                            "skipping record: %s",
                            exc,
                            extra={**log_extra, "page": page_number, "record_key": record_key},
                        )
                        continue
                    processed += 1
                    result.processed += 1

                self.checkpoints.save_page_cursor(key, page_number + 1, processed)
                pages_this_run += 1
                result.pages += 1

                if self.is_last_page(page, page_number, size):
                    break
                page_number += 1
                if self.page_delay_seconds > 0:
                    self._sleep(self.page_delay_seconds)

            result.streams[key] = processed
            logger.info("stream %s done; processed=%d", key, processed, extra=log_extra)

        return result

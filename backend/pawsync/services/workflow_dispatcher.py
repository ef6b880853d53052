# backend/pawsync/services/workflow_dispatcher.py
"""
Workflow Dispatcher - hands capture batches to the external workflow runner.

Pets missing imagery are split into batches and each batch triggers one
GitHub Actions workflow_dispatch run with the ``{pets_batch, batch_id}``
inputs. Dispatched pets get ``screenshot_requested_at`` stamped so stalled
requests can be retried later. A pause between batches keeps the runner
and the listing site from being flooded.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import requests

from ..constants import (
    DEFAULT_DISPATCH_BATCH_DELAY_SECONDS,
    DEFAULT_DISPATCH_BATCH_SIZE,
    DISPATCH_REQUEST_TIMEOUT_SECONDS,
    GITHUB_ACCEPT_HEADER,
    GITHUB_API_BASE_URL,
)
from ..enums import LogEmoji, LoggerName, PetType
from ..exceptions import DispatchError, StatusWriteError
from ..models.dispatch_model import DispatchPayload, DispatchPetItem, DispatchResult
from ..models.pet_model import PetCandidate
from ..utils.time_utils import utc_now
from .logger import get_service_logger
from .sync_status_service import SyncStatusService

logger = get_service_logger(LoggerName.DISPATCH_SERVICE, LogEmoji.DISPATCH)

USER_AGENT = "pawsync-dispatcher/1.0"


def build_batch_id(index: int) -> str:
    """Batch ids sort by creation time: batch-YYYYmmddHHMMSS-NNN"""
    return f"batch-{utc_now().strftime('%Y%m%d%H%M%S')}-{index:03d}"


def chunk(items: Sequence[Any], size: int) -> List[List[Any]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class WorkflowDispatcher:
    """Triggers the capture workflow through the GitHub REST API."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        workflow_file: str,
        status_service: SyncStatusService,
        ref: str = "main",
        batch_size: int = DEFAULT_DISPATCH_BATCH_SIZE,
        batch_delay_seconds: float = DEFAULT_DISPATCH_BATCH_DELAY_SECONDS,
        http_session: Optional[requests.Session] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.token = token
        self.owner = owner
        self.repo = repo
        self.workflow_file = workflow_file
        self.status_service = status_service
        self.ref = ref
        self.batch_size = max(1, batch_size)
        self.batch_delay_seconds = batch_delay_seconds
        self.http = http_session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, settings, status_service: SyncStatusService
    ) -> Optional["WorkflowDispatcher"]:
        """None when the workflow runner is not configured."""
        if not settings.dispatch_enabled:
            return None
        return cls(
            token=settings.github_token,
            owner=settings.github_owner,
            repo=settings.github_repo,
            workflow_file=settings.github_workflow_file,
            status_service=status_service,
            ref=settings.github_ref,
            batch_size=settings.dispatch_batch_size,
            batch_delay_seconds=settings.dispatch_batch_delay_seconds,
        )

    @property
    def workflow_url(self) -> str:
        return (
            f"{GITHUB_API_BASE_URL}/repos/{self.owner}/{self.repo}"
            f"/actions/workflows/{self.workflow_file}/dispatches"
        )

    def _headers(self) -> dict:
        return {
            "Accept": GITHUB_ACCEPT_HEADER,
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _post(self, payload: DispatchPayload) -> None:
        body = {"ref": self.ref, "inputs": payload.to_inputs()}
        try:
            response = self.http.post(
                self.workflow_url,
                json=body,
                headers=self._headers(),
                timeout=DISPATCH_REQUEST_TIMEOUT_SECONDS,
            )
        except requests.exceptions.RequestException as e:
            raise DispatchError(
                f"Workflow trigger request failed: {e}",
                operation="trigger_workflow",
                details={"batch_id": payload.batch_id},
            ) from e

        if response.status_code == 204:
            return

        details = {
            "batch_id": payload.batch_id,
            "status_code": response.status_code,
            "body": response.text[:500],
        }
        if response.status_code in (403, 429) and "Retry-After" in response.headers:
            details["retry_after"] = response.headers["Retry-After"]
        raise DispatchError(
            f"Workflow trigger rejected with HTTP {response.status_code}",
            operation="trigger_workflow",
            details=details,
        )

    async def trigger(self, candidates: Sequence[PetCandidate], batch_id: str) -> DispatchPayload:
        """
        Trigger one workflow run for a batch of pets.

        Raises:
            DispatchError: If GitHub does not answer 204
        """
        payload = DispatchPayload(
            pets_batch=[DispatchPetItem.from_candidate(c) for c in candidates],
            batch_id=batch_id,
        )
        await asyncio.to_thread(self._post, payload)
        logger.info(
            f"Dispatched batch {batch_id} with {len(candidates)} pets",
            extra_context={"batch_id": batch_id},
        )
        return payload

    async def dispatch_missing(
        self, limit: int, pet_type: Optional[PetType] = None
    ) -> DispatchResult:
        """
        Dispatch pets missing imagery in batches.

        A rejected batch is recorded and the remaining batches still go out.
        """
        candidates = await self.status_service.get_pets_missing_images(limit, pet_type)
        return await self.dispatch(candidates)

    async def dispatch(self, candidates: Sequence[PetCandidate]) -> DispatchResult:
        result = DispatchResult()
        batches = chunk([c for c in candidates if c.source_url], self.batch_size)

        for index, batch in enumerate(batches):
            if index > 0 and self.batch_delay_seconds > 0:
                await self._sleep(self.batch_delay_seconds)

            batch_id = build_batch_id(index)
            try:
                await self.trigger(batch, batch_id)
            except DispatchError as e:
                logger.error(f"Batch {batch_id} not dispatched", exception=e)
                result.failed_batches.append(batch_id)
                continue

            result.batches_dispatched += 1
            result.pets_dispatched += len(batch)
            result.batch_ids.append(batch_id)

            try:
                await self.status_service.mark_screenshots_requested(
                    [c.pet_id for c in batch]
                )
            except StatusWriteError as e:
                logger.warning(f"Dispatched batch {batch_id} but request stamps failed: {e}")

        logger.info(
            f"Dispatch finished: {result.pets_dispatched} pets in "
            f"{result.batches_dispatched} batches, {len(result.failed_batches)} failed"
        )
        return result

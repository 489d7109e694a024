import asyncio
import logging
from enum import Enum
from typing import Optional, Protocol

import httpx

from core.config import get_location_settings
from models.location_approval import EffectiveApprovalStatus
from services.approval_workflow import ApprovalWorkflow

logger = logging.getLogger(__name__)


class PollOutcome(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ApprovalStatusSource(Protocol):
    """Anything that can report the effective status of an approval request."""

    async def fetch_status(self, request_id: int) -> EffectiveApprovalStatus:
        ...


class WorkflowStatusSource:
    """Reads status straight from the workflow (same process as the database)."""

    def __init__(self, workflow: ApprovalWorkflow):
        self.workflow = workflow

    async def fetch_status(self, request_id: int) -> EffectiveApprovalStatus:
        # Drop cached rows so every poll is a real re-query
        self.workflow.session.expire_all()
        approval = self.workflow.get_request(request_id)
        return self.workflow.effective_status(approval)


class HttpStatusSource:
    """Reads status through GET /location/approvals/{id}/status."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def fetch_status(self, request_id: int) -> EffectiveApprovalStatus:
        headers = {"Authorization": f"Bearer {self.token}"}
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
            response = await client.get(
                f"{self.base_url}/location/approvals/{request_id}/status", headers=headers
            )
            response.raise_for_status()
            return EffectiveApprovalStatus(response.json()["status"])


class ApprovalPoller:
    """
    Cooperative re-query loop for a pending approval.

    Holds nothing on the server between polls. Stops when the request is
    approved, denied or expired, or as soon as cancel_event is set.
    """

    def __init__(self, source: ApprovalStatusSource, interval_seconds: Optional[float] = None):
        self.source = source
        if interval_seconds is None:
            interval_seconds = get_location_settings().poll_interval_seconds
        self.interval_seconds = interval_seconds

    async def wait_for_resolution(
        self,
        request_id: int,
        cancel_event: Optional[asyncio.Event] = None,
        max_polls: Optional[int] = None,
    ) -> PollOutcome:
        cancel_event = cancel_event or asyncio.Event()
        polls = 0

        while not cancel_event.is_set():
            status = await self.source.fetch_status(request_id)
            polls += 1

            if status == EffectiveApprovalStatus.APPROVED:
                logger.info(f"Approval {request_id} granted after {polls} poll(s)")
                return PollOutcome.GRANTED
            if status == EffectiveApprovalStatus.DENIED:
                return PollOutcome.DENIED
            if status == EffectiveApprovalStatus.EXPIRED:
                return PollOutcome.EXPIRED
            if max_polls is not None and polls >= max_polls:
                break

            # Sleep for the interval, waking early if the caller gives up
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info(f"Stopped polling approval {request_id} after {polls} poll(s)")
        return PollOutcome.CANCELLED

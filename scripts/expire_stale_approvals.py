#!/usr/bin/env python3
"""
Flip abandoned pending location approvals to denied.

Expiry is already enforced on read, so this is bookkeeping only; run it from
cron (or Cloud Scheduler) so the stored status matches what users see.
"""

import logging
import os
import sys

from sqlmodel import Session

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from core.config import get_location_settings  # noqa: E402
from db.session import engine  # noqa: E402
from services.approval_workflow import ApprovalWorkflow  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_location_settings()
    with Session(engine) as session:
        workflow = ApprovalWorkflow(
            session,
            grant_window=settings.grant_window,
            request_ttl=settings.request_ttl,
        )
        expired = workflow.expire_stale_requests()
    logger.info(f"Expired {expired} stale approval request(s)")
    return expired


if __name__ == "__main__":
    main()

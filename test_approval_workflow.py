import threading
from datetime import timedelta

import pytest
from sqlmodel import Session, select

from conftest import MAIN_LAT, MAIN_LNG, sample_at
from core.exceptions import ApprovalAlreadyProcessed, ApprovalNotFound
from models.location import Actor
from models.location_approval import (
    ApprovalAction,
    ApprovalStatusEnum,
    EffectiveApprovalStatus,
    LocationApproval,
)
from models.zone import Zone
from services.approval_workflow import ApprovalWorkflow
from services.geofence_evaluator import evaluate

FAR_LAT = MAIN_LAT + 0.02


@pytest.fixture
def workflow(session, clock, dispatcher):
    return ApprovalWorkflow(session, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def invalid_verdict():
    zone = Zone(id=1, name="Main", latitude=MAIN_LAT, longitude=MAIN_LNG, radius_meters=500)
    return evaluate(sample_at(FAR_LAT, MAIN_LNG), [zone])


def open_request(workflow, actor, verdict):
    return workflow.request_approval(actor, sample_at(FAR_LAT, MAIN_LNG), verdict, attempt_record_id=None)


def test_request_is_created_pending(workflow, operator, invalid_verdict, clock):
    approval = open_request(workflow, operator, invalid_verdict)

    assert approval.status == ApprovalStatusEnum.PENDING
    assert approval.reason == "Remote location access request"
    assert approval.verdict["distance_meters"] == invalid_verdict.distance_meters
    assert approval.sample["latitude"] == pytest.approx(FAR_LAT)
    assert workflow.effective_status(approval) == EffectiveApprovalStatus.PENDING


def test_repeated_requests_reuse_open_request(workflow, operator, invalid_verdict):
    first = open_request(workflow, operator, invalid_verdict)
    second = open_request(workflow, operator, invalid_verdict)

    assert first.id == second.id
    assert len(workflow.list_pending()) == 1


def test_requests_are_per_actor(workflow, operator, supervisor, invalid_verdict):
    first = open_request(workflow, operator, invalid_verdict)
    second = open_request(workflow, supervisor, invalid_verdict)
    assert first.id != second.id


def test_approve_sets_grant_window(workflow, operator, invalid_verdict, clock, dispatcher):
    approval = open_request(workflow, operator, invalid_verdict)
    clock.advance(minutes=5)

    processed = workflow.process(approval.id, ApprovalAction.APPROVE, "admin-1", "Hari Admin", "Field visit")

    assert processed.status == ApprovalStatusEnum.APPROVED
    assert processed.processed_by == "admin-1"
    assert processed.admin_reason == "Field visit"
    has_approval, current = workflow.has_valid_approval(operator.actor_id)
    assert has_approval is True
    assert current.id == approval.id
    assert workflow.effective_status(processed) == EffectiveApprovalStatus.APPROVED
    assert dispatcher.resolutions == [(approval.id, "approved")]

    # SQLite drops tzinfo; compare on naive UTC
    assert processed.access_expires_at.replace(tzinfo=None) == (clock.now + timedelta(hours=8)).replace(tzinfo=None)


def test_deny_is_terminal(workflow, operator, invalid_verdict):
    approval = open_request(workflow, operator, invalid_verdict)
    workflow.process(approval.id, ApprovalAction.DENY, "admin-1", "Hari Admin", "Not on shift")

    with pytest.raises(ApprovalAlreadyProcessed) as excinfo:
        workflow.process(approval.id, ApprovalAction.APPROVE, "admin-2", "Gita Admin")
    assert excinfo.value.status == "denied"

    refreshed = workflow.get_request(approval.id)
    assert refreshed.status == ApprovalStatusEnum.DENIED
    assert refreshed.processed_by == "admin-1"
    assert workflow.has_valid_approval(operator.actor_id) == (False, None)


def test_approved_request_cannot_be_reprocessed(workflow, operator, invalid_verdict):
    approval = open_request(workflow, operator, invalid_verdict)
    workflow.process(approval.id, ApprovalAction.APPROVE, "admin-1")

    with pytest.raises(ApprovalAlreadyProcessed):
        workflow.process(approval.id, ApprovalAction.DENY, "admin-2")
    assert workflow.get_request(approval.id).status == ApprovalStatusEnum.APPROVED


def test_process_unknown_request(workflow):
    with pytest.raises(ApprovalNotFound):
        workflow.process(999, ApprovalAction.APPROVE, "admin-1")


def test_approval_expires_lazily(workflow, operator, invalid_verdict, clock):
    approval = open_request(workflow, operator, invalid_verdict)
    workflow.process(approval.id, ApprovalAction.APPROVE, "admin-1")

    clock.advance(hours=8)
    assert workflow.has_valid_approval(operator.actor_id)[0] is True

    clock.advance(seconds=1)
    assert workflow.has_valid_approval(operator.actor_id) == (False, None)
    assert workflow.effective_status(workflow.get_request(approval.id)) == EffectiveApprovalStatus.EXPIRED


def test_unprocessed_request_expires_after_ttl(workflow, operator, invalid_verdict, clock):
    approval = open_request(workflow, operator, invalid_verdict)

    clock.advance(hours=24, seconds=1)
    assert workflow.effective_status(approval) == EffectiveApprovalStatus.EXPIRED
    assert workflow.list_pending() == []
    with pytest.raises(ApprovalAlreadyProcessed) as excinfo:
        workflow.process(approval.id, ApprovalAction.APPROVE, "admin-1")
    assert excinfo.value.status == "expired"

    # A fresh attempt after expiry opens a new request
    replacement = open_request(workflow, operator, invalid_verdict)
    assert replacement.id != approval.id


def test_expire_stale_requests_sweeps_only_old_pending(workflow, operator, supervisor, invalid_verdict, clock):
    stale = open_request(workflow, operator, invalid_verdict)
    clock.advance(hours=20)
    fresh = open_request(workflow, supervisor, invalid_verdict)
    clock.advance(hours=5)

    assert workflow.expire_stale_requests() == 1

    workflow.session.expire_all()
    stale = workflow.get_request(stale.id)
    assert stale.status == ApprovalStatusEnum.DENIED
    assert stale.admin_reason == "expired"
    assert stale.processed_by == "system"
    assert workflow.get_request(fresh.id).status == ApprovalStatusEnum.PENDING


def test_most_recent_approval_wins(workflow, operator, invalid_verdict, clock):
    first = open_request(workflow, operator, invalid_verdict)
    workflow.process(first.id, ApprovalAction.APPROVE, "admin-1")
    clock.advance(hours=9)

    second = open_request(workflow, operator, invalid_verdict)
    workflow.process(second.id, ApprovalAction.APPROVE, "admin-1")

    has_approval, current = workflow.has_valid_approval(operator.actor_id)
    assert has_approval is True
    assert current.id == second.id


def test_concurrent_decisions_have_one_winner(file_engine, clock, invalid_verdict):
    actor = Actor(actor_id="op-9", actor_name="Concurrent Operator", actor_role="operator")
    with Session(file_engine) as session:
        request_id = open_request(ApprovalWorkflow(session, clock=clock), actor, invalid_verdict).id

    barrier = threading.Barrier(2)
    outcomes = []

    def decide(action, admin_id):
        with Session(file_engine) as session:
            workflow = ApprovalWorkflow(session, clock=clock)
            barrier.wait()
            try:
                workflow.process(request_id, action, admin_id)
                outcomes.append(("won", admin_id))
            except ApprovalAlreadyProcessed:
                outcomes.append(("lost", admin_id))

    threads = [
        threading.Thread(target=decide, args=(ApprovalAction.APPROVE, "admin-a")),
        threading.Thread(target=decide, args=(ApprovalAction.DENY, "admin-b")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [admin for result, admin in outcomes if result == "won"]
    assert len(winners) == 1
    assert len(outcomes) == 2

    with Session(file_engine) as session:
        stored = session.exec(select(LocationApproval).where(LocationApproval.id == request_id)).one()
        assert stored.processed_by == winners[0]

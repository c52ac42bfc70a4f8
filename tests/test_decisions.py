from datetime import timedelta

import pytest

from trip_assistant.decisions import DECLINED_MESSAGE, TIMEOUT_MESSAGE, Decision, DecisionHandler
from trip_assistant.errors import MutationError, ProposalForbiddenError, ProposalGoneError
from trip_assistant.proposals import Proposal
from trip_assistant.store import ACTIVITIES, StoreError
from trip_assistant.tools import ToolName, parse_tool_arguments


def _put(proposals, clock, tool="create_activity", raw=None, trip_id="trip1"):
    raw = raw or {"name": "Dinner", "address": "12 Rue X", "start_time": "2024-06-02T19:00:00Z"}
    proposal = Proposal.create(trip_id, ToolName(tool), parse_tool_arguments(tool, raw), clock=clock)
    proposals.put(proposal)
    return proposal


def _activity_names(store):
    return sorted(a["name"] for a in store.find(ACTIVITIES, trip="trip1"))


def test_approve_applies_once(store, proposals, clock):
    proposal = _put(proposals, clock)
    handler = DecisionHandler(proposals, store)
    result = handler.decide(proposal.id, "trip1", Decision.APPROVE)
    assert result.status == "approved"
    assert result.message == 'Added activity "Dinner" on 2024-06-02T19:00:00Z.'
    assert _activity_names(store) == ["Dinner", "Louvre", "Walking tour"]

    with pytest.raises(ProposalGoneError):
        handler.decide(proposal.id, "trip1", Decision.APPROVE)
    assert _activity_names(store) == ["Dinner", "Louvre", "Walking tour"]


@pytest.mark.parametrize(
    "decision, status, message",
    [(Decision.DECLINE, "declined", DECLINED_MESSAGE), (Decision.TIMEOUT, "timeout", TIMEOUT_MESSAGE)],
)
def test_decline_and_timeout_leave_store_untouched(store, proposals, clock, decision, status, message):
    proposal = _put(proposals, clock)
    result = DecisionHandler(proposals, store).decide(proposal.id, "trip1", decision)
    assert (result.status, result.message) == (status, message)
    assert _activity_names(store) == ["Louvre", "Walking tour"]
    assert proposal.id not in proposals


def test_unknown_id_is_gone(store, proposals):
    with pytest.raises(ProposalGoneError) as exc:
        DecisionHandler(proposals, store).decide("missing", "trip1", Decision.APPROVE)
    assert exc.value.status_code == 410


def test_expired_is_gone_without_mutation(store, proposals, clock):
    proposal = _put(proposals, clock)
    clock.advance(minutes=3)
    with pytest.raises(ProposalGoneError):
        DecisionHandler(proposals, store).decide(proposal.id, "trip1", Decision.APPROVE)
    assert _activity_names(store) == ["Louvre", "Walking tour"]


def test_trip_mismatch_is_forbidden_before_mutation(store, proposals, clock):
    proposal = _put(proposals, clock, trip_id="trip2")
    with pytest.raises(ProposalForbiddenError) as exc:
        DecisionHandler(proposals, store).decide(proposal.id, "trip1", Decision.APPROVE)
    assert exc.value.status_code == 403
    assert _activity_names(store) == ["Louvre", "Walking tour"]
    assert len(store.find(ACTIVITIES, trip="trip2")) == 1


def test_failed_apply_is_a_mutation_error_and_consumes_the_id(store, proposals, clock):
    proposal = _put(proposals, clock, tool="delete_activity", raw={"record_id": "act_other"})
    handler = DecisionHandler(proposals, store)
    with pytest.raises(MutationError) as exc:
        handler.decide(proposal.id, "trip1", Decision.APPROVE)
    assert exc.value.message.startswith("Unable to apply the change")
    with pytest.raises(ProposalGoneError):
        handler.decide(proposal.id, "trip1", Decision.APPROVE)


def test_store_failure_is_a_mutation_error(store, proposals, clock, monkeypatch):
    proposal = _put(proposals, clock)

    def broken_save(collection, record):
        raise StoreError("disk full")

    monkeypatch.setattr(store, "save", broken_save)
    with pytest.raises(MutationError):
        DecisionHandler(proposals, store).decide(proposal.id, "trip1", Decision.APPROVE)


def test_ttl_boundary(store, proposals, clock):
    proposal = _put(proposals, clock)
    clock.advance(seconds=119)
    result = DecisionHandler(proposals, store).decide(proposal.id, "trip1", Decision.DECLINE)
    assert result.status == "declined"
    assert proposal.expires_at - proposal.created_at == timedelta(minutes=2)

import threading
from datetime import timedelta

from trip_assistant.proposals import Proposal, ProposalStore, summarize_proposal
from trip_assistant.tools import ToolName, parse_tool_arguments


def _proposal(clock, trip_id="trip1", ttl=timedelta(minutes=2)):
    args = parse_tool_arguments(
        "create_activity",
        {"name": "Dinner", "address": "12 Rue X", "start_time": "2024-06-02T19:00:00Z"},
    )
    return Proposal.create(trip_id, ToolName.CREATE_ACTIVITY, args, ttl=ttl, clock=clock)


def test_put_get_pop(proposals, clock):
    proposal = _proposal(clock)
    proposals.put(proposal)
    assert proposal.id in proposals
    assert proposals.get(proposal.id) is proposal
    assert proposals.pop(proposal.id) is proposal
    assert proposals.pop(proposal.id) is None
    assert len(proposals) == 0


def test_unknown_id(proposals):
    assert proposals.get("nope") is None
    assert proposals.pop("nope") is None


def test_expiry_is_lazy(proposals, clock):
    proposal = _proposal(clock)
    proposals.put(proposal)
    clock.advance(minutes=2)
    # still stored until someone looks
    assert len(proposals) == 1
    assert proposals.get(proposal.id) is None
    assert len(proposals) == 0


def test_pop_after_expiry_returns_none_and_removes(proposals, clock):
    proposal = _proposal(clock)
    proposals.put(proposal)
    clock.advance(seconds=121)
    assert proposals.pop(proposal.id) is None
    assert proposal.id not in proposals


def test_expired_boundary(clock):
    proposal = _proposal(clock, ttl=timedelta(seconds=10))
    assert not proposal.expired(clock.now + timedelta(seconds=9))
    assert proposal.expired(clock.now + timedelta(seconds=10))


def test_concurrent_pop_has_single_winner(proposals, clock):
    proposal = _proposal(clock)
    proposals.put(proposal)
    barrier = threading.Barrier(16)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        got = proposals.pop(proposal.id)
        with lock:
            results.append(got)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert winners[0] is proposal


def test_ids_are_unique(clock):
    assert _proposal(clock).id != _proposal(clock).id


def test_to_event(clock):
    event = _proposal(clock).to_event()
    assert event["tool"] == "create_activity"
    assert event["arguments"] == {
        "name": "Dinner", "address": "12 Rue X", "start_time": "2024-06-02T19:00:00Z",
    }
    assert event["summary"] == 'I\'ll add an activity "Dinner" starting 2024-06-02T19:00:00Z.'
    assert event["expiresAt"] == "2024-06-01T12:02:00Z"


def test_summaries(clock):
    cases = [
        ("delete_lodging", {"record_id": "lod1"}, "I'll delete lodging lod1."),
        ("update_transportation", {"record_id": "tr1"}, "I'll update transportation tr1."),
        (
            "create_transportation",
            {"type": "train", "origin": "Paris", "destination": "Lyon", "departure_time": "09:00"},
            "I'll add train from Paris to Lyon departing 09:00.",
        ),
    ]
    for tool, raw, expected in cases:
        proposal = Proposal.create("trip1", ToolName(tool), parse_tool_arguments(tool, raw), clock=clock)
        assert summarize_proposal(proposal) == expected


def test_store_uses_injected_clock(clock):
    store = ProposalStore(clock=clock)
    assert store.clock() == clock.now

import json

import pytest

from walkin_queue.entry import Status
from walkin_queue.manager import QueueManager
from walkin_queue.verification import VerificationClaim, decode_token, encode_token, verify


def make_manager():
    ticks = iter(range(1_700_000_000, 1_800_000_000))
    return QueueManager(clock=lambda: float(next(ticks)))


def test_token_payload_format():
    m = make_manager()
    e = m.add_to_queue("Alice", "5551234567")
    data = json.loads(encode_token(e))
    assert data == {"queueNumber": "Q001", "phone": "5551234567", "timestamp": int(e.joined_at * 1000)}
    assert e.verification_code == encode_token(e)


def test_scanned_ticket_verifies_waiting_entry():
    m = make_manager()
    e = m.add_to_queue("Alice", "5551234567")
    claim = decode_token(e.verification_code)
    assert m.verify(claim).id == e.id


def test_called_entry_still_verifies():
    m = make_manager()
    e = m.add_to_queue("Alice", "5551234567")
    m.call_next()
    assert m.verify(decode_token(e.verification_code)).status is Status.CALLED


@pytest.mark.parametrize("final", ["serving", "completed", "cancelled"])
def test_handled_entries_never_verify(final):
    m = make_manager()
    e = m.add_to_queue("Alice", "5551234567")
    claim = decode_token(e.verification_code)
    m.mark_as_serving(e.id)
    if final == "completed":
        m.complete_service(e.id)
    elif final == "cancelled":
        m.cancel_from_queue(e.id)

    assert m.verify(claim) is None


def test_claim_must_match_both_number_and_phone():
    m = make_manager()
    m.add_to_queue("Alice", "5551234567")
    assert m.verify(VerificationClaim("Q001", "5550000000", 0)) is None
    assert m.verify(VerificationClaim("Q002", "5551234567", 0)) is None
    # The timestamp is carried, not checked.
    assert m.verify(VerificationClaim("Q001", "5551234567", 0)) is not None


def test_verify_accepts_plain_entry_iterables():
    m = make_manager()
    e = m.add_to_queue("Alice", "5551234567")
    assert verify(m.entries(), VerificationClaim("Q001", "5551234567", 0)).id == e.id


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        '{"phone": "5551234567", "timestamp": 1}',
        '{"queueNumber": "X", "phone": "5551234567", "timestamp": 1}',
        '{"queueNumber": "Q001", "timestamp": 1}',
        '{"queueNumber": "Q001", "phone": "5551234567", "timestamp": "soon"}',
        '{"queueNumber": "Q001", "phone": "5551234567", "timestamp": true}',
    ],
)
def test_malformed_tokens_rejected(raw):
    with pytest.raises(ValueError):
        decode_token(raw)

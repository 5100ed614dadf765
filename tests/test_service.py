import pytest

from walkin_queue.manager import MqttQueueManagerService, QueueManager
from walkin_queue.prediction import WaitPrediction
from walkin_queue.verification import encode_token


class FakeMqtt:
    def __init__(self):
        self.published = []
        self.subscriptions = []
        self.handlers = []

    def subscribe(self, topic):
        self.subscriptions.append(topic)

    def add_handler(self, handler):
        self.handlers.append(handler)

    def publish(self, topic, message):
        self.published.append((topic, message))

    def replies(self, topic="t/queue/responses/c1"):
        return [m for t, m in self.published if t == topic]


class InlineExecutor:
    def submit(self, fn, *args):
        fn(*args)

    def shutdown(self, wait=True):
        pass


class FakeAI:
    def predict_wait_time(self, *, queue_size, avg_service_time, served_today):
        self.seen = (queue_size, avg_service_time, served_today)
        return WaitPrediction(predicted_wait_minutes=12, confidence="high", factors=["steady"], recommendation="ok")


def make_service(ai_client=None):
    mqtt = FakeMqtt()
    service = MqttQueueManagerService(
        mqtt=mqtt, namespace="t", manager=QueueManager(), ai_client=ai_client, executor=InlineExecutor()
    )
    return service, mqtt


def send(service, mqtt, message):
    msg = {"corr_id": "abc", "reply_to": "t/queue/responses/c1", **message}
    service._handle_message("t/queue/requests", msg)
    return mqtt.replies()[-1]


def test_join_replies_with_entry_and_broadcasts_snapshot():
    service, mqtt = make_service()
    reply = send(service, mqtt, {"type": "join_queue", "name": " Ada Lovelace ", "phone": "5551234567"})

    assert reply["type"] == "joined"
    assert reply["corr_id"] == "abc"
    assert reply["entry"]["queue_number"] == "Q001"
    assert reply["entry"]["name"] == "Ada Lovelace"
    assert reply["entry"]["position"] == 1

    snapshots = [m for t, m in mqtt.published if t == "t/status/updates"]
    assert snapshots[-1]["stats"]["total_waiting"] == 1


def test_join_rejects_invalid_and_duplicate():
    service, mqtt = make_service()
    bad = send(service, mqtt, {"type": "join_queue", "name": "A1", "phone": "12"})
    assert bad["type"] == "error"
    assert bad["code"] == "validation_failed"

    send(service, mqtt, {"type": "join_queue", "name": "Ada", "phone": "5551234567"})
    dup = send(service, mqtt, {"type": "join_queue", "name": "ada", "phone": "5551234567"})
    assert dup["code"] == "duplicate"


def test_counter_flow_over_mqtt():
    service, mqtt = make_service()
    joined = send(service, mqtt, {"type": "join_queue", "name": "Ada", "phone": "5551234567"})["entry"]

    called = send(service, mqtt, {"type": "call_next"})
    assert called["entry"]["id"] == joined["id"]

    verified = send(service, mqtt, {"type": "verify", "token": joined["verification_code"]})
    assert verified["type"] == "verified"

    assert send(service, mqtt, {"type": "mark_serving", "entry_id": joined["id"]})["entry"]["status"] == "serving"
    assert send(service, mqtt, {"type": "complete", "entry_id": joined["id"]})["entry"]["status"] == "completed"
    assert service.manager.stats().served_today == 1

    again = send(service, mqtt, {"type": "verify", "token": joined["verification_code"]})
    assert again["code"] == "not_found"


def test_invalid_transition_and_missing_ids_become_error_replies():
    service, mqtt = make_service()
    joined = send(service, mqtt, {"type": "join_queue", "name": "Ada", "phone": "5551234567"})["entry"]

    assert send(service, mqtt, {"type": "complete", "entry_id": joined["id"]})["code"] == "invalid_transition"
    assert send(service, mqtt, {"type": "cancel", "entry_id": "missing"})["code"] == "not_found"
    assert send(service, mqtt, {"type": "cancel"})["code"] == "bad_request"
    assert send(service, mqtt, {"type": "verify", "token": "garbage"})["code"] == "validation_failed"
    assert send(service, mqtt, {"type": "bogus"})["code"] == "unknown_type"


def test_second_serving_is_rejected():
    service, mqtt = make_service()
    a = send(service, mqtt, {"type": "join_queue", "name": "Ada", "phone": "5551234567"})["entry"]
    b = send(service, mqtt, {"type": "join_queue", "name": "Bob", "phone": "5550000000"})["entry"]
    send(service, mqtt, {"type": "mark_serving", "entry_id": a["id"]})

    assert send(service, mqtt, {"type": "mark_serving", "entry_id": b["id"]})["code"] == "serving_slot_occupied"


def test_pause_service_time_status_and_search():
    service, mqtt = make_service()
    joined = send(service, mqtt, {"type": "join_queue", "name": "Ada", "phone": "5551234567"})["entry"]

    assert send(service, mqtt, {"type": "toggle_pause"})["is_paused"] is True
    paused = send(service, mqtt, {"type": "call_next"})
    assert paused["entry"] is None and paused["is_paused"] is True

    assert send(service, mqtt, {"type": "set_service_time", "minutes": 0})["code"] == "bad_request"
    send(service, mqtt, {"type": "set_service_time", "minutes": 7})
    status = send(service, mqtt, {"type": "entry_status", "phone": "5551234567"})
    assert status["entry"]["estimated_wait_minutes"] == 7

    results = send(service, mqtt, {"type": "search", "query": "ada"})
    assert [e["id"] for e in results["entries"]] == [joined["id"]]

    left = send(service, mqtt, {"type": "leave_queue", "entry_id": joined["id"]})
    assert left["entry"]["status"] == "cancelled"


def test_messages_without_reply_to_are_ignored():
    service, mqtt = make_service()
    service._handle_message("t/queue/requests", {"type": "join_queue", "name": "Ada", "phone": "5551234567"})
    assert mqtt.published == []
    assert service.manager.entries() == ()


def test_ai_request_without_client_reports_not_configured():
    service, mqtt = make_service()
    reply = send(service, mqtt, {"type": "predict_wait_time"})
    assert reply["code"] == "not_configured"


def test_ai_prediction_uses_current_stats():
    ai = FakeAI()
    service, mqtt = make_service(ai_client=ai)
    send(service, mqtt, {"type": "join_queue", "name": "Ada", "phone": "5551234567"})

    reply = send(service, mqtt, {"type": "predict_wait_time"})
    assert reply["type"] == "wait_prediction"
    assert reply["result"]["predictedWaitMinutes"] == 12
    assert ai.seen == (1, 5.0, 0)


def test_status_loop_pass_notifies_front_of_queue():
    service, mqtt = make_service()
    send(service, mqtt, {"type": "join_queue", "name": "Ada", "phone": "5551234567"})

    sent = service.notifier.run_once()
    assert len(sent) == 1
    notices = [m for t, m in mqtt.published if t.startswith("t/notifications/")]
    assert notices[0]["type"] == "customer_notification"
    assert notices[0]["queue_number"] == "Q001"


def test_token_helper_matches_entry_code():
    service, mqtt = make_service()
    joined = send(service, mqtt, {"type": "join_queue", "name": "Ada", "phone": "5551234567"})["entry"]
    entry = service.manager.get(joined["id"])
    assert joined["verification_code"] == encode_token(entry)


@pytest.mark.parametrize("minutes", [float("nan"), float("inf"), "nan", "-inf"])
def test_non_finite_service_time_is_bad_request(minutes):
    service, mqtt = make_service()
    send(service, mqtt, {"type": "join_queue", "name": "Ada", "phone": "5551234567"})

    reply = send(service, mqtt, {"type": "set_service_time", "minutes": minutes})

    assert reply["code"] == "bad_request"
    status = send(service, mqtt, {"type": "entry_status", "phone": "5551234567"})
    assert status["entry"]["estimated_wait_minutes"] == 5.0
    assert service.manager.stats().average_service_time == 5.0

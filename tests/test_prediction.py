import json
from datetime import datetime

import httpx
import pytest

from walkin_queue.errors import PredictionError
from walkin_queue.prediction import QueueAIClient, parse_model_json


def chat_reply(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def make_client(handler, api_key="test-key"):
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return QueueAIClient(
        api_key=api_key,
        base_url="https://llm.example/v1/",
        model="test-model",
        http_client=http,
        now=lambda: datetime(2024, 1, 1, 12, 30),  # a Monday
    )


def test_predict_wait_time_sends_prompt_and_parses_result():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return chat_reply(
            '{"predictedWaitMinutes": 22, "confidence": "medium", '
            '"factors": ["lunch rush", "4 waiting"], "recommendation": "Come back at 1pm"}'
        )

    result = make_client(handler).predict_wait_time(queue_size=4, avg_service_time=5, served_today=12)

    assert seen["url"] == "https://llm.example/v1/chat/completions"
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["model"] == "test-model"
    system, user = seen["body"]["messages"]
    assert system["role"] == "system"
    assert "Current queue size: 4" in user["content"]
    assert "People served today: 12" in user["content"]
    assert "Monday" in user["content"]

    assert result.predicted_wait_minutes == 22
    assert result.confidence == "medium"
    assert result.factors == ["lunch rush", "4 waiting"]
    assert result.to_message()["recommendation"] == "Come back at 1pm"


def test_optimize_queue_strips_code_fences():
    content = (
        "```json\n"
        '{"suggestions": [{"title": "Open a second desk", "description": "Queue is long", "impact": "high"}],'
        ' "peakHours": ["12:00", "17:00"], "staffingRecommendation": "Add one person"}\n'
        "```"
    )
    result = make_client(lambda request: chat_reply(content)).optimize_queue(
        total_waiting=9, served_today=30, avg_service_time=5
    )

    assert result.suggestions[0].title == "Open a second desk"
    assert result.suggestions[0].impact == "high"
    assert result.peak_hours == ["12:00", "17:00"]
    assert result.to_message()["staffingRecommendation"] == "Add one person"


def test_customer_insights():
    result = make_client(
        lambda request: chat_reply('{"message": "Almost there!", "tip": "Have your ticket ready", "funFact": "Queues are old"}')
    ).customer_insights(position=2, estimated_wait=10)
    assert result.to_message() == {"message": "Almost there!", "tip": "Have your ticket ready", "funFact": "Queues are old"}


@pytest.mark.parametrize(
    "status,code",
    [(429, "rate_limited"), (402, "quota_exhausted"), (500, "upstream_error"), (401, "upstream_error")],
)
def test_http_failures_map_to_codes(status, code):
    client = make_client(lambda request: httpx.Response(status, json={"error": "nope"}))
    with pytest.raises(PredictionError) as exc:
        client.predict_wait_time(queue_size=1, avg_service_time=5, served_today=0)
    assert exc.value.code == code


def test_transport_error_is_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PredictionError) as exc:
        make_client(handler).optimize_queue(total_waiting=1, served_today=0, avg_service_time=5)
    assert exc.value.code == "upstream_error"


def test_unparseable_answer_is_malformed():
    with pytest.raises(PredictionError) as exc:
        make_client(lambda request: chat_reply("I think about 10 minutes")).customer_insights(
            position=1, estimated_wait=5
        )
    assert exc.value.code == "malformed_response"


def test_unexpected_payload_is_malformed():
    client = make_client(lambda request: httpx.Response(200, json={"nothing": []}))
    with pytest.raises(PredictionError) as exc:
        client.customer_insights(position=1, estimated_wait=5)
    assert exc.value.code == "malformed_response"


def test_missing_key_makes_no_request():
    calls = []

    def handler(request):
        calls.append(request)
        return chat_reply("{}")

    client = make_client(handler, api_key=None)
    assert not client.configured
    with pytest.raises(PredictionError) as exc:
        client.predict_wait_time(queue_size=1, avg_service_time=5, served_today=0)
    assert exc.value.code == "not_configured"
    assert calls == []


def test_parse_model_json_rejects_non_objects():
    with pytest.raises(PredictionError):
        parse_model_json("[1, 2, 3]")
    with pytest.raises(PredictionError):
        parse_model_json(None)
    assert parse_model_json("```\n{\"a\": 1}\n```") == {"a": 1}


def test_from_env(monkeypatch):
    monkeypatch.setenv("QUEUE_AI_API_KEY", "k")
    monkeypatch.setenv("QUEUE_AI_MODEL", "m")
    monkeypatch.delenv("QUEUE_AI_BASE_URL", raising=False)
    client = QueueAIClient.from_env()
    try:
        assert client.configured
        assert client.model == "m"
        assert client.base_url == "https://ai.gateway.lovable.dev/v1"
    finally:
        client.close()

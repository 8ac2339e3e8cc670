from unittest.mock import MagicMock

import pytest
import requests

from app.errors import InferenceError, PodControlError
from app.inference import InferenceClient
from app.pod_control import POD_QUERY, START_MUTATION, STOP_MUTATION, RunPodClient


def _response(status=200, body=None, text=""):
    r = MagicMock()
    r.ok = 200 <= status < 300
    r.status_code = status
    r.json.return_value = body if body is not None else {}
    r.text = text
    return r


def _runpod(response):
    client = RunPodClient(api_key="key", pod_id="pod-1", api_url="https://runpod.test/graphql")
    client.session = MagicMock()
    client.session.post.return_value = response
    return client


def test_describe_returns_pod():
    pod = {"id": "pod-1", "desiredStatus": "EXITED", "runtime": None}
    client = _runpod(_response(body={"data": {"pod": pod}}))

    assert client.describe() == pod

    _, kwargs = client.session.post.call_args
    assert kwargs["json"] == {"query": POD_QUERY, "variables": {"id": "pod-1"}}
    assert kwargs["headers"]["Authorization"] == "Bearer key"


@pytest.mark.parametrize("method,query", [("start", START_MUTATION), ("stop", STOP_MUTATION)])
def test_start_and_stop_send_mutations(method, query):
    client = _runpod(_response(body={"data": {"ok": True}}))
    getattr(client, method)()
    assert client.session.post.call_args.kwargs["json"]["query"] == query


def test_graphql_errors_raise():
    client = _runpod(_response(body={"errors": [{"message": "pod not found"}]}))
    with pytest.raises(PodControlError, match="pod not found"):
        client.describe()


def test_http_error_raises():
    client = _runpod(_response(status=500, body={"message": "down"}))
    with pytest.raises(PodControlError):
        client.stop()


def test_transport_error_raises():
    client = _runpod(None)
    client.session.post.side_effect = requests.ConnectionError("refused")
    with pytest.raises(PodControlError, match="refused"):
        client.describe()


def test_missing_credentials_raise_before_any_request():
    client = RunPodClient(api_key="", pod_id="pod-1")
    client.session = MagicMock()
    with pytest.raises(PodControlError, match="RUNPOD_API_KEY"):
        client.describe()
    client.session.post.assert_not_called()


def test_inference_posts_non_streaming_chat():
    client = InferenceClient(base_url="http://pod.test/", model="local-model")
    client.session = MagicMock()
    client.session.post.return_value = _response(body={"choices": [], "usage": {}})

    client.chat([{"role": "user", "content": "hi"}], temperature=0.3)

    args, kwargs = client.session.post.call_args
    assert args[0] == "http://pod.test/v1/chat/completions"
    assert kwargs["json"] == {
        "model": "local-model",
        "messages": [{"role": "user", "content": "hi"}],
        "temperature": 0.3,
        "stream": False,
    }


def test_inference_non_success_raises_with_body():
    client = InferenceClient(base_url="http://pod.test")
    client.session = MagicMock()
    client.session.post.return_value = _response(status=503, text='{"error":"loading model"}')

    with pytest.raises(InferenceError, match="loading model"):
        client.chat([], temperature=0.7)


@pytest.mark.parametrize("body", [None, ["not", "an", "object"], "oops"])
def test_non_object_body_raises(body):
    response = _response()
    response.json.return_value = body
    client = _runpod(response)
    with pytest.raises(PodControlError, match="unexpected body"):
        client.describe()

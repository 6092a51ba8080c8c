import httpx
import pytest

from chat_core.providers.perplexity_client import PerplexityClient
from chat_core.domain.models import ChatMessage, CompletionOptions
from chat_core.domain.exceptions import ApiError, ConfigurationError, InternalError, NetworkError, ValidationError


class SettingsStub:
    perplexity_api_key = "pplx-test-key"
    http_timeout = 1.0
    perplexity_base_url = "https://api.perplexity.ai"
    default_model = "sonar"


class Resp:
    def __init__(self, status_code=200, data=None, reason_phrase="OK"):
        self.status_code = status_code
        self.reason_phrase = reason_phrase
        self._data = data if data is not None else {}

    def json(self):
        return self._data


def install_client(monkeypatch, resp=None, error=None):
    """用假的 httpx.Client 替换真实客户端，记录每次请求。"""

    captured = {"posts": [], "gets": [], "init": []}

    class Client:
        def __init__(self, *a, **kw):
            captured["init"].append(kw)

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            captured["posts"].append({"url": url, "json": json, "headers": headers})
            if error is not None:
                raise error
            return resp

        def get(self, url, headers=None, **_):
            captured["gets"].append({"url": url, "headers": headers})
            if error is not None:
                raise error
            return resp

    monkeypatch.setattr("httpx.Client", Client)
    return captured


def answer(content):
    return Resp(data={
        "id": "r1",
        "model": "sonar",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 5, "completion_tokens": 1, "total_tokens": 6},
    })


def test_ask_returns_first_choice_content(monkeypatch):
    captured = install_client(monkeypatch, answer("Paris"))
    client = PerplexityClient(SettingsStub())
    assert client.ask("What is the capital of France?") == "Paris"

    payload = captured["posts"][0]["json"]
    assert captured["posts"][0]["url"] == "https://api.perplexity.ai/chat/completions"
    assert payload["messages"] == [{"role": "user", "content": "What is the capital of France?"}]
    assert payload["model"] == "sonar"
    assert payload["max_tokens"] == 1000
    assert payload["temperature"] == 0.2
    assert payload["stream"] is False
    assert captured["posts"][0]["headers"]["Authorization"] == "Bearer pplx-test-key"
    assert captured["init"][0]["timeout"] == 1.0


def test_complete_parses_usage_and_raw(monkeypatch):
    install_client(monkeypatch, answer("ok"))
    client = PerplexityClient(SettingsStub())
    res = client.complete([ChatMessage(role="user", content="hi")])
    assert res.text == "ok"
    assert res.has_choices
    assert res.usage.total_tokens == 6
    assert res.raw["id"] == "r1"


def test_empty_choices_returns_sentinel(monkeypatch):
    install_client(monkeypatch, Resp(data={"choices": [], "usage": {}}))
    client = PerplexityClient(SettingsStub())
    assert client.ask("hello?") == "No response received"
    res = client.complete([ChatMessage(role="user", content="hi")])
    assert res.has_choices is False
    assert res.usage is None


@pytest.mark.parametrize(
    "data",
    [
        [{"message": {"content": "hi"}}],
        {"choices": ["oops"]},
        {"choices": {"message": "hi"}},
        {"choices": [{"message": "hi"}]},
        {"choices": [{"message": {"content": ["hi"]}}]},
    ],
)
def test_malformed_response_is_internal_error(monkeypatch, data):
    install_client(monkeypatch, Resp(data=data))
    client = PerplexityClient(SettingsStub())
    with pytest.raises(InternalError) as exc:
        client.ask("hello?")
    assert exc.value.code == "REQUEST_ERROR"
    assert exc.value.message == "Request Error: unexpected response format"
    assert exc.value.http_status == 500


def test_ask_with_context_appends_single_user_turn(monkeypatch):
    captured = install_client(monkeypatch, answer("Neural networks are..."))
    client = PerplexityClient(SettingsStub())
    prior = [
        ChatMessage(role="user", content="Hi, I want to learn about AI"),
        ChatMessage(role="assistant", content="I'd be happy to help!"),
    ]
    text = client.ask_with_context("What are neural networks?", prior)

    assert text == "Neural networks are..."
    assert captured["posts"][0]["json"]["messages"] == [
        {"role": "user", "content": "Hi, I want to learn about AI"},
        {"role": "assistant", "content": "I'd be happy to help!"},
        {"role": "user", "content": "What are neural networks?"},
    ]
    # 调用方的列表不会被修改
    assert len(prior) == 2


def test_options_and_passthrough_fields(monkeypatch):
    captured = install_client(monkeypatch, answer("ok"))
    client = PerplexityClient(SettingsStub())
    opts = CompletionOptions.from_mapping({
        "model": "sonar-pro",
        "max_tokens": 300,
        "temperature": 0.7,
        "top_p": 0.9,
        "stream": True,
        "messages": [{"role": "user", "content": "injected"}],
    })
    client.ask("hi", opts)

    payload = captured["posts"][0]["json"]
    assert payload["model"] == "sonar-pro"
    assert payload["max_tokens"] == 300
    assert payload["temperature"] == 0.7
    assert payload["top_p"] == 0.9
    assert payload["stream"] is False
    assert payload["messages"] == [{"role": "user", "content": "hi"}]


def test_temperature_is_not_clamped(monkeypatch):
    captured = install_client(monkeypatch, answer("ok"))
    client = PerplexityClient(SettingsStub())
    client.ask("hi", CompletionOptions(temperature=3.5))
    assert captured["posts"][0]["json"]["temperature"] == 3.5


def test_validation_happens_before_network(monkeypatch):
    captured = install_client(monkeypatch, answer("ok"))
    client = PerplexityClient(SettingsStub())
    with pytest.raises(ValidationError):
        client.complete([])
    with pytest.raises(ValidationError):
        client.ask("hi", CompletionOptions(max_tokens=0))
    assert captured["posts"] == []


def test_upstream_error_names_status_and_reason(monkeypatch):
    install_client(monkeypatch, Resp(401, {"error": {"message": "Invalid API key"}}, "Unauthorized"))
    client = PerplexityClient(SettingsStub())
    with pytest.raises(ApiError) as exc:
        client.ask("hi")
    assert exc.value.message == "Perplexity API Error 401 (Unauthorized): Invalid API key"
    assert exc.value.extra["status"] == 401


def test_upstream_error_falls_back_to_top_level_message(monkeypatch):
    install_client(monkeypatch, Resp(500, {"message": "overloaded"}, "Internal Server Error"))
    client = PerplexityClient(SettingsStub())
    with pytest.raises(ApiError) as exc:
        client.ask("hi")
    assert "500" in exc.value.message
    assert exc.value.message.endswith("overloaded")


def test_network_error_is_distinct(monkeypatch):
    install_client(monkeypatch, error=httpx.ConnectError("connection refused"))
    client = PerplexityClient(SettingsStub())
    with pytest.raises(NetworkError) as exc:
        client.ask("hi")
    assert "No response from Perplexity API" in exc.value.message
    assert not isinstance(exc.value, ApiError)


def test_timeout_is_reported_as_network_error(monkeypatch):
    captured = install_client(monkeypatch, error=httpx.ReadTimeout("timed out"))
    client = PerplexityClient(SettingsStub())
    with pytest.raises(NetworkError):
        client.ask("hi")
    # 不自动重试
    assert len(captured["posts"]) == 1


def test_missing_api_key_is_configuration_error():
    class NoKey(SettingsStub):
        perplexity_api_key = None

    with pytest.raises(ConfigurationError):
        PerplexityClient(NoKey())


def test_list_models_passthrough(monkeypatch):
    captured = install_client(monkeypatch, Resp(data={"data": [{"id": "sonar"}, {"id": "sonar-pro"}]}))
    client = PerplexityClient(SettingsStub())
    models = client.list_models()
    assert [m["id"] for m in models["data"]] == ["sonar", "sonar-pro"]
    assert captured["gets"][0]["url"] == "https://api.perplexity.ai/models"


def test_masked_key_and_rotation(monkeypatch):
    captured = install_client(monkeypatch, answer("ok"))
    client = PerplexityClient(SettingsStub())
    assert client.masked_api_key == "pplx-tes*****"

    client.set_api_key("pplx-rotated-key")
    client.ask("hi")
    assert captured["posts"][0]["headers"]["Authorization"] == "Bearer pplx-rotated-key"
    with pytest.raises(ValidationError):
        client.set_api_key("")


def test_independent_clients_keep_their_own_keys(monkeypatch):
    captured = install_client(monkeypatch, answer("ok"))

    class Other(SettingsStub):
        perplexity_api_key = "pplx-other-key"

    PerplexityClient(SettingsStub()).ask("a")
    PerplexityClient(Other()).ask("b")
    auth = [p["headers"]["Authorization"] for p in captured["posts"]]
    assert auth == ["Bearer pplx-test-key", "Bearer pplx-other-key"]

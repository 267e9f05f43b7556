import importlib
from unittest import mock

import pytest
import requests

from astra_streams import Category, Stream


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for key in ["ASTRA_ADDR", "ASTRA_USER", "ASTRA_PASS"]:
        monkeypatch.delenv(key, raising=False)


def _reload_api_utils():
    import api_utils

    return importlib.reload(api_utils)


def _response(status_code=200, payload=None):
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status_code} error")
    else:
        response.raise_for_status.return_value = None
    return response


def test_astra_api_reads_environment(monkeypatch):
    monkeypatch.setenv("ASTRA_ADDR", "http://astra:8000/")
    monkeypatch.setenv("ASTRA_USER", "admin")
    monkeypatch.setenv("ASTRA_PASS", "secret")

    api_utils = _reload_api_utils()
    api = api_utils.AstraAPI()

    assert api.base_url == "http://astra:8000"
    assert api.username == "admin"
    assert api.password == "secret"


def test_astra_api_arguments_override_environment(monkeypatch):
    monkeypatch.setenv("ASTRA_ADDR", "http://astra:8000")

    api_utils = _reload_api_utils()
    api = api_utils.AstraAPI("http://other:9000", "u", "p")

    assert api.base_url == "http://other:9000"
    assert api._auth() == ("u", "p")


def test_astra_api_requires_address():
    api_utils = _reload_api_utils()

    with pytest.raises(ValueError):
        api_utils.AstraAPI()


def test_fetch_config_posts_load_command():
    api_utils = _reload_api_utils()
    api = api_utils.AstraAPI("http://astra:8000", "admin", "secret")
    payload = {"categories": [], "make_stream": [{"id": "a", "name": "A", "enable": True, "input": ["x"]}]}

    with mock.patch("api_utils.requests.post", return_value=_response(payload=payload)) as post:
        cfg = api.fetch_config()

    assert cfg.streams[0].inputs == ["x"]
    args, kwargs = post.call_args
    assert args[0] == "http://astra:8000/control/"
    assert kwargs["json"] == {"cmd": "load"}
    assert kwargs["auth"] == ("admin", "secret")


def test_set_stream_and_remove_stream_payloads():
    api_utils = _reload_api_utils()
    api = api_utils.AstraAPI("http://astra:8000")
    stream = Stream(id="a001", name="A", enabled=True, type="spts", inputs=["x"])

    with mock.patch("api_utils.requests.post", return_value=_response(payload={"set-stream": "ok"})) as post:
        api.set_stream(stream)
        api.remove_stream(stream)

    first, second = post.call_args_list
    assert first.kwargs["json"] == {"cmd": "set-stream", "id": "a001", "stream": stream.to_dict()}
    assert second.kwargs["json"]["stream"]["remove"] is True
    assert first.kwargs["auth"] is None


def test_set_category_omits_id_for_new_category():
    api_utils = _reload_api_utils()
    api = api_utils.AstraAPI("http://astra:8000")
    category = Category(name="All")

    with mock.patch("api_utils.requests.post", return_value=_response(payload={"set-category": "ok"})) as post:
        api.set_category(-1, category)
        api.set_category(2, category)

    first, second = post.call_args_list
    assert "id" not in first.kwargs["json"]
    assert second.kwargs["json"]["id"] == 2


def test_auth_failure_raises_auth_error():
    api_utils = _reload_api_utils()
    api = api_utils.AstraAPI("http://astra:8000")

    with mock.patch("api_utils.requests.post", return_value=_response(status_code=401)):
        with pytest.raises(api_utils.AstraAuthError):
            api.fetch_config()


def test_connection_failure_is_wrapped():
    api_utils = _reload_api_utils()
    api = api_utils.AstraAPI("http://astra:8000")

    with mock.patch("api_utils.requests.post", side_effect=requests.exceptions.ConnectionError("down")):
        with pytest.raises(api_utils.AstraConnectionError):
            api.fetch_config()


def test_rejected_command_raises_api_error():
    api_utils = _reload_api_utils()
    api = api_utils.AstraAPI("http://astra:8000")

    with mock.patch("api_utils.requests.post", return_value=_response(payload={"error": "bad stream"})):
        with pytest.raises(api_utils.AstraAPIError):
            api.set_stream(Stream(id="a"))


def test_set_streams_continues_after_failure():
    api_utils = _reload_api_utils()
    api = api_utils.AstraAPI("http://astra:8000")
    responses = [_response(status_code=500), _response(payload={"set-stream": "ok"})]

    with mock.patch("api_utils.requests.post", side_effect=responses) as post:
        failed = api.set_streams([Stream(id="a"), Stream(id="b")])

    assert failed == 1
    assert post.call_count == 2

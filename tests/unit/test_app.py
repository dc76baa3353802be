"""
Unit tests for JsonHTTP registration and socket-free dispatch.
"""

import dataclasses
import json
import signal

import pytest
from pydantic import BaseModel

from jsonhttp import (
    ConfigError,
    FileLogger,
    JsonHTTP,
    Level,
    Request,
    RequestForm,
    RequestGet,
    ResponseFile,
    ResponseRedirect,
    ServerConfig,
    Shape,
    TransientFailure,
    bad_request,
    echo,
    success,
)
from jsonhttp.http import HTTPResponse, json_response

from conftest import json_request, make_request, multipart_request


class HiQuery(BaseModel):
    hi: str = ""


@pytest.fixture
def app(recording_logger) -> JsonHTTP:
    return JsonHTTP(ServerConfig(max_tries=2), logger=recording_logger)


class TestRegistration:

    def test_registration_records_shape(self, app):
        app.handle("/echo", echo)
        app.handle_get_redirect("/go", lambda req: ResponseRedirect("/x"))

        assert [(r.pattern, r.shape) for r in app.registrations] == [
            ("/echo", Shape.JSON),
            ("/go", Shape.GET_REDIRECT),
        ]

    def test_decorator_returns_handler(self, app):
        @app.handle("/hi")
        def hi(req: Request):
            return success("hi")

        assert callable(hi)
        assert app.registrations[0].handler is hi

    def test_duplicate_pattern_rejected(self, app):
        app.handle("/hi", echo)
        with pytest.raises(ValueError):
            app.handle_get("/hi", echo)

    def test_registration_is_frozen(self, app):
        app.handle("/echo", echo)
        with pytest.raises(dataclasses.FrozenInstanceError):
            app.registrations[0].pattern = "/other"


class TestDispatch:
    """JsonHTTP.dispatch() routes one request through the full stack."""

    def test_json_shape(self, app):
        @app.handle("/hi")
        def hi(req: Request):
            name = req.unmarshal().get("name")
            if not name:
                bad_request("name is empty")
            return success({"message": f"hello, {name}!"})

        ok = app.dispatch(json_request("/hi", {"name": "imchuncai"}))
        bad = app.dispatch(json_request("/hi", {"name": ""}))

        assert ok.body == b'{"success":true,"code":0,"data":{"message":"hello, imchuncai!"}}'
        assert bad.status == 400
        assert bad.body == b""

    def test_get_shape(self, app):
        @app.handle_get("/hi/query")
        def hi_query(req: RequestGet):
            return success(req.unmarshal(HiQuery).hi)

        response = app.dispatch(make_request("GET", "/hi/query", query="hi=hello_world"))

        assert response.body == b'{"success":true,"code":0,"data":"hello_world"}'

    def test_get_redirect_shape(self, app):
        app.handle_get_redirect("/go", lambda req: ResponseRedirect("https://example.com", 307))

        response = app.dispatch(make_request("GET", "/go"))

        assert response.status == 307
        assert response.headers["Location"] == "https://example.com"

    def test_file_shapes(self, app):
        app.handle_file("/file", lambda req: ResponseFile("a.txt", req.data))
        app.handle_get_file("/get-file", lambda req: ResponseFile("b.txt", req.raw_query.encode()))

        posted = app.dispatch(make_request("POST", "/file", body=b"payload"))
        fetched = app.dispatch(make_request("GET", "/get-file", query="x=1"))

        assert posted.body == b"payload"
        assert posted.headers["Content-Disposition"] == "attachment; filename=a.txt"
        assert fetched.body == b"x=1"

    def test_form_shapes(self, app):
        @app.handle_form("/form")
        def form(req: RequestForm):
            return success(req.data.get("name"))

        @app.handle_form_file("/form-file")
        def form_file(req: RequestForm):
            return ResponseFile("name.txt", req.data.get("name").encode())

        def post(path):
            return multipart_request(("name", "imchuncai"), path=path)

        assert json.loads(app.dispatch(post("/form")).body)["data"] == "imchuncai"
        assert app.dispatch(post("/form-file")).body == b"imchuncai"

    def test_urlencoded_form_is_500(self, app):
        calls = []
        app.handle_form("/form", lambda req: calls.append(req) or success())

        response = app.dispatch(make_request(
            "POST",
            "/form",
            body=b"name=imchuncai",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        ))

        assert response.status == 500
        assert calls == []

    def test_uploaded_files_closed_after_response(self, app):
        seen = []

        @app.handle_form("/upload")
        def upload(req: RequestForm):
            seen.append(req.data.file("blob"))
            return success(seen[0].size)

        response = app.dispatch(multipart_request(("blob", "b.bin", b"\x00\x01")))

        assert json.loads(response.body)["data"] == 2
        assert seen[0].file.closed

    def test_unparseable_form_is_500(self, app):
        app.handle_form("/form", lambda req: success())

        response = app.dispatch(json_request("/form", {"a": 1}))

        assert response.status == 500
        assert recording_levels(app) == [Level.ERROR]

    def test_shape_mismatch_is_500(self, app):
        app.handle_get_redirect("/go", lambda req: success("not a redirect"))
        assert app.dispatch(make_request("GET", "/go")).status == 500

    def test_origin_is_not_wrapped(self, app):
        def raw(request) -> HTTPResponse:
            return json_response({"raw": request.path}, 201)

        app.handle_origin("/raw", raw)
        response = app.dispatch(make_request("GET", "/raw"))

        assert response.status == 201
        assert json.loads(response.body) == {"raw": "/raw"}

    def test_origin_exception_becomes_500(self, app):
        def raw(request):
            raise RuntimeError("boom")

        app.handle_origin("/raw", raw)
        assert app.dispatch(make_request("GET", "/raw")).status == 500

    def test_unknown_path_is_404(self, app):
        assert app.dispatch(make_request("GET", "/nowhere")).status == 404

    def test_busy_after_budget(self, app):
        calls = []

        @app.handle("/busy")
        def busy(req):
            calls.append(1)
            raise TransientFailure()

        response = app.dispatch(json_request("/busy", {}))

        assert len(calls) == 2
        assert response.status == 200
        assert response.body == b'{"ok":false,"msg":"Server is busy, please try later!"}'


def recording_levels(app):
    return app.dispatcher.logger.levels()


class TestConstruction:

    @pytest.mark.parametrize("max_tries", [0, -1])
    def test_non_positive_max_tries_rejected(self, max_tries):
        with pytest.raises(ConfigError, match="max_tries"):
            JsonHTTP(ServerConfig(max_tries=max_tries))

    def test_log_dir_selects_file_logger(self, tmp_path, monkeypatch):
        monkeypatch.setenv("JSONHTTP_LOG_DIR", str(tmp_path))
        app = JsonHTTP(ServerConfig.from_env())
        app.handle("/boom", raising_handler)

        try:
            assert isinstance(app.dispatcher.logger, FileLogger)
            assert app.dispatch(json_request("/boom", {})).status == 500
        finally:
            app.dispatcher.logger.close()

        (log_file,) = tmp_path.iterdir()
        assert "[ERROR] POST /boom RuntimeError: boom" in log_file.read_text()

    def test_explicit_logger_wins_over_log_dir(self, tmp_path, recording_logger):
        app = JsonHTTP(ServerConfig(log_dir=str(tmp_path)), logger=recording_logger)

        assert app.dispatcher.logger is recording_logger
        assert list(tmp_path.iterdir()) == []


def raising_handler(req):
    raise RuntimeError("boom")


class TestListen:

    def test_non_positive_max_tries_fails_before_binding(self, app):
        with pytest.raises(ConfigError):
            app.listen("127.0.0.1:0", max_tries=0)
        assert app._server is None
        assert app.config.max_tries == 2

    def test_bad_address(self, app):
        with pytest.raises(ConfigError):
            app.listen("no-port-here")

    def test_signal_handlers_installed(self, app, monkeypatch):
        installed = {}
        monkeypatch.setattr(signal, "signal", lambda signum, fn: installed.setdefault(signum, fn))

        app._install_signal_handlers()

        assert signal.SIGINT in installed
        assert signal.SIGTERM in installed
        for fn in installed.values():
            assert fn == app._on_signal

    def test_signal_logs_and_exits_5(self, app, recording_logger):
        with pytest.raises(SystemExit) as exc_info:
            app._on_signal(signal.SIGTERM, None)

        assert exc_info.value.code == 5
        assert "SIGTERM" in recording_logger.text()

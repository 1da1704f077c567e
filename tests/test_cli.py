"""Tests for the command-line interface.

WHY: The CLI is how people actually use this. Exit codes, which stream
gets the JSON, and what lands in --out / --text-out are its contract.

HOW: main(argv) is called in-process. The pipeline's AsrClient is
replaced with one wired to a ScriptedBackend, so no request leaves the
test. Share resolution is patched at the CLI module level.

RULES:
- Credentials are passed on the command line; VOLC_* env vars are cleared
- JSON output is validated against the result schema
"""

from __future__ import annotations

import functools
import json
from pathlib import Path

import httpx
import jsonschema
import pytest

from conftest import COMPLETE, IN_PROGRESS, TEST_ENDPOINTS, vendor_response
from douyin_transcriber import cli, pipeline
from douyin_transcriber.asr.client import AsrClient
from douyin_transcriber.asr.models import (
    Outcome,
    Stage,
    TranscriptionMode,
    TranscriptionResult,
)
from douyin_transcriber.errors import ShareParseError
from douyin_transcriber.share import ShareInfo

_SCHEMA = json.loads(
    (
        Path(__file__).resolve().parent.parent
        / "douyin_transcriber" / "asr" / "result_schema.json"
    ).read_text(encoding="utf-8")
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("VOLC_APP_KEY", "VOLC_ACCESS_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"fake audio")
    return path


@pytest.fixture
def wire(monkeypatch, backend, clock):
    """Point the pipeline's AsrClient at the scripted backend."""
    monkeypatch.setattr(
        pipeline,
        "AsrClient",
        functools.partial(
            AsrClient,
            endpoints=TEST_ENDPOINTS,
            transport=httpx.MockTransport(backend),
            sleep=clock.sleep,
            clock=clock,
        ),
    )
    return backend


def _flash_args(audio_file, *extra):
    return [
        "transcribe", str(audio_file),
        "--mode", "flash",
        "--app-key", "app-1",
        "--access-key", "acc-1",
        *extra,
    ]


class TestTranscribeCommand:
    def test_success_prints_json_and_writes_files(self, wire, audio_file, tmp_path, capsys):
        wire.on("flash", vendor_response(200, {"result": {"text": "你好"}}, code=COMPLETE))
        out = tmp_path / "out" / "result.json"
        text_out = tmp_path / "out" / "result.txt"

        code = cli.main(_flash_args(audio_file, "--out", str(out), "--text-out", str(text_out)))

        assert code == 0
        captured = capsys.readouterr()
        printed = json.loads(captured.out)
        jsonschema.validate(printed, _SCHEMA)
        assert printed["status"] == "success"
        assert printed["result_text"] == "你好"
        assert json.loads(out.read_text(encoding="utf-8")) == printed
        assert text_out.read_text(encoding="utf-8") == "你好"

    def test_error_result_goes_to_stderr(self, wire, audio_file, capsys):
        wire.on("flash", vendor_response(401, {"error": "denied"}, message="denied"))

        code = cli.main(_flash_args(audio_file))

        assert code == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        printed = json.loads(captured.err[captured.err.index("{"):])
        assert printed["status"] == "error"
        assert printed["http_status"] == 401
        assert printed["stage"] == "flash"

    def test_error_result_still_written(self, wire, audio_file, tmp_path):
        wire.on("flash", vendor_response(500, text="nope"))
        out = tmp_path / "r.json"
        text_out = tmp_path / "r.txt"

        code = cli.main(_flash_args(audio_file, "--out", str(out), "--text-out", str(text_out)))

        assert code == 1
        assert json.loads(out.read_text(encoding="utf-8"))["result"] == {"raw": "nope"}
        assert text_out.read_text(encoding="utf-8") == ""

    def test_standard_mode_polls(self, wire, audio_file, capsys):
        wire.on("submit", vendor_response(200, {}))
        wire.on(
            "query",
            vendor_response(200, {}, code=IN_PROGRESS),
            vendor_response(200, {"result": {"text": "done"}}, code=COMPLETE),
        )

        code = cli.main([
            "transcribe", str(audio_file),
            "--resource-id", "volc.seedasr.auc",
            "--app-key", "app-1",
            "--poll-interval-ms", "500",
        ])

        assert code == 0
        printed = json.loads(capsys.readouterr().out)
        assert printed["mode"] == "standard"
        assert printed["stage"] == "query"
        assert len(wire.calls_to("query")) == 2

    def test_missing_file(self, wire, tmp_path, capsys):
        code = cli.main(_flash_args(tmp_path / "missing.mp4"))

        assert code == 1
        assert "File not found" in capsys.readouterr().err
        assert wire.calls == []

    def test_missing_access_key_for_flash(self, wire, audio_file, capsys):
        code = cli.main(["transcribe", str(audio_file), "--mode", "flash", "--app-key", "a"])

        assert code == 1
        assert "access key" in capsys.readouterr().err
        assert wire.calls == []

    def test_missing_app_key(self, wire, audio_file, capsys):
        code = cli.main(["transcribe", str(audio_file), "--mode", "standard"])

        assert code == 1
        assert "app key" in capsys.readouterr().err
        assert wire.calls == []

    def test_invalid_mode_is_usage_error(self, audio_file):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["transcribe", str(audio_file), "--mode", "turbo"])
        assert excinfo.value.code == 2


def _share_info() -> ShareInfo:
    return ShareInfo(
        video_id="42",
        title="clip",
        download_url="https://cdn.test/play/42.mp4",
        raw_url="https://cdn.test/playwm/42.mp4",
        share_url="https://v.douyin.com/x/",
        redirected_url="https://www.iesdouyin.com/share/video/42/",
        page_url="https://www.iesdouyin.com/share/video/42",
    )


def _result(text: str, outcome: Outcome = Outcome.SUCCESS) -> TranscriptionResult:
    return TranscriptionResult(
        outcome=outcome,
        mode=TranscriptionMode.FLASH,
        stage=Stage.FLASH,
        request_id="rid",
        http_status=200 if outcome is Outcome.SUCCESS else 500,
        result_text=text,
    )


class TestShareCommand:
    def test_prints_only_text(self, monkeypatch, tmp_path, capsys):
        captured_kwargs = {}

        async def fake_resolve(text):
            return _share_info()

        async def fake_download(url, path, on_progress=None):
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            Path(path).write_bytes(b"video")
            return Path(path)

        async def fake_transcribe(path, on_status=None, **kwargs):
            captured_kwargs.update(kwargs, path=path)
            return _result("transcript text")

        monkeypatch.setattr(pipeline, "resolve_share", fake_resolve)
        monkeypatch.setattr(pipeline, "download_file", fake_download)
        monkeypatch.setattr(pipeline, "transcribe_file", fake_transcribe)

        code = cli.main([
            "share", "look https://v.douyin.com/x/ now",
            "--output-dir", str(tmp_path),
            "--app-key", "app-1",
            "--mode", "standard",
        ])

        assert code == 0
        assert capsys.readouterr().out == "transcript text\n"
        assert captured_kwargs["path"] == tmp_path / "clip.mp4"
        assert captured_kwargs["mode"] == "standard"
        assert captured_kwargs["app_key"] == "app-1"

    def test_no_text_is_error(self, monkeypatch, tmp_path, capsys):
        async def fake_resolve(text):
            return _share_info()

        async def fake_download(url, path, on_progress=None):
            return Path(path)

        async def fake_transcribe(path, on_status=None, **kwargs):
            return _result("", Outcome.ERROR)

        monkeypatch.setattr(pipeline, "resolve_share", fake_resolve)
        monkeypatch.setattr(pipeline, "download_file", fake_download)
        monkeypatch.setattr(pipeline, "transcribe_file", fake_transcribe)

        code = cli.main([
            "share", "https://v.douyin.com/x/",
            "--output-dir", str(tmp_path),
            "--app-key", "app-1",
        ])

        assert code == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "without any text" in captured.err

    def test_defaults_need_only_app_key(self, monkeypatch, tmp_path, capsys):
        captured_kwargs = {}

        async def fake_resolve(text):
            return _share_info()

        async def fake_download(url, path, on_progress=None):
            return Path(path)

        async def fake_transcribe(path, on_status=None, **kwargs):
            captured_kwargs.update(kwargs)
            return _result("transcript text")

        monkeypatch.setattr(pipeline, "resolve_share", fake_resolve)
        monkeypatch.setattr(pipeline, "download_file", fake_download)
        monkeypatch.setattr(pipeline, "transcribe_file", fake_transcribe)

        code = cli.main([
            "share", "x https://v.douyin.com/abc/",
            "--output-dir", str(tmp_path),
            "--app-key", "K",
        ])

        assert code == 0
        assert capsys.readouterr().out == "transcript text\n"
        assert captured_kwargs["mode"] is TranscriptionMode.STANDARD
        assert captured_kwargs["resource_id"] == "volc.seedasr.auc"
        assert captured_kwargs["app_key"] == "K"

    @pytest.mark.parametrize(
        "extra, message",
        [
            ([], "app key"),
            (["--app-key", "K", "--mode", "flash"], "access key"),
        ],
    )
    def test_missing_credentials_stop_before_network(
        self, monkeypatch, tmp_path, capsys, extra, message
    ):
        calls = []

        async def fake_resolve(text):
            calls.append("resolve")
            return _share_info()

        async def fake_download(url, path, on_progress=None):
            calls.append("download")
            return Path(path)

        monkeypatch.setattr(pipeline, "resolve_share", fake_resolve)
        monkeypatch.setattr(pipeline, "download_file", fake_download)

        code = cli.main(
            ["share", "https://v.douyin.com/x/", "--output-dir", str(tmp_path), *extra]
        )

        assert code == 1
        assert message in capsys.readouterr().err
        assert calls == []


class TestParseCommand:
    def test_prints_share_info(self, monkeypatch, capsys):
        async def fake_resolve(text):
            assert text == "see https://v.douyin.com/x/"
            return _share_info()

        monkeypatch.setattr(cli, "resolve_share", fake_resolve)

        code = cli.main(["parse", "see", "https://v.douyin.com/x/"])

        assert code == 0
        printed = json.loads(capsys.readouterr().out)
        assert printed["video_id"] == "42"
        assert printed["download_url"] == "https://cdn.test/play/42.mp4"

    def test_parse_error(self, monkeypatch, capsys):
        async def fake_resolve(text):
            raise ShareParseError("No share link found in the given text")

        monkeypatch.setattr(cli, "resolve_share", fake_resolve)

        code = cli.main(["parse", "nothing"])

        assert code == 1
        err = json.loads(capsys.readouterr().err)
        assert err == {"status": "error", "error": "No share link found in the given text"}


class TestDownloadCommand:
    def test_prints_path(self, monkeypatch, tmp_path, capsys):
        async def fake_download(url, output, on_progress=None):
            on_progress(100)
            return Path(output)

        monkeypatch.setattr(cli, "download_file", fake_download)
        out = tmp_path / "v.mp4"

        code = cli.main(["download", "https://cdn.test/v.mp4", str(out)])

        assert code == 0
        captured = capsys.readouterr()
        assert json.loads(captured.out) == {"status": "success", "path": str(out)}
        assert "100%" in captured.err

"""End-to-end tests of the client -> proxy -> model architecture.

The browser-side pieces (preprocessing, client, session, history) talk to a
real proxy app; only the vision model is replaced with a canned transport.
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import ASPIRIN, gemini_reply, image_bytes
from medicine_id.cli import main as cli
from medicine_id.errors import (
    AnalysisInProgressError,
    InvalidInputError,
    NoImageSelectedError,
    StorageError,
    TransportError,
)
from medicine_id.history.cache import HISTORY_KEY, RecentHistoryCache
from medicine_id.history.storage import LocalStore
from medicine_id.inference_service.client import IdentificationClient
from medicine_id.inference_service.server import create_app
from medicine_id.inference_service.vision_model import GeminiVisionModel
from medicine_id.session import ScanSession


def model_reply(text: str):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=gemini_reply(text))
    return handler


def proxy_transport(model_handler) -> httpx.MockTransport:
    """Route client requests into an in-process proxy app."""
    model = GeminiVisionModel(api_url="https://gemini.test/models", transport=httpx.MockTransport(model_handler))
    proxy = TestClient(create_app(vision_model=model))

    def forward(request: httpx.Request) -> httpx.Response:
        response = proxy.request(
            request.method,
            request.url.path,
            content=request.content,
            headers={"content-type": request.headers.get("content-type", "application/json")},
        )
        return httpx.Response(
            response.status_code,
            content=response.content,
            headers={"content-type": response.headers.get("content-type", "application/json")},
        )

    return httpx.MockTransport(forward)


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "e2e-key")


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "local_storage.json")


def make_session(store, model_handler=None) -> ScanSession:
    client = IdentificationClient(
        service_url="http://proxy.test",
        transport=proxy_transport(model_handler or model_reply(json.dumps(ASPIRIN))),
    )
    return ScanSession(client, RecentHistoryCache(store))


def test_select_analyze_and_store(store):
    session = make_session(store)
    session.select_image(image_bytes(2000, 1000), "image/png")
    assert (session.selected_image.width, session.selected_image.height) == (800, 400)

    result = session.analyze()

    assert result.medicine_name == "Aspirin"
    assert result.captured_at is not None
    assert session.result == result
    assert session.recent_scans == (result,)
    assert not session.is_analyzing

    persisted = json.loads(store.get_item(HISTORY_KEY))
    assert persisted[0]["medicineName"] == "Aspirin"
    assert persisted[0]["capturedAt"] == result.captured_at


def test_new_selection_clears_stale_result(store):
    session = make_session(store)
    session.select_image(image_bytes(), "image/png")
    session.analyze()
    assert session.result is not None

    session.select_image(image_bytes(), "image/jpeg")
    assert session.result is None


def test_rejected_file_leaves_state_untouched(store):
    session = make_session(store)
    selected = session.select_image(image_bytes(), "image/png")
    result = session.analyze()

    with pytest.raises(InvalidInputError):
        session.select_image(b"%PDF-1.7", "application/pdf")

    assert session.selected_image is selected
    assert session.result is result


def test_analyze_requires_selection(store):
    with pytest.raises(NoImageSelectedError):
        make_session(store).analyze()


def test_analyze_refuses_reentry(store):
    session = make_session(store)
    session.select_image(image_bytes(), "image/png")
    session.is_analyzing = True

    with pytest.raises(AnalysisInProgressError):
        session.analyze()


def test_failed_analysis_keeps_history(store, monkeypatch):
    session = make_session(store)
    session.select_image(image_bytes(), "image/png")
    session.analyze()

    monkeypatch.delenv("GEMINI_API_KEY")
    with pytest.raises(TransportError, match="Server configuration error"):
        session.analyze()

    assert not session.is_analyzing
    assert session.result is None
    assert len(session.recent_scans) == 1


def test_parsing_error_record_reaches_history(store):
    session = make_session(store, model_reply("Sorry, the photo is too blurry."))
    session.select_image(image_bytes(), "image/png")

    result = session.analyze()

    assert result.medicine_name == "Parsing Error"
    assert result.confidence == "low"
    assert session.recent_scans[0] == result


def test_history_survives_new_session(store):
    first = make_session(store)
    first.select_image(image_bytes(), "image/png")
    stored = first.analyze()

    second = make_session(store)
    assert second.recent_scans == (stored,)
    assert second.show_history(0) == stored
    assert second.recent_scans == (stored,)


def test_cli_identify_history_and_show(tmp_path, monkeypatch, capsys):
    store_file = tmp_path / "local_storage.json"
    photo = tmp_path / "pill.png"
    photo.write_bytes(image_bytes(1200, 900))

    transport = proxy_transport(model_reply("```json\n" + json.dumps(ASPIRIN) + "\n```"))
    monkeypatch.setattr(
        cli,
        "IdentificationClient",
        lambda service_url=None, timeout=30.0: IdentificationClient(
            service_url="http://proxy.test", timeout=timeout, transport=transport
        ),
    )

    assert cli.main(["--store", str(store_file), "identify", str(photo)]) == 0
    report = capsys.readouterr().out
    assert "Aspirin" in report
    assert "Manufacturer:  Bayer" in report
    assert cli.DISCLAIMER in report

    assert cli.main(["--store", str(store_file), "history"]) == 0
    assert "[0] Aspirin - 500mg" in capsys.readouterr().out

    assert cli.main(["--store", str(store_file), "show", "0"]) == 0
    assert "Acetylsalicylic acid" in capsys.readouterr().out

    assert cli.main(["--store", str(store_file), "show", "3"]) == 1
    assert "No history entry" in capsys.readouterr().err


def test_cli_reports_empty_history(tmp_path, capsys):
    assert cli.main(["--store", str(tmp_path / "store.json"), "history"]) == 0
    assert "No recent scans." in capsys.readouterr().out


def test_history_write_failure_surfaces_and_resets(tmp_path):
    store_file = tmp_path / "local_storage.json"
    session = make_session(LocalStore(store_file))
    session.select_image(image_bytes(), "image/png")

    store_file.mkdir()
    with pytest.raises(StorageError):
        session.analyze()

    assert not session.is_analyzing
    assert session.result is None
    assert session.recent_scans == ()


def test_cli_reports_unusable_store(tmp_path, capsys):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    assert cli.main(["--store", str(blocker / "store.json"), "history"]) == 1
    assert capsys.readouterr().err.startswith("Error: ")

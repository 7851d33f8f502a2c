import json
from pathlib import Path

import requests
from streamlit.testing.v1 import AppTest

SCRIPT = Path(__file__).resolve().parents[2] / "streamlit" / "doctrine_interface.py"


class _StreamedResponse:
    """Streamed ``requests`` response double that records whether it was closed."""

    status_code = 200
    encoding = "utf-8"

    def __init__(self, pieces: list[str]):
        self.pieces = pieces
        self.closed = False

    def iter_content(self, chunk_size=None, decode_unicode=False):
        yield from self.pieces

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False


def test_streamed_answer_closes_response(monkeypatch):
    """
    Test that the chat shows the streamed answer and releases the connection.
    """
    header = json.dumps({"type": "metadata", "data": {"source": "PDF", "context": "Step 1..."}})
    response = _StreamedResponse([header + "\nReceipt", " of mission."])
    posted = []

    def _post(url, **kwargs):
        posted.append((url, kwargs))
        return response

    monkeypatch.setattr(requests, "post", _post)
    monkeypatch.delenv("DOCTRINE_API_BASE_URL", raising=False)
    monkeypatch.delenv("DOCTRINE_API_ENDPOINT_PATH", raising=False)

    at = AppTest.from_file(str(SCRIPT), default_timeout=10)
    at.run()
    at.chat_input[0].set_value("What is step one of MDMP?").run()

    assert not at.exception
    assert posted[0][0] == "http://localhost:8000/api/agent"
    assert posted[0][1]["data"] == {"query": "What is step one of MDMP?", "stream": "true"}
    assert response.closed is True
    assert at.session_state.messages[-1]["content"] == "Receipt of mission."
    assert at.session_state.messages[-1]["source_label"] == "PDF"

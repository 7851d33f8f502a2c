import json
import os
from dataclasses import asdict
from typing import Any, Dict, Iterator, Optional

import requests
import streamlit as st

from doctrine_rag.common import ConversationTurn

st.title("FM 5-0 Assistant")

# -----------------------------
# Backend configuration
# -----------------------------
DEFAULT_API_BASE_URL = os.getenv("DOCTRINE_API_BASE_URL", "http://localhost:8000")
DEFAULT_API_ENDPOINT_PATH = os.getenv("DOCTRINE_API_ENDPOINT_PATH", "/api/agent")
DEFAULT_TIMEOUT_S = float(os.getenv("DOCTRINE_API_TIMEOUT_S", "120"))

SOURCE_BADGES = {
    "PDF": "FM 5-0",
    "CSV": "Form fields",
    "BOTH": "FM 5-0 + form fields",
    "ERROR": "Error",
}

with st.sidebar:
    st.header("Backend")
    api_base_url = st.text_input("API base URL", value=DEFAULT_API_BASE_URL)
    api_path = st.text_input("Endpoint path", value=DEFAULT_API_ENDPOINT_PATH)
    timeout_s = st.number_input("Timeout (s)", min_value=1, max_value=600, value=int(DEFAULT_TIMEOUT_S))

    st.header("Documents")
    pdf_upload = st.file_uploader("Field manual (PDF)", type=["pdf"])
    csv_upload = st.file_uploader("Form fields (CSV)", type=["csv"])
    st.caption("Without uploads the backend uses its bundled FM 5-0 and template fields.")


def _endpoint_url() -> str:
    base = api_base_url.rstrip("/")
    path = api_path if api_path.startswith("/") else f"/{api_path}"
    return f"{base}{path}"


def _post_question(url: str, prompt: str, timeout: float) -> requests.Response:
    """POST the question as form data, attaching any uploads as multipart files."""
    files: Dict[str, Any] = {}
    if pdf_upload is not None:
        files["pdf"] = (pdf_upload.name, pdf_upload.getvalue(), "application/pdf")
    if csv_upload is not None:
        files["csv"] = (csv_upload.name, csv_upload.getvalue(), "text/csv")

    return requests.post(
        url,
        data={"query": prompt, "stream": "true"},
        files=files or None,
        stream=True,
        timeout=timeout,
    )


def _raise_for_error(resp: requests.Response, url: str) -> None:
    if resp.status_code < 400:
        return

    detail: Optional[str] = None
    try:
        j = resp.json()
        if isinstance(j, dict):
            detail = " - ".join(str(j[k]) for k in ("error", "detail") if j.get(k))
    except ValueError:
        detail = None

    raise RuntimeError(f"API error {resp.status_code} from {url}: {detail or resp.text[:500]}")


def stream_backend(prompt: str, metadata: Dict[str, Any]) -> Iterator[str]:
    """Yield answer text from the streamed response.

    The first line of the body is a JSON metadata record; it is parsed into
    ``metadata`` and not shown.
    """
    url = _endpoint_url()
    try:
        resp = _post_question(url, prompt, timeout=float(timeout_s))
    except requests.RequestException as e:
        raise RuntimeError(f"Failed to reach API at {url}: {e}") from e

    with resp:
        _raise_for_error(resp, url)
        resp.encoding = resp.encoding or "utf-8"

        buffer = ""
        header_done = False
        for piece in resp.iter_content(chunk_size=None, decode_unicode=True):
            if header_done:
                yield piece
                continue

            buffer += piece
            if "\n" not in buffer:
                continue
            line, rest = buffer.split("\n", 1)
            header_done = True
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                yield buffer
                continue
            if record.get("type") == "metadata":
                metadata.update(record.get("data") or {})
            if rest:
                yield rest

        if not header_done and buffer:
            yield buffer


def _render_source(turn: Dict[str, Any]) -> None:
    label = turn.get("source_label")
    if label:
        st.caption(f"Source: {SOURCE_BADGES.get(label, label)}")

    excerpt = turn.get("context_excerpt")
    if excerpt:
        with st.expander("Retrieved context", expanded=False):
            st.code(excerpt, language="text", wrap_lines=True)


# -----------------------------
# Chat UI
# -----------------------------
if "messages" not in st.session_state:
    st.session_state.messages = []

for message in st.session_state.messages:
    with st.chat_message(message["role"]):
        st.markdown(message["content"])
        if message["role"] == "assistant":
            _render_source(message)

if prompt := st.chat_input("Ask about FM 5-0 or the form fields..."):
    with st.chat_message("user"):
        st.markdown(prompt)
    st.session_state.messages.append(asdict(ConversationTurn(role="user", content=prompt)))

    metadata: Dict[str, Any] = {}
    with st.chat_message("assistant"):
        try:
            response_text = st.write_stream(stream_backend(prompt, metadata))
        except RuntimeError as e:
            response_text = f"⚠️ {e}"
            st.markdown(response_text)
        if not isinstance(response_text, str):
            response_text = "".join(str(part) for part in response_text)

        turn = ConversationTurn(
            role="assistant",
            content=response_text,
            source_label=metadata.get("source"),
            context_excerpt=metadata.get("context"),
        )
        _render_source(asdict(turn))

    st.session_state.messages.append(asdict(turn))

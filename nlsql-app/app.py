"""Streamlit operator console for the NL-SQL gateway."""
from __future__ import annotations

import json
import os
from typing import Any, Dict, Iterator, List, Optional

import httpx
import pandas as pd
import plotly.express as px
import streamlit as st
from dotenv import load_dotenv

load_dotenv()

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")

st.set_page_config(page_title="NL-SQL Gateway", layout="wide", page_icon="🗄️")

st.title("🗄️ NL-SQL Gateway")
st.caption("Ask questions, run commands and manage tables in plain language.")


def _init_http_client() -> None:
    if "http_client" not in st.session_state:
        st.session_state.http_client = httpx.Client(base_url=BACKEND_URL, timeout=300.0)


def _error_text(response: httpx.Response) -> str:
    try:
        return response.json().get("error") or response.text
    except ValueError:
        return response.text


def _api_post(path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    response = st.session_state.http_client.post(path, json=payload)
    if response.status_code >= 400:
        raise RuntimeError(_error_text(response))
    return response.json()


def _api_get(path: str, params: Optional[Dict[str, Any]] = None) -> Any:
    response = st.session_state.http_client.get(path, params=params)
    if response.status_code >= 400:
        raise RuntimeError(_error_text(response))
    return response.json()


def _show_rows(rows: List[Dict[str, Any]], chart_key: str) -> None:
    df = pd.DataFrame(rows)
    if df.empty:
        st.warning("The query returned no rows.")
        return
    st.dataframe(df, use_container_width=True)
    numeric = df.select_dtypes("number").columns
    if len(df.columns) >= 2 and len(numeric):
        label = next((column for column in df.columns if column not in numeric), df.columns[0])
        chart = px.bar(df.head(20), x=label, y=numeric[0])
        st.plotly_chart(chart, use_container_width=True, key=chart_key)


def _stream_chat(payload: Dict[str, Any]) -> Iterator[str]:
    """Yield tokens from the SSE endpoint; raise on an ``error`` event."""
    event = None
    with st.session_state.http_client.stream("POST", "/ai/chat-free-stream", json=payload) as response:
        if response.status_code >= 400:
            response.read()
            raise RuntimeError(_error_text(response))
        for line in response.iter_lines():
            if line.startswith("event:"):
                event = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data = json.loads(line[len("data:"):].strip())
                if event == "token":
                    yield data["token"]
                elif event == "error":
                    raise RuntimeError(data["error"])


_init_http_client()

try:
    tables: List[str] = _api_get("/ai/tables")["tables"]
except Exception as exc:  # pragma: no cover - backend offline
    tables = []
    st.error(f"Backend unreachable at {BACKEND_URL}: {exc}")

try:
    saved_contexts: List[Dict[str, Any]] = _api_get("/contexts")
except Exception:
    saved_contexts = []

context_names = {item["id"]: item["name"] for item in saved_contexts}

with st.sidebar:
    st.header("Tables")
    if tables:
        preview = st.selectbox("Preview table", tables)
        limit = st.number_input("Rows", min_value=1, max_value=500, value=20)
        if st.button("Show data"):
            try:
                result = _api_get("/ai/table-data", {"table": preview, "limit": int(limit)})
                st.session_state["preview"] = {"table": preview, **result["data"]}
            except Exception as exc:
                st.error(f"Could not load table: {exc}")
        if st.button("Drop table", type="secondary"):
            try:
                st.success(_api_post("/ai/drop-table", {"table": preview})["message"])
                st.rerun()
            except Exception as exc:
                st.error(f"Drop failed: {exc}")
    else:
        st.info("No tables yet. Create one from the 'Create table' tab.")

    st.markdown("---")
    st.header("Maintenance")
    if st.button("Rebuild schema"):
        try:
            rebuilt = _api_post("/ai/schema/rebuild", {})
            st.success(f"Schema rebuilt in {rebuilt['duration_ms']} ms")
        except Exception as exc:
            st.error(f"Rebuild failed: {exc}")
    if st.button("Clear cache"):
        try:
            st.success(_api_post("/ai/cache/clear", {})["message"])
        except Exception as exc:
            st.error(f"Cache clear failed: {exc}")

preview_data = st.session_state.get("preview")
if preview_data:
    st.markdown(f"### Table `{preview_data['table']}`")
    st.dataframe(pd.DataFrame(preview_data["rows"]), use_container_width=True)

query_tab, command_tab, create_tab, migrate_tab, analyze_tab, chat_tab, contexts_tab = st.tabs(
    ["Query", "Command", "Create table", "Migrate", "Analyze", "Chat", "Contexts"]
)

with query_tab:
    question = st.text_input("Question", key="query-question")
    if st.button("Run query"):
        try:
            response = _api_post("/ai/query", {"question": question})
            st.code(response["sql_generated"], language="sql")
            _show_rows(response["results"], "query-chart")
        except Exception as exc:
            st.error(f"Query failed: {exc}")

with command_tab:
    text = st.text_area("Command", key="command-text", placeholder="Insert 5 customers into customers")
    if st.button("Run command"):
        try:
            response = _api_post("/ai/command", {"command": text})
            st.success(response["message"])
            if response.get("warning"):
                st.warning(response["warning"])
            st.code(response["sql_executed"], language="sql")
        except Exception as exc:
            st.error(f"Command failed: {exc}")

with create_tab:
    description = st.text_area("Describe the table", key="create-description")
    if st.button("Create table"):
        try:
            response = _api_post("/ai/create-table", {"description": description})
            st.success(response["message"])
            st.code(response["sql_executed"], language="sql")
        except Exception as exc:
            st.error(f"Create failed: {exc}")
    if tables:
        crud_table = st.selectbox("Generate CRUD for", tables, key="crud-table")
        if st.button("Generate CRUD"):
            try:
                response = _api_post("/ai/generate-crud", {"table": crud_table})
                st.success(response["message"])
                st.json(response["files"])
            except Exception as exc:
                st.error(f"CRUD generation failed: {exc}")

with migrate_tab:
    if tables:
        migrate_table = st.selectbox("Table", tables, key="migrate-table")
        change = st.text_input("Change", key="migrate-change", placeholder="add a nullable email column")
        if st.button("Migrate"):
            try:
                response = _api_post("/ai/migrate", {"command": change, "table": migrate_table})
                st.success(response["message"])
                st.code(response["sql_executed"], language="sql")
            except Exception as exc:
                st.error(f"Migration failed: {exc}")
    else:
        st.info("Create a table first.")

with analyze_tab:
    analyze_question = st.text_input("Question", key="analyze-question")
    selected_tables = st.multiselect("Context tables (optional)", tables)
    analyze_context = st.selectbox(
        "Saved context (optional)",
        [None, *context_names],
        format_func=lambda value: "-" if value is None else context_names[value],
        key="analyze-context",
    )
    if st.button("Analyze"):
        try:
            payload = {
                "question": analyze_question,
                "context_tables": selected_tables,
                "context_id": analyze_context,
            }
            with st.spinner("Fetching data..."):
                analysis = _api_post("/ai/analyze-query", payload)
            if analysis.get("sql_generated"):
                st.code(analysis["sql_generated"], language="sql")
            data = analysis.get("data")
            if isinstance(data, dict) and data.get("error"):
                st.error(data["error"])
            else:
                if isinstance(data, list):
                    _show_rows(data, "analyze-chart")
                with st.spinner("Writing insight..."):
                    insight = _api_post("/ai/analyze-insight", {"question": analyze_question, "data": data})
                st.subheader("Insight")
                st.markdown(insight["insight"])
        except Exception as exc:
            st.error(f"Analysis failed: {exc}")

with chat_tab:
    chat_context = st.selectbox(
        "Saved context (optional)",
        [None, *context_names],
        format_func=lambda value: "-" if value is None else context_names[value],
        key="chat-context",
    )
    history: List[Dict[str, str]] = st.session_state.setdefault("chat_history", [])
    for item in history:
        with st.chat_message(item["role"]):
            st.markdown(item["content"])
    prompt = st.chat_input("Ask anything")
    if prompt:
        history.append({"role": "user", "content": prompt})
        with st.chat_message("user"):
            st.markdown(prompt)
        with st.chat_message("assistant"):
            try:
                reply = st.write_stream(_stream_chat({"message": prompt, "context_id": chat_context}))
                history.append({"role": "assistant", "content": reply})
            except Exception as exc:
                st.error(f"Chat failed: {exc}")

with contexts_tab:
    if st.button("Create contexts table"):
        try:
            st.success(_api_post("/contexts/setup", {})["message"])
        except Exception as exc:
            st.error(f"Setup failed: {exc}")

    with st.form("new-context"):
        name = st.text_input("Name")
        context_description = st.text_input("Description")
        context_text = st.text_area("Context text")
        context_tables = st.multiselect("Tables", tables)
        is_default = st.checkbox("Default")
        if st.form_submit_button("Save context"):
            try:
                _api_post(
                    "/contexts",
                    {
                        "name": name,
                        "description": context_description,
                        "content": {"text": context_text, "tables": context_tables},
                        "is_default": is_default,
                    },
                )
                st.success("Context saved")
                st.rerun()
            except Exception as exc:
                st.error(f"Save failed: {exc}")

    for item in saved_contexts:
        with st.expander(f"{item['name']}{' (default)' if item['is_default'] else ''}"):
            st.write(item.get("description") or "")
            st.json(item["content"])
            if st.button("Delete", key=f"delete-context-{item['id']}"):
                st.session_state.http_client.delete(f"/contexts/{item['id']}")
                st.rerun()

st.markdown("---")
st.caption("Generated SQL runs against the gateway's DuckDB database. Review commands before running them.")

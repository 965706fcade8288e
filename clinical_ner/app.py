"""
Clinical Named Entity Extraction - frontend Web app
===================================================

A single page that sends free-text clinical notes to the NLM MetaMapLite
REST service and shows the concepts it finds (CUI, preferred name,
semantic types, character span).

The browser never talks to MetaMapLite directly. Each open page mounts a
session on this server; the session's controller makes the outbound call,
keeps the last good results and refuses a second submit while one is in
flight.

Endpoints
---------
- GET    /                           the page (inline CSS + small JS)
- GET    /health                     liveness
- POST   /api/sessions               mount a view
- GET    /api/sessions/{id}          current state
- POST   /api/sessions/{id}/submit   run the annotation
- DELETE /api/sessions/{id}          unmount (cancels a pending request)
- GET    /api/metrics                operational metrics

Run
---
METAMAPLITE_API_KEY=... uvicorn clinical_ner.app:app --reload --port 8001
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse

from clinical_ner.client import METRICS
from clinical_ner.config import Settings, load_settings
from clinical_ner.controller import AnnotationController, render_state
from clinical_ner.errors import EmptyInputError, SubmissionInProgressError, ViewClosedError
from clinical_ner.models import RenderedState, SessionResponse, SubmitRequest
from clinical_ner.sessions import SessionStore


logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ----------------------------
# Example notes for the "Load example" button
# ----------------------------

EXAMPLE_TEXTS = [
    "Patient presents with chest pain and shortness of breath. History of hypertension and type 2 diabetes mellitus.",
    "58 year old male with lung cancer, currently on cisplatin. Reports nausea and fatigue.",
    "Mother reports fever and cough for three days. No vomiting. Suspected community acquired pneumonia.",
    "Follow-up for chronic kidney disease. Creatinine elevated. Continue lisinopril, start furosemide.",
    "Severe headache with photophobia and neck stiffness; rule out meningitis.",
]


SESSIONS = SessionStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # pending requests of still-open pages are cancelled on shutdown
    SESSIONS.close_all()


app = FastAPI(
    title="Clinical Named Entity Extraction",
    description="A minimal frontend web app for the MetaMapLite clinical annotation service.",
    version="1.0.0",
    lifespan=lifespan,
)


def get_settings() -> Settings:
    try:
        return load_settings()
    except (RuntimeError, ValueError) as exc:
        logger.error("Settings could not be loaded: %s", exc)
        raise HTTPException(
            status_code=503,
            detail=(
                "The app is not configured to call the annotation service.\n\n"
                f"{exc}\n\n"
                "Set METAMAPLITE_API_KEY (and optionally METAMAPLITE_URL, "
                "METAMAPLITE_API_KEY_PLACEMENT, METAMAPLITE_TIMEOUT_SECONDS) "
                "in the environment or in a .env file."
            ),
        ) from exc


def _get_controller(session_id: str) -> AnnotationController:
    controller = SESSIONS.get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Unknown session. Reload the page to start a new one.")
    return controller


@app.get("/", response_class=HTMLResponse)
async def index() -> str:
    """Serve the page as a single HTML document (inline CSS + small JS)."""
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <title>Clinical Named Entity Extraction</title>
  <style>
    :root {{
      --bg: #ffffff;
      --ink: #111111;
      --muted: #666666;
      --panel: #fafafa;
      --border: #e5e5e5;
      --accent: #1f4e79;
      --err: #b00020;
    }}
    body {{
      margin: 0;
      font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Arial, sans-serif;
      color: var(--ink);
      background: var(--bg);
    }}
    header {{
      text-align: center;
      padding: 24px 16px 8px 16px;
    }}
    header h1 {{
      margin: 0;
      font-size: 26px;
    }}
    main {{
      max-width: 900px;
      margin: 0 auto;
      padding: 16px;
    }}
    label {{
      display: block;
      font-size: 13px;
      color: var(--muted);
      margin-bottom: 6px;
    }}
    textarea {{
      width: 100%;
      min-height: 130px;
      resize: vertical;
      font: inherit;
      border-radius: 10px;
      border: 1px solid var(--border);
      padding: 10px;
      box-sizing: border-box;
    }}
    .actions {{
      display: flex;
      gap: 10px;
      justify-content: center;
      margin: 14px 0 20px 0;
    }}
    button {{
      border: 0;
      background: var(--accent);
      color: white;
      padding: 10px 14px;
      border-radius: 10px;
      cursor: pointer;
      font-weight: 700;
    }}
    button.secondary {{
      background: white;
      color: var(--accent);
      border: 1px solid var(--accent);
    }}
    button:disabled {{
      opacity: 0.6;
      cursor: not-allowed;
    }}
    .card {{
      border: 1px solid var(--border);
      background: var(--panel);
      border-radius: 12px;
      padding: 14px;
      margin-bottom: 12px;
    }}
    .card h3 {{
      margin: 0 0 8px 0;
    }}
    .card p {{
      margin: 2px 0;
      font-size: 14px;
    }}
    .evidence {{
      margin-bottom: 8px;
    }}
    .error {{
      color: var(--err);
      text-align: center;
      margin-bottom: 12px;
      white-space: pre-wrap;
    }}
    .hint {{
      color: var(--muted);
      text-align: center;
      font-size: 14px;
    }}
    pre {{
      white-space: pre-wrap;
      font-size: 12px;
      background: white;
      border: 1px solid var(--border);
      border-radius: 10px;
      padding: 10px;
    }}
    code {{ background: rgba(0,0,0,0.04); padding: 1px 4px; border-radius: 6px; }}
  </style>
</head>
<body>
  <header>
    <h1>Clinical Named Entity Extraction</h1>
  </header>

  <main>
    <div>
      <label for="clinicalText">Enter Clinical Text</label>
      <textarea id="clinicalText" rows="6" placeholder="Enter clinical text here..."></textarea>
    </div>
    <div class="actions">
      <button id="btnSubmit" disabled>Extract Entities</button>
      <button id="btnExample" class="secondary">Load example</button>
    </div>

    <div id="errorLine" class="error" style="display:none;"></div>
    <div id="results"></div>

    <section class="card" style="margin-top: 24px;">
      <h3>Operational metrics</h3>
      <pre id="metricsOutput">Loading...</pre>
    </section>
  </main>

<script>
  let sessionId = null;
  let loading = false;

  async function fetchJson(url, opts) {{
    const res = await fetch(url, opts);
    const contentType = res.headers.get("content-type") || "";
    const payload = contentType.includes("application/json") ? await res.json() : await res.text();
    if (!res.ok) {{
      if (payload && typeof payload === "object" && payload.detail) {{
        throw new Error(payload.detail);
      }}
      throw new Error(typeof payload === "string" ? payload : "Request failed.");
    }}
    return payload;
  }}

  function textValue() {{
    return document.getElementById("clinicalText").value || "";
  }}

  function refreshButton() {{
    const btn = document.getElementById("btnSubmit");
    btn.disabled = loading || !sessionId || !textValue().trim();
    btn.textContent = loading ? "Processing..." : "Extract Entities";
  }}

  function showError(msg) {{
    const el = document.getElementById("errorLine");
    el.textContent = msg || "";
    el.style.display = msg ? "" : "none";
  }}

  function line(label, value) {{
    const p = document.createElement("p");
    const strong = document.createElement("strong");
    strong.textContent = label + ": ";
    p.appendChild(strong);
    p.appendChild(document.createTextNode(value));
    return p;
  }}

  function renderState(state) {{
    loading = state.loading;
    showError(state.error);
    const wrap = document.getElementById("results");
    wrap.innerHTML = "";
    if (state.placeholder) {{
      const p = document.createElement("p");
      p.className = "hint";
      p.textContent = state.placeholder;
      wrap.appendChild(p);
    }}
    state.results.forEach(r => {{
      const card = document.createElement("div");
      card.className = "card";
      const h = document.createElement("h3");
      h.textContent = r.matched_text;
      card.appendChild(h);
      r.evidence.forEach(ev => {{
        const block = document.createElement("div");
        block.className = "evidence";
        block.appendChild(line("CUI", ev.cui));
        block.appendChild(line("Name", ev.preferred_name));
        block.appendChild(line("Position", `${{r.start}}-${{r.end}}`));
        block.appendChild(line("Semantic Types", ev.semantic_types));
        card.appendChild(block);
      }});
      wrap.appendChild(card);
    }});
    refreshButton();
  }}

  async function refreshMetrics() {{
    try {{
      const m = await fetchJson("/api/metrics", {{ method: "GET" }});
      document.getElementById("metricsOutput").textContent = JSON.stringify(m, null, 2);
    }} catch (e) {{
      document.getElementById("metricsOutput").textContent = String(e.message || e);
    }}
  }}

  async function mount() {{
    try {{
      const payload = await fetchJson("/api/sessions", {{ method: "POST" }});
      sessionId = payload.session_id;
      renderState(payload.state);
    }} catch (e) {{
      showError(String(e.message || e));
    }}
  }}

  async function submit() {{
    if (loading || !sessionId || !textValue().trim()) {{
      return;
    }}
    loading = true;
    showError(null);
    refreshButton();
    try {{
      const state = await fetchJson(`/api/sessions/${{sessionId}}/submit`, {{
        method: "POST",
        headers: {{ "Content-Type": "application/json" }},
        body: JSON.stringify({{ text: textValue() }})
      }});
      renderState(state);
    }} catch (e) {{
      loading = false;
      showError(String(e.message || e));
      refreshButton();
    }} finally {{
      refreshMetrics();
    }}
  }}

  function loadExample() {{
    const examples = {json.dumps(EXAMPLE_TEXTS)};
    document.getElementById("clinicalText").value = examples[Math.floor(Math.random() * examples.length)];
    refreshButton();
  }}

  document.getElementById("clinicalText").addEventListener("input", refreshButton);
  document.getElementById("btnSubmit").addEventListener("click", submit);
  document.getElementById("btnExample").addEventListener("click", loadExample);
  window.addEventListener("pagehide", () => {{
    if (sessionId) {{
      fetch(`/api/sessions/${{sessionId}}`, {{ method: "DELETE", keepalive: true }});
      sessionId = null;
    }}
  }});
  // restored from the back/forward cache: the old session was closed on pagehide
  window.addEventListener("pageshow", (event) => {{
    if (event.persisted) {{
      loading = false;
      mount();
    }}
  }});

  mount();
  refreshMetrics();
</script>
</body>
</html>
"""


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "OK"}


@app.post("/api/sessions", response_model=SessionResponse)
async def api_open_session(settings: Settings = Depends(get_settings)) -> SessionResponse:
    session_id = SESSIONS.open(settings)
    controller = SESSIONS.get(session_id)
    return SessionResponse(session_id=session_id, state=render_state(controller.state))


@app.get("/api/sessions/{session_id}", response_model=RenderedState)
async def api_session_state(session_id: str) -> RenderedState:
    return render_state(_get_controller(session_id).state)


@app.post("/api/sessions/{session_id}/submit", response_model=RenderedState)
async def api_submit(session_id: str, req: SubmitRequest) -> RenderedState:
    """Run one annotation for this view.

    Annotation failures are part of the returned state (``status='failed'``),
    not HTTP errors. HTTP errors are reserved for requests this view refuses.
    """
    controller = _get_controller(session_id)
    try:
        state = await controller.submit(req.text)
    except EmptyInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SubmissionInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ViewClosedError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if controller.closed:
        raise HTTPException(status_code=404, detail="This view was closed before the request finished.")
    return render_state(state)


@app.delete("/api/sessions/{session_id}")
async def api_close_session(session_id: str) -> Dict[str, bool]:
    if not SESSIONS.close(session_id):
        raise HTTPException(status_code=404, detail="Unknown session.")
    return {"closed": True}


@app.get("/api/metrics")
async def api_metrics(settings: Settings = Depends(get_settings)) -> JSONResponse:
    """Return in-memory operational metrics and the (key-free) service settings."""
    summary = METRICS.summary()
    summary.update(settings.public_summary())
    summary["active_sessions"] = len(SESSIONS)
    return JSONResponse(summary)

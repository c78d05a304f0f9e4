from flask import (
    Flask, render_template, request, redirect, url_for,
    flash, jsonify, send_file, session, g, abort
)
from api_service import ApiService, ApiServiceError, CONTRACT_API_URL
from models import ANALYSIS_TYPES, AnalysisType, ApiConfig
from state import BooleanState, PersistedState, storage_available
from storage import ContractStorage, LocalStore, SafeStorage, StorageKeys, DEFAULT_QUOTA
import io, logging, os, re, uuid

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = Flask(
    __name__,
    template_folder=os.path.join(BASE_DIR, "templates"),
)
app.secret_key = os.environ.get("SECRET_KEY", "contract-dashboard-dev-key")
app.config.update(
    STORAGE_DIR=os.environ.get("STORAGE_DIR", os.path.join(BASE_DIR, "data", "storage")),
    STORAGE_QUOTA=int(os.environ.get("STORAGE_QUOTA", DEFAULT_QUOTA)),
    MAX_CONTENT_LENGTH=int(os.environ.get("MAX_UPLOAD_MB", "25")) * 1024 * 1024,
    CONTRACT_API_URL=CONTRACT_API_URL,
)

TABS = [
    ("analysis",     "Analysis"),
    ("key_points",   "Key Points"),
    ("negotiations", "Negotiations"),
]
TAB_IDS = {tab for tab, _ in TABS}

ALLOWED_UPLOADS = {".pdf", ".doc", ".docx", ".txt"}

def _ext(fn: str) -> str:
    return os.path.splitext(fn.lower())[1]

# ── Per-browser storage ──────────────────────────────────────────────────────

_BROWSER_ID = re.compile(r"^[0-9a-f]{32}$")

def _browser_id() -> str:
    bid = session.get("browser_id")
    if not bid or not _BROWSER_ID.match(bid):
        bid = uuid.uuid4().hex
        session["browser_id"] = bid
        session.permanent = True
    return bid

def _storage() -> SafeStorage:
    if "storage" not in g:
        path = os.path.join(app.config["STORAGE_DIR"], f"{_browser_id()}.json")
        g.storage = SafeStorage(LocalStore(path, quota=app.config["STORAGE_QUOTA"]))
    return g.storage


class DashboardState:
    """Persisted dashboard state for the current browser, loaded once per request."""

    def __init__(self, storage: SafeStorage):
        self.contracts        = ContractStorage(storage)
        self.api_config       = PersistedState(storage, StorageKeys.API_CONFIG, None)
        self.analysis_type    = PersistedState(storage, StorageKeys.ANALYSIS_TYPE, AnalysisType().to_dict())
        self.upload_minimized = BooleanState(storage, StorageKeys.UPLOAD_MINIMIZED, False)

    @property
    def config(self):
        return ApiConfig.from_dict(self.api_config.value)

    def selected_analysis(self) -> AnalysisType:
        analysis = AnalysisType.from_dict(self.analysis_type.value)
        if analysis.is_custom:
            analysis.custom_query = self.contracts.get_custom_query()
        return analysis

    def clear_all(self) -> bool:
        self.api_config.reset()
        self.analysis_type.reset()
        self.upload_minimized.set_false()
        return self.contracts.clear_all()


def _dashboard() -> DashboardState:
    if "dashboard" not in g:
        g.dashboard = DashboardState(_storage())
    return g.dashboard

def _save_analysis_choice(state: DashboardState) -> None:
    chosen = request.form.get("analysis_type")
    if chosen in ANALYSIS_TYPES:
        state.analysis_type.set(AnalysisType(type=chosen).to_dict())
    if "custom_query" in request.form:
        state.contracts.set_custom_query(request.form["custom_query"].strip())

# ── Web routes ───────────────────────────────────────────────────────────────

@app.route("/", methods=["GET"])
def index():
    state = _dashboard()
    contract = state.contracts.get_contract_data()

    active_tab = state.contracts.get_active_tab()
    if active_tab not in TAB_IDS:
        active_tab = ContractStorage.DEFAULT_TAB

    return render_template(
        "index.html",
        contract=contract,
        config=state.config,
        analysis=state.selected_analysis(),
        analysis_types=ANALYSIS_TYPES,
        custom_query=state.contracts.get_custom_query(),
        # A restored analysis always shows the upload card collapsed; the
        # stored flag is only written by the POST flows.
        minimized=contract is not None,
        tabs=TABS,
        active_tab=active_tab,
    )


@app.route("/config", methods=["POST"])
def save_config():
    key = request.form.get("openai_api_key", "").strip()
    if not key:
        flash("Enter an OpenAI API key.", "danger")
        return redirect(url_for("index"))
    _dashboard().api_config.set(ApiConfig(openai_api_key=key).to_dict())
    flash("API settings saved.", "success")
    return redirect(url_for("index"))


@app.route("/analysis-type", methods=["POST"])
def save_analysis_type():
    _save_analysis_choice(_dashboard())
    return redirect(url_for("index"))


@app.route("/analyze", methods=["POST"])
def analyze_doc():
    state = _dashboard()
    _save_analysis_choice(state)

    config = state.config
    if not config or not config.is_configured:
        flash("Please configure API settings first", "warning")
        return redirect(url_for("index"))

    upload = request.files.get("file")
    if not upload or not upload.filename:
        flash("Choose a contract file to upload.", "danger")
        return redirect(url_for("index"))
    ext = _ext(upload.filename)
    if ext not in ALLOWED_UPLOADS:
        flash(f"Unsupported file type '{ext}'.", "danger")
        return redirect(url_for("index"))

    service = ApiService(config, base_url=app.config["CONTRACT_API_URL"])
    try:
        data = service.upload_and_analyze(upload, state.selected_analysis())
    except ApiServiceError as e:
        app.logger.warning("Analysis failed for %s: %s", upload.filename, e)
        flash(f"Analysis failed. Please check your API configuration and try again. ({e})", "danger")
        return redirect(url_for("index"))

    state.contracts.set_contract_data(data)
    state.upload_minimized.set_true()
    app.logger.info("Stored analysis of %s", upload.filename)
    flash(f"Analysis of '{upload.filename}' complete.", "success")
    return redirect(url_for("index"))


@app.route("/tab/<tab>", methods=["GET"])
def select_tab(tab):
    if tab not in TAB_IDS:
        abort(404)
    _dashboard().contracts.set_active_tab(tab)
    return redirect(url_for("index"))


@app.route("/new", methods=["POST"])
def new_upload():
    state = _dashboard()
    state.contracts.clear_contract_data()
    state.upload_minimized.set_false()
    return redirect(url_for("index"))


@app.route("/clear", methods=["POST"])
def clear_all():
    _dashboard().clear_all()
    flash("All saved data cleared.", "info")
    return redirect(url_for("index"))


@app.errorhandler(413)
def upload_too_large(e):
    flash("File is too large.", "danger")
    return redirect(url_for("index"))

# ── Export routes ────────────────────────────────────────────────────────────

@app.route("/export/pdf")
def export_pdf():
    contract = _dashboard().contracts.get_contract_data()
    if not contract:
        flash("No analysis found. Please analyze a document first.", "warning")
        return redirect(url_for("index"))
    from exporters import export_pdf as gen
    return send_file(io.BytesIO(gen(contract)),
        mimetype="application/pdf", as_attachment=True,
        download_name="contract_analysis.pdf")

@app.route("/export/word")
def export_word():
    contract = _dashboard().contracts.get_contract_data()
    if not contract:
        flash("No analysis found.", "warning"); return redirect(url_for("index"))
    from exporters import export_word as gen
    return send_file(io.BytesIO(gen(contract)),
        mimetype="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        as_attachment=True, download_name="contract_analysis.docx")

# ── REST API ─────────────────────────────────────────────────────────────────

@app.route("/api/health", methods=["GET"])
def api_health():
    # Callers without a browser cookie (monitors, load balancers) get a
    # scratch area so no per-browser file is created for them.
    if "browser_id" in session:
        area = _storage()
    else:
        area = SafeStorage(LocalStore(quota=app.config["STORAGE_QUOTA"]))
    return jsonify({
        "status":            "ok",
        "storage_available": storage_available(area),
        "api_base_url":      app.config["CONTRACT_API_URL"],
    })


if __name__ == "__main__":
    app.run(debug=True, port=int(os.environ.get("PORT", "5050")))

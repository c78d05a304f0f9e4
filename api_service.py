"""
api_service.py — Client for the external contract analysis service.

One endpoint: POST {CONTRACT_API_URL}/api/analyze with a multipart body.
Every failure reaches the caller as an ApiServiceError; nothing is retried.
"""

import json
import logging
import mimetypes
import os
from typing import Optional

import requests

from models import AnalysisType, ApiConfig, ContractData

logger = logging.getLogger(__name__)

# ── Config (overridable via environment variables) ────────────────────────────
CONTRACT_API_URL     = os.environ.get("CONTRACT_API_URL", "http://localhost:8501")
CONTRACT_API_TIMEOUT = int(os.environ.get("CONTRACT_API_TIMEOUT", "300"))   # seconds

ANALYZE_PATH = "/api/analyze"
DEFAULT_ERROR = "Analysis failed"


class ApiServiceError(Exception):
    pass


class ConfigurationError(ApiServiceError):
    """No usable credential; raised before any request is made."""


class AnalysisError(ApiServiceError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _file_field(upload) -> tuple:
    """
    Build the requests `files` entry.  Accepts a werkzeug FileStorage, an
    open file object, or a ready-made (filename, content[, content_type])
    tuple.
    """
    if isinstance(upload, tuple):
        return upload
    filename = getattr(upload, "filename", None) \
        or os.path.basename(getattr(upload, "name", "") or "") \
        or "contract"
    content_type = getattr(upload, "mimetype", None) \
        or mimetypes.guess_type(filename)[0] \
        or "application/octet-stream"
    stream = getattr(upload, "stream", upload)
    return (filename, stream, content_type)


def _error_message(body: str) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        return body or DEFAULT_ERROR
    detail = data.get("detail") if isinstance(data, dict) else None
    if not detail:
        return DEFAULT_ERROR
    return detail if isinstance(detail, str) else json.dumps(detail)


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────

class ApiService:
    """
    Holds connection settings.  The dashboard creates one per request; pass
    `config` to upload_and_analyze() to use a different credential for a
    single call.
    """

    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.config = config
        self.base_url = (base_url or CONTRACT_API_URL).rstrip("/")
        self.timeout = timeout or CONTRACT_API_TIMEOUT

    def set_config(self, config: Optional[ApiConfig]) -> None:
        self.config = config

    @property
    def analyze_url(self) -> str:
        return f"{self.base_url}{ANALYZE_PATH}"

    def upload_and_analyze(
        self,
        upload,
        analysis_type: AnalysisType,
        config: Optional[ApiConfig] = None,
    ) -> ContractData:
        config = config or self.config
        if config is None or not config.openai_api_key:
            raise ConfigurationError("OpenAI API key not configured")

        data = {
            "openai_api_key": config.openai_api_key,
            "analysis_type":  analysis_type.type,
        }
        if analysis_type.is_custom and analysis_type.custom_query:
            data["custom_query"] = analysis_type.custom_query

        try:
            resp = requests.post(
                self.analyze_url,
                files={"file": _file_field(upload)},
                data=data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error("Analysis API timed out after %ds", self.timeout)
            raise AnalysisError(f"Analysis timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            logger.error("API call error: %s", e)
            raise AnalysisError(str(e)) from e

        body = resp.text

        if not resp.ok:
            message = _error_message(body)
            logger.error("Analysis API returned HTTP %s: %s", resp.status_code, message)
            raise AnalysisError(message, status_code=resp.status_code)

        try:
            payload = json.loads(body)
        except ValueError as e:
            logger.error("Analysis API returned malformed JSON: %s", e)
            raise AnalysisError("Analysis service returned an invalid response",
                                status_code=resp.status_code) from e

        # Non-object bodies and non-string fields decode to empty sections.
        return ContractData.from_dict(payload) or ContractData()

"""
Tests for the analysis service client
"""

import io
import json
from unittest.mock import MagicMock, patch

import pytest
import requests
from werkzeug.datastructures import FileStorage

from api_service import (
    AnalysisError, ApiService, ApiServiceError, ConfigurationError, _file_field,
)
from models import AnalysisType, ApiConfig, ContractData, CONTRACT_REVIEW, CUSTOM_QUERY

BASE_URL = "http://analysis.test"
SAMPLE = ("sample.pdf", b"%PDF-1.4 sample", "application/pdf")


def _response(status=200, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.text = text
    return resp


@pytest.fixture
def service():
    return ApiService(ApiConfig(openai_api_key="sk-test"), base_url=BASE_URL)


class TestConfiguration:
    """Tests for the credential precondition"""

    @pytest.mark.parametrize("config", [None, ApiConfig(), ApiConfig(openai_api_key="")])
    def test_missing_credential_makes_no_request(self, config):
        with patch("api_service.requests.post") as mock_post:
            with pytest.raises(ConfigurationError, match="OpenAI API key not configured"):
                ApiService(config, base_url=BASE_URL).upload_and_analyze(SAMPLE, AnalysisType())
        mock_post.assert_not_called()

    def test_set_config_enables_calls(self):
        service = ApiService(base_url=BASE_URL)
        service.set_config(ApiConfig(openai_api_key="sk-late"))
        with patch("api_service.requests.post", return_value=_response(text="{}")) as mock_post:
            service.upload_and_analyze(SAMPLE, AnalysisType())
        assert mock_post.call_args.kwargs["data"]["openai_api_key"] == "sk-late"

    def test_per_call_config_wins(self, service):
        with patch("api_service.requests.post", return_value=_response(text="{}")) as mock_post:
            service.upload_and_analyze(SAMPLE, AnalysisType(),
                                       config=ApiConfig(openai_api_key="sk-other"))
        assert mock_post.call_args.kwargs["data"]["openai_api_key"] == "sk-other"

    def test_errors_share_a_base_class(self):
        assert issubclass(ConfigurationError, ApiServiceError)
        assert issubclass(AnalysisError, ApiServiceError)


class TestRequest:
    """Tests for the multipart request"""

    def test_custom_query_scenario(self, service):
        body = json.dumps({"analysis": "ok", "key_points": "kp"})
        with patch("api_service.requests.post", return_value=_response(text=body)) as mock_post:
            result = service.upload_and_analyze(
                SAMPLE, AnalysisType(type=CUSTOM_QUERY, custom_query="flag indemnity clauses"),
            )

        args, kwargs = mock_post.call_args
        assert args[0] == f"{BASE_URL}/api/analyze"
        assert kwargs["data"] == {
            "openai_api_key": "sk-test",
            "analysis_type":  "Custom Query",
            "custom_query":   "flag indemnity clauses",
        }
        assert kwargs["files"]["file"][0] == "sample.pdf"
        assert result == ContractData(analysis="ok", key_points="kp", negotiations="")

    def test_custom_query_only_sent_for_custom_type(self, service):
        with patch("api_service.requests.post", return_value=_response(text="{}")) as mock_post:
            service.upload_and_analyze(
                SAMPLE, AnalysisType(type=CONTRACT_REVIEW, custom_query="ignored"),
            )
        assert "custom_query" not in mock_post.call_args.kwargs["data"]

    def test_base_url_trailing_slash(self):
        service = ApiService(ApiConfig(openai_api_key="sk"), base_url="http://host:8501/")
        assert service.analyze_url == "http://host:8501/api/analyze"

    def test_file_field_from_werkzeug_upload(self):
        stream = io.BytesIO(b"contract")
        upload = FileStorage(stream=stream, filename="deal.docx",
                             content_type="application/octet-stream")
        assert _file_field(upload) == ("deal.docx", stream, "application/octet-stream")

    def test_file_field_from_open_file(self, tmp_path):
        path = tmp_path / "terms.pdf"
        path.write_bytes(b"%PDF")
        with open(path, "rb") as f:
            name, stream, content_type = _file_field(f)
        assert name == "terms.pdf"
        assert stream is f
        assert content_type == "application/pdf"


class TestResponse:
    """Tests for response handling"""

    def test_all_fields_mapped(self, service):
        body = json.dumps({"analysis": "a", "key_points": "k", "negotiations": "n"})
        with patch("api_service.requests.post", return_value=_response(text=body)):
            result = service.upload_and_analyze(SAMPLE, AnalysisType())
        assert result == ContractData(analysis="a", key_points="k", negotiations="n")

    def test_non_string_fields_become_empty(self, service):
        from exporters import export_pdf

        body = json.dumps({"analysis": ["a", "b"], "key_points": "kp", "negotiations": 3})
        with patch("api_service.requests.post", return_value=_response(text=body)):
            result = service.upload_and_analyze(SAMPLE, AnalysisType())
        assert result == ContractData(analysis="", key_points="kp", negotiations="")
        assert export_pdf(result).startswith(b"%PDF")

    def test_non_object_success_body_maps_to_empty(self, service):
        with patch("api_service.requests.post", return_value=_response(text="[1, 2]")):
            result = service.upload_and_analyze(SAMPLE, AnalysisType())
        assert result == ContractData()

    def test_error_detail_is_message(self, service):
        resp = _response(500, json.dumps({"detail": "rate limited"}))
        with patch("api_service.requests.post", return_value=resp):
            with pytest.raises(AnalysisError) as exc:
                service.upload_and_analyze(SAMPLE, AnalysisType())
        assert str(exc.value) == "rate limited"
        assert exc.value.status_code == 500

    def test_non_json_error_body_is_message(self, service):
        with patch("api_service.requests.post", return_value=_response(500, "oops")):
            with pytest.raises(AnalysisError) as exc:
                service.upload_and_analyze(SAMPLE, AnalysisType())
        assert str(exc.value) == "oops"

    @pytest.mark.parametrize("body", ["", "{}", '{"detail": ""}', "[1, 2]"])
    def test_error_without_detail_uses_default(self, service, body):
        with patch("api_service.requests.post", return_value=_response(502, body)):
            with pytest.raises(AnalysisError, match="Analysis failed"):
                service.upload_and_analyze(SAMPLE, AnalysisType())

    def test_network_failure(self, service):
        with patch("api_service.requests.post",
                   side_effect=requests.exceptions.ConnectionError("connection refused")):
            with pytest.raises(AnalysisError, match="connection refused"):
                service.upload_and_analyze(SAMPLE, AnalysisType())

    def test_timeout(self, service):
        with patch("api_service.requests.post", side_effect=requests.exceptions.Timeout()):
            with pytest.raises(AnalysisError, match="timed out"):
                service.upload_and_analyze(SAMPLE, AnalysisType())

    def test_malformed_success_body(self, service):
        with patch("api_service.requests.post", return_value=_response(200, "<html>")):
            with pytest.raises(AnalysisError, match="invalid response"):
                service.upload_and_analyze(SAMPLE, AnalysisType())

    def test_single_request_no_retry(self, service):
        with patch("api_service.requests.post", return_value=_response(503, "down")) as mock_post:
            with pytest.raises(AnalysisError):
                service.upload_and_analyze(SAMPLE, AnalysisType())
        assert mock_post.call_count == 1

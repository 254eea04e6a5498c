"""
Tests for the HTTP collaborator clients and the local rule classifier.

The clients receive a stand-in for ``requests.Session`` so no network is
touched.

Covers:
- Request shape (URL joining, JSON body, timeout)
- Response decoding into OcrResult / Classification / submission id
- Transport, status and body failures mapped to ExternalServiceError
- RuleBasedClassifier merchant keyword rules
"""

from decimal import Decimal
from typing import Any

import pytest
import requests

from taxbook_config.schema import GatewaySettings
from taxbook_kernel.exceptions import ExternalServiceError, ExternalServiceTimeoutError
from taxbook_modules.receipts.models import ClassificationMethod
from taxbook_services.gateways import (
    HttpClassificationClient,
    HttpOcrClient,
    HttpTaxAuthorityGateway,
    RuleBasedClassifier,
)


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, raw: bool = False):
        self.status_code = status_code
        self._body = body
        self._raw = raw

    def json(self):
        if self._raw:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._body


class FakeSession:
    """Records POSTs and answers with a canned response or exception."""

    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None):
        self.response = response or FakeResponse(body={})
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def post(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


SETTINGS = GatewaySettings(base_url="https://collab.example/api/", timeout_seconds=5.0)


def ocr_with(**kwargs) -> tuple[HttpOcrClient, FakeSession]:
    http = FakeSession(**kwargs)
    return HttpOcrClient(SETTINGS, http=http), http


class TestRequestShape:

    def test_url_timeout_and_body(self):
        client, http = ocr_with(
            response=FakeResponse(body={"extracted_fields": {}, "confidence": "0.5"})
        )
        client.recognize("s3://receipts/a.jpg", {"merchant_name": "카페"})

        call = http.calls[0]
        assert call["url"] == "https://collab.example/api/recognize"
        assert call["timeout"] == 5.0
        assert call["json"] == {
            "image_uri": "s3://receipts/a.jpg",
            "hints": {"merchant_name": "카페"},
        }

    def test_classifier_stringifies_non_json_values(self):
        http = FakeSession(
            response=FakeResponse(body={"account_code": "5210", "confidence": 0.9})
        )
        client = HttpClassificationClient(SETTINGS, http=http)
        client.classify({"merchant_name": "식당", "total_amount": Decimal("8500")})

        assert http.calls[0]["url"].endswith("/classify")
        assert http.calls[0]["json"] == {
            "fields": {"merchant_name": "식당", "total_amount": "8500"}
        }


class TestDecoding:

    def test_ocr_result(self):
        client, _ = ocr_with(
            response=FakeResponse(
                body={"extracted_fields": {"merchant_name": "GS25"}, "confidence": 0.91}
            )
        )
        result = client.recognize("uri", {})
        assert result.extracted_fields == {"merchant_name": "GS25"}
        assert result.confidence == Decimal("0.91")

    def test_classification(self):
        http = FakeSession(
            response=FakeResponse(
                body={
                    "account_code": 5220,
                    "account_name": "여비교통비",
                    "tax_category": "공제",
                    "confidence": "0.77",
                }
            )
        )
        result = HttpClassificationClient(SETTINGS, http=http).classify({})

        assert result.account_code == "5220"
        assert result.tax_category == "공제"
        assert result.vat_category is None
        assert result.confidence == Decimal("0.77")
        assert result.method == ClassificationMethod.AI

    def test_submission_id(self, captured_logs):
        http = FakeSession(response=FakeResponse(status_code=201, body={"submission_id": 42}))
        gateway = HttpTaxAuthorityGateway(SETTINGS, http=http)

        assert gateway.submit_return({"return_number": "org-VAT-202406-R0"}) == "42"
        assert http.calls[0]["url"] == "https://collab.example/api/returns"
        events = [r for r in captured_logs() if r["message"] == "tax_return_submitted"]
        assert events[0]["submission_id"] == "42"


class TestFailures:

    def test_timeout(self, captured_logs):
        client, _ = ocr_with(error=requests.exceptions.Timeout("read timed out"))

        with pytest.raises(ExternalServiceTimeoutError) as exc_info:
            client.recognize("uri", {})
        assert exc_info.value.service == "ocr"
        assert exc_info.value.timeout_seconds == 5.0
        assert any(r["message"] == "external_call_timeout" for r in captured_logs())

    def test_connection_error(self):
        client, _ = ocr_with(error=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(ExternalServiceError) as exc_info:
            client.recognize("uri", {})
        assert not isinstance(exc_info.value, ExternalServiceTimeoutError)
        assert "refused" in exc_info.value.reason

    def test_error_status(self):
        client, _ = ocr_with(response=FakeResponse(status_code=500, body={"error": "boom"}))

        with pytest.raises(ExternalServiceError) as exc_info:
            client.recognize("uri", {})
        assert exc_info.value.status_code == 500

    @pytest.mark.parametrize(
        "response",
        [
            FakeResponse(raw=True),
            FakeResponse(body=["not", "an", "object"]),
            FakeResponse(body={"confidence": "0.9"}),
            FakeResponse(body={"extracted_fields": [], "confidence": "0.9"}),
            FakeResponse(body={"extracted_fields": {}, "confidence": "high"}),
        ],
        ids=["not-json", "list-body", "missing-fields", "fields-not-object", "bad-decimal"],
    )
    def test_unreadable_body(self, response):
        client, _ = ocr_with(response=response)
        with pytest.raises(ExternalServiceError):
            client.recognize("uri", {})

    def test_gateway_without_submission_id(self):
        gateway = HttpTaxAuthorityGateway(SETTINGS, http=FakeSession())
        with pytest.raises(ExternalServiceError) as exc_info:
            gateway.submit_return({})
        assert exc_info.value.service == "tax_authority"


class TestRuleBasedClassifier:

    @pytest.mark.parametrize(
        "merchant,code,expense_category",
        [
            ("김밥천국 식당", "5210", "식비"),
            ("블루보틀 카페", "5210", "식비"),
            ("SK에너지 주유소", "5220", "교통비"),
            ("GS칼텍스", "5220", "교통비"),
            ("다이소", "5290", "기타비용"),
            (None, "5290", "기타비용"),
        ],
    )
    def test_rules(self, merchant, code, expense_category):
        result = RuleBasedClassifier().classify({"merchant_name": merchant})
        assert result.account_code == code
        assert result.expense_category == expense_category
        assert (result.tax_category, result.vat_category) == ("공제", "과세")
        assert result.method == ClassificationMethod.RULE

    def test_confidence_is_configurable(self):
        result = RuleBasedClassifier(confidence=Decimal("0.6")).classify({})
        assert result.confidence == Decimal("0.6")

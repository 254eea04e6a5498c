"""
External collaborator clients.

HTTP implementations of the ports the modules consume:

    OcrClient            -> HttpOcrClient
    ClassificationClient -> HttpClassificationClient, RuleBasedClassifier
    TaxAuthorityGateway  -> HttpTaxAuthorityGateway

Every HTTP call is bounded by the configured timeout.  A timeout raises
ExternalServiceTimeoutError; any other transport failure, a non-2xx
status or an unreadable body raises ExternalServiceError.  Nothing is
retried here; retry policy belongs to the caller.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import requests

from taxbook_config.schema import GatewaySettings
from taxbook_kernel.exceptions import ExternalServiceError, ExternalServiceTimeoutError
from taxbook_kernel.logging_config import get_logger
from taxbook_kernel.models.account import TaxCategory
from taxbook_modules.receipts.models import Classification, ClassificationMethod, OcrResult
from taxbook_modules.receipts.ports import ClassificationClient, OcrClient
from taxbook_modules.tax.gateway import TaxAuthorityGateway

logger = get_logger("services.gateways")


class _JsonHttpClient:
    """POSTs JSON to one collaborator and returns the decoded JSON body."""

    service_name = "external"

    def __init__(self, settings: GatewaySettings, http: requests.Session | None = None):
        self._base_url = settings.base_url.rstrip("/")
        self._timeout = settings.timeout_seconds
        self._http = http or requests.Session()

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            response = self._http.post(url, json=body, timeout=self._timeout)
        except requests.exceptions.Timeout:
            logger.warning(
                "external_call_timeout",
                extra={"service": self.service_name, "url": url, "timeout": self._timeout},
            )
            raise ExternalServiceTimeoutError(self.service_name, self._timeout) from None
        except requests.exceptions.RequestException as exc:
            logger.warning(
                "external_call_failed",
                extra={"service": self.service_name, "url": url, "error": str(exc)},
            )
            raise ExternalServiceError(self.service_name, str(exc)) from None

        if not 200 <= response.status_code < 300:
            logger.warning(
                "external_call_rejected",
                extra={
                    "service": self.service_name,
                    "url": url,
                    "status_code": response.status_code,
                },
            )
            raise ExternalServiceError(
                self.service_name,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError:
            raise ExternalServiceError(self.service_name, "response is not JSON") from None
        if not isinstance(data, dict):
            raise ExternalServiceError(self.service_name, "response is not a JSON object")
        return data

    def _field(self, data: dict[str, Any], name: str) -> Any:
        if data.get(name) is None:
            raise ExternalServiceError(self.service_name, f"response missing {name!r}")
        return data[name]

    def _decimal(self, data: dict[str, Any], name: str) -> Decimal:
        try:
            return Decimal(str(self._field(data, name)))
        except InvalidOperation:
            raise ExternalServiceError(
                self.service_name, f"{name!r} is not a number"
            ) from None


class HttpOcrClient(_JsonHttpClient):
    service_name = "ocr"

    def recognize(self, image_uri: str, hints: dict[str, Any]) -> OcrResult:
        data = self._post("recognize", {"image_uri": image_uri, "hints": hints})
        fields = self._field(data, "extracted_fields")
        if not isinstance(fields, dict):
            raise ExternalServiceError(self.service_name, "extracted_fields is not an object")
        return OcrResult(extracted_fields=fields, confidence=self._decimal(data, "confidence"))


class HttpClassificationClient(_JsonHttpClient):
    service_name = "classifier"

    def classify(self, extracted_fields: dict[str, Any]) -> Classification:
        body = {
            k: (str(v) if not isinstance(v, (str, int, float, bool, type(None))) else v)
            for k, v in extracted_fields.items()
        }
        data = self._post("classify", {"fields": body})
        return Classification(
            account_code=str(self._field(data, "account_code")),
            tax_category=data.get("tax_category"),
            vat_category=data.get("vat_category"),
            confidence=self._decimal(data, "confidence"),
            account_name=data.get("account_name"),
            expense_category=data.get("expense_category"),
            method=ClassificationMethod.AI,
        )


class HttpTaxAuthorityGateway(_JsonHttpClient):
    service_name = "tax_authority"

    def submit_return(self, payload: dict[str, Any]) -> str:
        data = self._post("returns", payload)
        submission_id = str(self._field(data, "submission_id"))
        logger.info(
            "tax_return_submitted",
            extra={"return_number": payload.get("return_number"), "submission_id": submission_id},
        )
        return submission_id


# ---------------------------------------------------------------------------
# Local classifier
# ---------------------------------------------------------------------------

# (merchant keywords, account code, account name, expense category)
_MERCHANT_RULES: tuple[tuple[tuple[str, ...], str, str, str], ...] = (
    (("식당", "카페"), "5210", "복리후생비", "식비"),
    (("주유소", "GS", "SK"), "5220", "여비교통비", "교통비"),
)
_FALLBACK_RULE = ("5290", "잡비", "기타비용")


class RuleBasedClassifier:
    """
    Keyword classifier on the merchant name.

    Restaurants and cafes go to meals (5210), fuel stations to transport
    (5220), everything else to miscellaneous expenses (5290).  All results
    are tagged 공제 / 과세.
    """

    def __init__(self, confidence: Decimal = Decimal("0.85")):
        self._confidence = confidence

    def classify(self, extracted_fields: dict[str, Any]) -> Classification:
        merchant = str(extracted_fields.get("merchant_name") or "")
        code, name, category = _FALLBACK_RULE
        for keywords, rule_code, rule_name, rule_category in _MERCHANT_RULES:
            if any(keyword in merchant for keyword in keywords):
                code, name, category = rule_code, rule_name, rule_category
                break
        return Classification(
            account_code=code,
            account_name=name,
            expense_category=category,
            tax_category=TaxCategory.DEDUCTIBLE.value,
            vat_category=TaxCategory.TAXABLE.value,
            confidence=self._confidence,
            method=ClassificationMethod.RULE,
        )


__all__ = [
    "ClassificationClient",
    "HttpClassificationClient",
    "HttpOcrClient",
    "HttpTaxAuthorityGateway",
    "OcrClient",
    "RuleBasedClassifier",
    "TaxAuthorityGateway",
]

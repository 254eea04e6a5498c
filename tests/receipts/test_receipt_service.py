"""
Tests for ReceiptService: upload, recognition, classification and the
receipt-to-ledger bridge.

Covers:
- Registration defaults
- OCR fills blank facts; a failed call restores the prior status
- Rule, manual and failing classification
- Posting a classified receipt as Dr expense / Cr clearing
- Posting guards: unclassified, already posted, missing facts
- Batch posting with per-receipt savepoints
- Review, validation, queue queries and statistics
"""

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import uuid4

import pytest

from taxbook_kernel.exceptions import (
    ExternalServiceError,
    ExternalServiceTimeoutError,
    InactiveAccountError,
    InvalidStateTransitionError,
    MissingFieldError,
    NotClassifiedError,
    ReceiptAlreadyPostedError,
    ReceiptNotFoundError,
    UnknownAccountError,
)
from taxbook_modules.receipts.models import (
    Classification,
    ClassificationMethod,
    OcrResult,
    ReviewStatus,
)
from taxbook_services.gateways import RuleBasedClassifier

ORG = "org-test"


class StubOcr:
    def __init__(self, fields: dict[str, Any], confidence: str = "0.93"):
        self.fields = fields
        self.confidence = Decimal(confidence)
        self.calls: list[tuple[str, dict]] = []

    def recognize(self, image_uri: str, hints: dict[str, Any]) -> OcrResult:
        self.calls.append((image_uri, hints))
        return OcrResult(extracted_fields=dict(self.fields), confidence=self.confidence)


class DownOcr:
    def recognize(self, image_uri: str, hints: dict[str, Any]) -> OcrResult:
        raise ExternalServiceTimeoutError("ocr", 30.0)


class DownClassifier:
    def classify(self, extracted_fields: dict[str, Any]) -> Classification:
        raise ExternalServiceError("classifier", "HTTP 500", status_code=500)


@pytest.fixture
def register(receipt_service, test_actor_id):
    def _register(**facts):
        facts.setdefault("image_uri", "s3://receipts/a.jpg")
        return receipt_service.register_receipt(ORG, test_actor_id, **facts)

    return _register


@pytest.fixture
def classified_receipt(receipt_service, register):
    receipt = register(
        merchant_name="다이소 명동점",
        transaction_date=date(2024, 6, 15),
        total_amount=Decimal("8500"),
    )
    receipt_service.auto_classify(receipt.id, RuleBasedClassifier())
    return receipt


class TestRegister:

    def test_uploaded(self, register, test_actor_id):
        receipt = register(merchant_name="스타벅스 카페", total_amount="5500")

        assert receipt.status == "uploaded"
        assert receipt.total_amount == Decimal("5500")
        assert not receipt.ai_processed
        assert not receipt.is_classified
        assert not receipt.is_posted
        assert receipt.created_by_id == test_actor_id

    def test_number_uses_receipt_date_or_today(self, register):
        dated = register(transaction_date=date(2024, 3, 2))
        undated = register()

        assert dated.receipt_number.startswith("org-test-20240302-")
        assert undated.receipt_number.startswith("org-test-20240630-")
        assert undated.transaction_date is None

    def test_missing_organization(self, receipt_service, test_actor_id):
        with pytest.raises(MissingFieldError):
            receipt_service.register_receipt("", test_actor_id)

    def test_unknown_receipt(self, receipt_service):
        with pytest.raises(ReceiptNotFoundError):
            receipt_service.get_receipt(uuid4())


class TestProcessWithAi:

    def test_fills_blank_facts(self, receipt_service, register):
        receipt = register(merchant_name="직접 입력 상호")
        ocr = StubOcr(
            {
                "merchant_name": "스타벅스 카페",
                "total_amount": "5500",
                "tax_amount": "500",
                "transaction_date": "2024-06-20",
            }
        )
        receipt_service.process_with_ai(receipt.id, ocr)

        assert receipt.status == "recognized"
        assert receipt.ai_processed
        assert receipt.ai_confidence == Decimal("0.93")
        assert receipt.merchant_name == "직접 입력 상호"
        assert receipt.total_amount == Decimal("5500")
        assert receipt.tax_amount == Decimal("500")
        assert receipt.transaction_date == date(2024, 6, 20)
        assert receipt.extracted_fields["merchant_name"] == "스타벅스 카페"
        assert ocr.calls == [("s3://receipts/a.jpg", {"merchant_name": "직접 입력 상호"})]

    def test_failure_restores_status(self, receipt_service, register, captured_logs):
        receipt = register()
        with pytest.raises(ExternalServiceTimeoutError):
            receipt_service.process_with_ai(receipt.id, DownOcr())

        assert receipt.status == "uploaded"
        assert not receipt.ai_processed
        failures = [r for r in captured_logs() if r["message"] == "receipt_recognition_failed"]
        assert failures[0]["service"] == "ocr"

    def test_posted_receipt_not_reprocessed(
        self, receipt_service, classified_receipt, test_actor_id
    ):
        receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)
        with pytest.raises(InvalidStateTransitionError):
            receipt_service.process_with_ai(classified_receipt.id, StubOcr({}))


class TestClassification:

    @pytest.mark.parametrize(
        "merchant,account,category",
        [
            ("김밥천국 식당", "5210", "식비"),
            ("블루보틀 카페", "5210", "식비"),
            ("GS칼텍스 주유소", "5220", "교통비"),
            ("다이소", "5290", "기타비용"),
        ],
    )
    def test_rule_based(self, receipt_service, register, merchant, account, category):
        receipt = register(merchant_name=merchant)
        receipt_service.auto_classify(receipt.id, RuleBasedClassifier())

        assert receipt.status == "classified"
        assert receipt.is_classified
        assert receipt.account_code == account
        assert receipt.expense_category == category
        assert receipt.tax_category == "공제"
        assert receipt.vat_category == "과세"
        assert receipt.classification_method == ClassificationMethod.RULE.value
        assert receipt.classification_confidence == Decimal("0.85")

    def test_classifier_sees_recognized_fields(self, receipt_service, register):
        receipt = register()
        receipt_service.process_with_ai(receipt.id, StubOcr({"merchant_name": "동네 식당"}))
        receipt_service.auto_classify(receipt.id, RuleBasedClassifier())
        assert receipt.account_code == "5210"

    def test_classifier_failure_leaves_receipt_unclassified(self, receipt_service, register):
        receipt = register(merchant_name="다이소")
        with pytest.raises(ExternalServiceError):
            receipt_service.auto_classify(receipt.id, DownClassifier())
        assert not receipt.is_classified
        assert receipt.status == "uploaded"

    def test_manual(self, receipt_service, register, test_actor_id):
        receipt = register(merchant_name="거래처 식사")
        receipt_service.classify_manually(receipt.id, "5250", test_actor_id)

        assert receipt.account_code == "5250"
        assert receipt.account_name == "접대비"
        assert receipt.tax_category == "불공제"
        assert receipt.vat_category == "과세"
        assert receipt.classification_confidence == Decimal("1.0")
        assert receipt.classification_method == "Manual"

    def test_manual_unknown_account(self, receipt_service, register, test_actor_id):
        with pytest.raises(UnknownAccountError):
            receipt_service.classify_manually(register().id, "9999", test_actor_id)

    def test_reclassify_before_posting(
        self, receipt_service, classified_receipt, test_actor_id
    ):
        receipt_service.classify_manually(classified_receipt.id, "5230", test_actor_id)
        assert classified_receipt.account_code == "5230"


class TestPostReceipt:

    def test_two_line_entry(self, receipt_service, classified_receipt, test_actor_id):
        txn = receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)

        lines = [
            (line.account_code, line.debit_amount, line.credit_amount) for line in txn.lines
        ]
        assert lines == [
            ("5290", Decimal("8500"), Decimal("0")),
            ("1100", Decimal("0"), Decimal("8500")),
        ]
        assert {(line.tax_category, line.vat_category) for line in txn.lines} == {
            ("공제", "과세")
        }
        assert txn.status == "draft"
        assert txn.source == "receipt"
        assert txn.transaction_date == date(2024, 6, 15)
        assert txn.description == "다이소 명동점 - 8,500"

    def test_receipt_marked_posted(self, receipt_service, classified_receipt, test_actor_id):
        txn = receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)

        assert classified_receipt.status == "posted"
        assert classified_receipt.is_posted
        assert classified_receipt.transaction_id == txn.id
        assert classified_receipt.transaction_number == txn.transaction_number

    def test_posted_amount_reaches_balances(
        self, receipt_service, classified_receipt, ledger_selector, test_actor_id
    ):
        receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)
        assert ledger_selector.account_balance("5290", date(2024, 6, 30)).balance == Decimal(
            "8500"
        )

    def test_low_confidence_still_posts(self, receipt_service, register, test_actor_id):
        receipt = register(
            merchant_name="다이소", transaction_date=date(2024, 6, 1), total_amount=100
        )
        receipt_service.auto_classify(receipt.id, RuleBasedClassifier(confidence=Decimal("0.1")))
        txn = receipt_service.post_receipt_as_transaction(receipt.id, test_actor_id)
        assert txn.total_debits == Decimal("100")

    def test_unclassified(self, receipt_service, register, test_actor_id):
        receipt = register(transaction_date=date(2024, 6, 1), total_amount=100)
        with pytest.raises(NotClassifiedError):
            receipt_service.post_receipt_as_transaction(receipt.id, test_actor_id)

    def test_posted_once(self, receipt_service, classified_receipt, test_actor_id):
        txn = receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)
        with pytest.raises(ReceiptAlreadyPostedError) as exc_info:
            receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)
        assert exc_info.value.transaction_id == str(txn.id)

    def test_posted_receipt_cannot_be_reclassified(
        self, receipt_service, classified_receipt, test_actor_id
    ):
        receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)
        with pytest.raises(ReceiptAlreadyPostedError):
            receipt_service.auto_classify(classified_receipt.id, RuleBasedClassifier())

    def test_missing_total(self, receipt_service, register, test_actor_id):
        receipt = register(merchant_name="다이소", transaction_date=date(2024, 6, 1))
        receipt_service.auto_classify(receipt.id, RuleBasedClassifier())
        with pytest.raises(MissingFieldError) as exc_info:
            receipt_service.post_receipt_as_transaction(receipt.id, test_actor_id)
        assert exc_info.value.field == "total_amount"

    def test_ledger_rejection_leaves_receipt_unposted(
        self, receipt_service, classified_receipt, chart_service, test_actor_id
    ):
        chart_service.deactivate_account("5290", test_actor_id)
        with pytest.raises(InactiveAccountError):
            receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)
        assert not classified_receipt.is_posted
        assert classified_receipt.status == "classified"


class TestBatchPost:

    def test_mixed_outcomes(self, receipt_service, register, classified_receipt, test_actor_id):
        second = register(
            merchant_name="동네 식당", transaction_date=date(2024, 6, 2), total_amount=12000
        )
        receipt_service.auto_classify(second.id, RuleBasedClassifier())
        unclassified = register(transaction_date=date(2024, 6, 3), total_amount=500)
        missing = uuid4()

        result = receipt_service.batch_post(
            [classified_receipt.id, unclassified.id, second.id, missing, classified_receipt.id],
            test_actor_id,
        )

        assert result.posted == 2
        assert result.failed == 3
        codes = [outcome.error_code for outcome in result.outcomes]
        assert codes == [
            None,
            "RECEIPT_NOT_CLASSIFIED",
            None,
            "RECEIPT_NOT_FOUND",
            "RECEIPT_ALREADY_POSTED",
        ]
        assert classified_receipt.is_posted
        assert second.is_posted

    def test_empty_batch(self, receipt_service, test_actor_id):
        result = receipt_service.batch_post([], test_actor_id)
        assert result.outcomes == ()


class TestReviewAndValidation:

    def test_review(self, receipt_service, register, test_approver_id):
        receipt = receipt_service.review(
            register().id, ReviewStatus.NEEDS_CORRECTION, test_approver_id, notes="blurry"
        )
        assert receipt.review_status == "needs_correction"
        assert receipt.reviewed_by_id == test_approver_id
        assert receipt.review_notes == "blurry"

    def test_validate_complete_receipt(self, receipt_service, classified_receipt):
        assert receipt_service.validate_receipt(classified_receipt.id) == []
        assert classified_receipt.is_valid

    def test_validate_reports_every_issue(self, receipt_service, register):
        receipt = register(total_amount=0)
        issues = receipt_service.validate_receipt(receipt.id)

        assert [issue.field for issue in issues] == [
            "transaction_date",
            "total_amount",
            "merchant_name",
        ]
        assert receipt.is_valid is False
        assert len(receipt.validation_errors) == 3


class TestQueries:

    def test_queues(self, receipt_service, register, classified_receipt, test_actor_id):
        recognized = register()
        receipt_service.process_with_ai(recognized.id, StubOcr({"merchant_name": "x"}))
        register()

        assert [r.id for r in receipt_service.unclassified_receipts(ORG)] == [recognized.id]
        assert [r.id for r in receipt_service.unposted_receipts(ORG)] == [classified_receipt.id]

        receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)
        assert receipt_service.unposted_receipts(ORG) == []

    def test_stats(self, receipt_service, register, classified_receipt, test_actor_id):
        receipt_service.post_receipt_as_transaction(classified_receipt.id, test_actor_id)
        register(transaction_date=date(2024, 6, 20), total_amount=1500)
        register(transaction_date=date(2024, 7, 1), total_amount=99999)

        stats = receipt_service.receipt_stats(ORG, date(2024, 6, 1), date(2024, 6, 30))
        assert stats.total_receipts == 2
        assert stats.classified_receipts == 1
        assert stats.posted_receipts == 1
        assert stats.processed_receipts == 0
        assert stats.total_amount == Decimal("10000")
        assert stats.posting_rate == Decimal("50.00")

"""
Receipt Service (``taxbook_modules.receipts.service``).

Responsibility
--------------
Moves a scanned receipt from upload through recognition, classification
and review to a draft journal entry.  ``post_receipt_as_transaction`` is
the only path by which a receipt touches the ledger, and it goes through
``LedgerService`` like every other entry.

Invariants enforced
-------------------
* A receipt is posted at most once.
* Posting requires a completed classification; the classification's
  confidence is recorded but never gates posting.
* The posted entry is two balanced lines: debit the classified account,
  credit the clearing account, both for ``total_amount``.
* Collaborator failures propagate; the receipt keeps its prior state.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.orm import Session

from taxbook_kernel.domain.clock import Clock, SystemClock
from taxbook_kernel.domain.dtos import JournalLineSpec, TransactionSpec
from taxbook_kernel.exceptions import (
    ExternalServiceError,
    InvalidStateTransitionError,
    MissingFieldError,
    NotClassifiedError,
    ReceiptAlreadyPostedError,
    ReceiptNotFoundError,
    TaxbookError,
)
from taxbook_kernel.logging_config import LogContext, get_logger
from taxbook_kernel.models.account import default_vat_category
from taxbook_kernel.models.transaction import Transaction, TransactionSource
from taxbook_kernel.services.base import BaseService
from taxbook_kernel.services.ledger_service import LedgerService
from taxbook_modules.receipts.models import (
    BatchPostResult,
    Classification,
    ClassificationMethod,
    PostingOutcome,
    ReceiptIssue,
    ReceiptStats,
    ReceiptStatus,
    ReviewStatus,
)
from taxbook_modules.receipts.orm import ReceiptModel
from taxbook_modules.receipts.ports import ClassificationClient, OcrClient

logger = get_logger("modules.receipts.service")

ZERO = Decimal("0")
DEFAULT_CLEARING_ACCOUNT = "1100"

_FACT_FIELDS = ("merchant_name", "merchant_business_number", "payment_method")
_AMOUNT_FIELDS = ("total_amount", "tax_amount", "net_amount")


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class ReceiptService(BaseService[ReceiptModel]):
    """Receipt lifecycle and the receipt-to-ledger bridge."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: LedgerService | None = None,
        clearing_account_code: str = DEFAULT_CLEARING_ACCOUNT,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._ledger = ledger or LedgerService(session, self._clock)
        self._clearing_account_code = clearing_account_code

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def get_receipt(self, receipt_id: UUID) -> ReceiptModel:
        receipt = self.session.get(ReceiptModel, receipt_id)
        if receipt is None:
            raise ReceiptNotFoundError(str(receipt_id))
        return receipt

    @staticmethod
    def _require_status(receipt: ReceiptModel, allowed: set[ReceiptStatus], target: str) -> None:
        if ReceiptStatus(receipt.status) not in allowed:
            raise InvalidStateTransitionError("receipt", str(receipt.id), receipt.status, target)

    @staticmethod
    def _require_unposted(receipt: ReceiptModel) -> None:
        if receipt.is_posted:
            raise ReceiptAlreadyPostedError(
                str(receipt.id),
                str(receipt.transaction_id) if receipt.transaction_id else None,
            )

    def _apply_extracted(self, receipt: ReceiptModel, fields: dict[str, Any]) -> None:
        """Fill receipt facts the uploader left blank from recognized fields."""
        for name in _FACT_FIELDS:
            if getattr(receipt, name) is None and fields.get(name):
                setattr(receipt, name, str(fields[name]))
        for name in _AMOUNT_FIELDS:
            if getattr(receipt, name) is None and fields.get(name) is not None:
                setattr(receipt, name, Decimal(str(fields[name])))
        if receipt.transaction_date is None and fields.get("transaction_date"):
            value = fields["transaction_date"]
            receipt.transaction_date = (
                value if isinstance(value, date) else date.fromisoformat(str(value))
            )

    def _apply_classification(
        self,
        receipt: ReceiptModel,
        classification: Classification,
        actor_id: UUID | None,
    ) -> None:
        receipt.is_classified = True
        receipt.classified_at = self._clock.now()
        receipt.account_code = classification.account_code
        receipt.account_name = classification.account_name
        receipt.expense_category = classification.expense_category
        receipt.tax_category = classification.tax_category
        receipt.vat_category = classification.vat_category or default_vat_category(
            classification.tax_category
        )
        receipt.classification_confidence = classification.confidence
        receipt.classification_method = classification.method.value
        receipt.status = ReceiptStatus.CLASSIFIED.value
        if actor_id is not None:
            receipt.updated_by_id = actor_id

    # ------------------------------------------------------------------
    # Upload / recognition / classification
    # ------------------------------------------------------------------

    def register_receipt(
        self,
        organization_id: str,
        actor_id: UUID,
        image_uri: str | None = None,
        merchant_name: str | None = None,
        merchant_business_number: str | None = None,
        transaction_date: date | None = None,
        total_amount: Decimal | None = None,
        tax_amount: Decimal | None = None,
        net_amount: Decimal | None = None,
        payment_method: str | None = None,
    ) -> ReceiptModel:
        """Record an uploaded receipt in status ``uploaded``."""
        if not organization_id:
            raise MissingFieldError("organization_id")
        day = transaction_date or self._clock.today()
        receipt = ReceiptModel(
            receipt_number=f"{organization_id}-{day:%Y%m%d}-{uuid4().hex[:8].upper()}",
            organization_id=organization_id,
            image_uri=image_uri,
            status=ReceiptStatus.UPLOADED.value,
            merchant_name=merchant_name,
            merchant_business_number=merchant_business_number,
            transaction_date=transaction_date,
            total_amount=None if total_amount is None else Decimal(str(total_amount)),
            tax_amount=None if tax_amount is None else Decimal(str(tax_amount)),
            net_amount=None if net_amount is None else Decimal(str(net_amount)),
            payment_method=payment_method,
            ai_processed=False,
            is_classified=False,
            is_posted=False,
            created_by_id=actor_id,
        )
        self.session.add(receipt)
        self.session.flush()

        with LogContext.bind(receipt_id=receipt.id, organization_id=organization_id):
            logger.info("receipt_registered", extra={"receipt_number": receipt.receipt_number})
        return receipt

    def process_with_ai(self, receipt_id: UUID, ocr_client: OcrClient) -> ReceiptModel:
        """
        uploaded -> processing -> recognized.

        On a collaborator failure the receipt returns to ``uploaded`` and the
        ExternalServiceError propagates.
        """
        receipt = self.get_receipt(receipt_id)
        self._require_status(
            receipt,
            {ReceiptStatus.UPLOADED, ReceiptStatus.RECOGNIZED},
            ReceiptStatus.PROCESSING.value,
        )
        previous = receipt.status
        receipt.status = ReceiptStatus.PROCESSING.value
        self.session.flush()

        with LogContext.bind(receipt_id=receipt.id):
            try:
                result = ocr_client.recognize(
                    receipt.image_uri or "",
                    {"merchant_name": receipt.merchant_name},
                )
            except ExternalServiceError as exc:
                receipt.status = previous
                self.session.flush()
                logger.warning(
                    "receipt_recognition_failed",
                    extra={"service": exc.service, "reason": exc.reason},
                )
                raise

            receipt.extracted_fields = _json_safe(dict(result.extracted_fields))
            receipt.ai_confidence = result.confidence
            receipt.ai_processed = True
            receipt.ai_processed_at = self._clock.now()
            self._apply_extracted(receipt, result.extracted_fields)
            receipt.status = ReceiptStatus.RECOGNIZED.value
            self.session.flush()

            logger.info("receipt_recognized", extra={"confidence": result.confidence})
        return receipt

    def auto_classify(
        self,
        receipt_id: UUID,
        classifier: ClassificationClient,
        actor_id: UUID | None = None,
    ) -> ReceiptModel:
        """Ask the classifier for an account and store its answer."""
        receipt = self.get_receipt(receipt_id)
        self._require_unposted(receipt)

        fields = dict(receipt.extracted_fields or {})
        for name in _FACT_FIELDS + _AMOUNT_FIELDS + ("transaction_date",):
            if fields.get(name) is None and getattr(receipt, name) is not None:
                fields[name] = getattr(receipt, name)

        with LogContext.bind(receipt_id=receipt.id):
            try:
                classification = classifier.classify(fields)
            except ExternalServiceError as exc:
                logger.warning(
                    "receipt_classification_failed",
                    extra={"service": exc.service, "reason": exc.reason},
                )
                raise

            self._apply_classification(receipt, classification, actor_id)
            self.session.flush()

            logger.info(
                "receipt_classified",
                extra={
                    "account_code": classification.account_code,
                    "method": classification.method,
                    "confidence": classification.confidence,
                },
            )
        return receipt

    def classify_manually(
        self,
        receipt_id: UUID,
        account_code: str,
        actor_id: UUID,
        tax_category: str | None = None,
        vat_category: str | None = None,
        expense_category: str | None = None,
    ) -> ReceiptModel:
        """
        Classify by hand: confidence 1.0, method Manual.

        The account must be postable; its tax category is used when none is
        given.

        Raises:
            UnknownAccountError, InactiveAccountError, ReceiptAlreadyPostedError
        """
        receipt = self.get_receipt(receipt_id)
        self._require_unposted(receipt)
        account = self._ledger.chart.require_postable(account_code)

        classification = Classification(
            account_code=account.code,
            account_name=account.name,
            tax_category=tax_category or account.tax_category,
            vat_category=vat_category,
            expense_category=expense_category,
            confidence=Decimal("1.0"),
            method=ClassificationMethod.MANUAL,
        )
        self._apply_classification(receipt, classification, actor_id)
        self.session.flush()

        with LogContext.bind(receipt_id=receipt.id, actor_id=actor_id):
            logger.info(
                "receipt_classified",
                extra={"account_code": account.code, "method": ClassificationMethod.MANUAL},
            )
        return receipt

    def review(
        self,
        receipt_id: UUID,
        review_status: ReviewStatus | str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ReceiptModel:
        receipt = self.get_receipt(receipt_id)
        receipt.review_status = ReviewStatus(review_status).value
        receipt.review_notes = notes
        receipt.reviewed_by_id = actor_id
        receipt.reviewed_at = self._clock.now()
        receipt.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(receipt_id=receipt.id, actor_id=actor_id):
            logger.info("receipt_reviewed", extra={"review_status": receipt.review_status})
        return receipt

    def validate_receipt(self, receipt_id: UUID) -> list[ReceiptIssue]:
        """Check date, a positive total and the merchant name; store the result."""
        receipt = self.get_receipt(receipt_id)
        issues: list[ReceiptIssue] = []
        if receipt.transaction_date is None:
            issues.append(ReceiptIssue("transaction_date", "transaction date is required"))
        if receipt.total_amount is None or receipt.total_amount <= ZERO:
            issues.append(ReceiptIssue("total_amount", "total amount must be greater than 0"))
        if not receipt.merchant_name:
            issues.append(ReceiptIssue("merchant_name", "merchant name is required"))

        receipt.validation_errors = [issue.to_dict() for issue in issues]
        receipt.is_valid = not issues
        receipt.validated_at = self._clock.now()
        self.session.flush()
        return issues

    # ------------------------------------------------------------------
    # Ledger bridge
    # ------------------------------------------------------------------

    def post_receipt_as_transaction(self, receipt_id: UUID, actor_id: UUID) -> Transaction:
        """
        Write the receipt to the ledger as a two-line draft entry.

        Raises:
            ReceiptNotFoundError, ReceiptAlreadyPostedError,
            NotClassifiedError, MissingFieldError, ledger ValidationErrors
        """
        receipt = self.get_receipt(receipt_id)
        self._require_unposted(receipt)
        if not receipt.is_classified or not receipt.account_code:
            raise NotClassifiedError(str(receipt_id))
        if receipt.total_amount is None:
            raise MissingFieldError("total_amount")
        if receipt.transaction_date is None:
            raise MissingFieldError("transaction_date")

        amount = receipt.total_amount
        merchant = receipt.merchant_name or receipt.receipt_number
        tags = {"tax_category": receipt.tax_category, "vat_category": receipt.vat_category}
        spec = TransactionSpec(
            organization_id=receipt.organization_id,
            transaction_date=receipt.transaction_date,
            description=f"{merchant} - {amount:,.0f}",
            lines=(
                JournalLineSpec.debit(receipt.account_code, amount, description=merchant, **tags),
                JournalLineSpec.credit(
                    self._clearing_account_code, amount, description=merchant, **tags
                ),
            ),
            source=TransactionSource.RECEIPT.value,
        )
        txn = self._ledger.post_transaction(spec, actor_id)

        receipt.is_posted = True
        receipt.posted_at = self._clock.now()
        receipt.transaction_id = txn.id
        receipt.transaction_number = txn.transaction_number
        receipt.status = ReceiptStatus.POSTED.value
        receipt.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(receipt_id=receipt.id, transaction_id=txn.id):
            logger.info(
                "receipt_posted",
                extra={
                    "transaction_number": txn.transaction_number,
                    "account_code": receipt.account_code,
                    "amount": amount,
                    "classification_confidence": receipt.classification_confidence,
                },
            )
        return txn

    def batch_post(self, receipt_ids: Iterable[UUID], actor_id: UUID) -> BatchPostResult:
        """
        Post several receipts, each in its own savepoint.

        A failing receipt is reported in the result and does not undo the
        others.
        """
        outcomes = []
        for receipt_id in receipt_ids:
            try:
                with self.session.begin_nested():
                    txn = self.post_receipt_as_transaction(receipt_id, actor_id)
            except TaxbookError as exc:
                outcomes.append(
                    PostingOutcome(
                        receipt_id=receipt_id,
                        error_code=exc.code,
                        error_message=str(exc),
                    )
                )
                continue
            outcomes.append(PostingOutcome(receipt_id=receipt_id, transaction_id=txn.id))

        result = BatchPostResult(outcomes=tuple(outcomes))
        logger.info(
            "receipts_batch_posted",
            extra={"posted": result.posted, "failed": result.failed},
        )
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def unclassified_receipts(self, organization_id: str) -> list[ReceiptModel]:
        """Recognized but not yet classified, oldest first."""
        return list(
            self.session.execute(
                select(ReceiptModel)
                .where(
                    ReceiptModel.organization_id == organization_id,
                    ReceiptModel.ai_processed.is_(True),
                    ReceiptModel.is_classified.is_(False),
                )
                .order_by(ReceiptModel.created_at)
            ).scalars().all()
        )

    def unposted_receipts(self, organization_id: str) -> list[ReceiptModel]:
        """Classified but not yet posted, oldest first."""
        return list(
            self.session.execute(
                select(ReceiptModel)
                .where(
                    ReceiptModel.organization_id == organization_id,
                    ReceiptModel.is_classified.is_(True),
                    ReceiptModel.is_posted.is_(False),
                )
                .order_by(ReceiptModel.created_at)
            ).scalars().all()
        )

    def receipt_stats(
        self,
        organization_id: str,
        start_date: date,
        end_date: date,
    ) -> ReceiptStats:
        """Counts and total amount of receipts dated within the window."""
        row = self.session.execute(
            select(
                func.count(ReceiptModel.id).label("total"),
                func.sum(cast(ReceiptModel.ai_processed, Integer)).label("processed"),
                func.sum(cast(ReceiptModel.is_classified, Integer)).label("classified"),
                func.sum(cast(ReceiptModel.is_posted, Integer)).label("posted"),
                func.sum(ReceiptModel.total_amount).label("amount"),
            ).where(
                ReceiptModel.organization_id == organization_id,
                ReceiptModel.transaction_date >= start_date,
                ReceiptModel.transaction_date <= end_date,
            )
        ).one()
        return ReceiptStats(
            total_receipts=row.total or 0,
            processed_receipts=int(row.processed or 0),
            classified_receipts=int(row.classified or 0),
            posted_receipts=int(row.posted or 0),
            total_amount=row.amount or ZERO,
        )

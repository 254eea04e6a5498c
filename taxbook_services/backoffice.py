"""
taxbook_services.backoffice -- The back-office facade.

Responsibility:
    One entry point per external operation.  Each call opens its own
    session through ``session_scope``: it commits when the call returns and
    rolls back when anything raises, so a failed call leaves no partial
    writes behind.  Results are detached snapshots; callers never hold
    live ORM rows.

Architecture position:
    Services -- the outermost layer.  Wires kernel services, module
    services and gateway clients together for a single session
    (``_Wiring``); nothing below this layer commits.

Usage:
    office = BackOffice(get_active_config(), session_factory)
    txn = office.post_transaction(spec, actor_id)
    office.approve_transaction(txn.id, approver_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from taxbook_config import TaxbookConfig, get_active_config
from taxbook_kernel.db.engine import get_session_factory, session_scope
from taxbook_kernel.domain.clock import Clock, SystemClock
from taxbook_kernel.domain.dtos import TransactionRecord, TransactionSpec
from taxbook_kernel.logging_config import LogContext, get_logger
from taxbook_kernel.selectors.journal_selector import JournalSelector, TransactionPage
from taxbook_kernel.selectors.ledger_selector import AccountBalance, LedgerSelector
from taxbook_kernel.services.chart_service import ChartOfAccountsService
from taxbook_kernel.services.ledger_service import LedgerService
from taxbook_modules.receipts import (
    BatchPostResult,
    ClassificationClient,
    OcrClient,
    ReceiptModel,
    ReceiptService,
)
from taxbook_modules.reporting import (
    BalanceSheetReport,
    IncomeStatementReport,
    ReportingService,
    TrialBalanceReport,
)
from taxbook_modules.tax import (
    ReturnData,
    TaxAuthorityGateway,
    TaxComputationService,
    TaxReturnModel,
    TaxReturnService,
    TaxType,
    Taxpayer,
    ValidationIssue,
)
from taxbook_services.gateways import (
    HttpClassificationClient,
    HttpOcrClient,
    HttpTaxAuthorityGateway,
)

logger = get_logger("services.backoffice")


# ---------------------------------------------------------------------------
# Detached records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxReturnRecord:
    """Snapshot of a TaxReturnModel row."""

    id: UUID
    return_number: str
    organization_id: str
    tax_type: str
    return_type: str
    tax_year: int
    tax_period: int
    revision: int
    status: str
    taxpayer: Taxpayer
    filing_date: date | None
    due_date: date | None
    return_data: ReturnData | None
    is_calculated: bool
    is_valid: bool
    validation_errors: tuple[ValidationIssue, ...]
    submission_id: str | None = None
    submitted_at: datetime | None = None
    acceptance_number: str | None = None
    rejection_reason: str | None = None
    amended_from_id: UUID | None = None

    @classmethod
    def from_model(cls, tax_return: TaxReturnModel) -> TaxReturnRecord:
        return cls(
            id=tax_return.id,
            return_number=tax_return.return_number,
            organization_id=tax_return.organization_id,
            tax_type=tax_return.tax_type,
            return_type=tax_return.return_type,
            tax_year=tax_return.tax_year,
            tax_period=tax_return.tax_period,
            revision=tax_return.revision,
            status=tax_return.status,
            taxpayer=tax_return.taxpayer,
            filing_date=tax_return.filing_date,
            due_date=tax_return.due_date,
            return_data=tax_return.return_data,
            is_calculated=bool(tax_return.is_calculated),
            is_valid=bool(tax_return.is_valid),
            validation_errors=tuple(tax_return.validation_errors),
            submission_id=tax_return.submission_id,
            submitted_at=tax_return.submitted_at,
            acceptance_number=tax_return.acceptance_number,
            rejection_reason=tax_return.rejection_reason,
            amended_from_id=tax_return.amended_from_id,
        )


@dataclass(frozen=True)
class ReceiptRecord:
    """Snapshot of a ReceiptModel row."""

    id: UUID
    receipt_number: str
    organization_id: str
    status: str
    merchant_name: str | None
    transaction_date: date | None
    total_amount: Decimal | None
    is_classified: bool
    account_code: str | None
    tax_category: str | None
    vat_category: str | None
    classification_confidence: Decimal | None
    classification_method: str | None
    is_posted: bool
    transaction_id: UUID | None
    transaction_number: str | None

    @classmethod
    def from_model(cls, receipt: ReceiptModel) -> ReceiptRecord:
        return cls(
            id=receipt.id,
            receipt_number=receipt.receipt_number,
            organization_id=receipt.organization_id,
            status=receipt.status,
            merchant_name=receipt.merchant_name,
            transaction_date=receipt.transaction_date,
            total_amount=receipt.total_amount,
            is_classified=bool(receipt.is_classified),
            account_code=receipt.account_code,
            tax_category=receipt.tax_category,
            vat_category=receipt.vat_category,
            classification_confidence=receipt.classification_confidence,
            classification_method=receipt.classification_method,
            is_posted=bool(receipt.is_posted),
            transaction_id=receipt.transaction_id,
            transaction_number=receipt.transaction_number,
        )


# ---------------------------------------------------------------------------
# Per-session wiring
# ---------------------------------------------------------------------------


class _Wiring:
    """Every service for one session, each constructed exactly once."""

    def __init__(self, session: Session, config: TaxbookConfig, clock: Clock):
        settings = config.ledger
        self.chart = ChartOfAccountsService(session, clock)
        self.ledger = LedgerService(
            session, clock, chart=self.chart, balance_tolerance=settings.balance_tolerance,
        )
        self.ledger_selector = LedgerSelector(session)
        self.journal = JournalSelector(session)
        self.reporting = ReportingService(session, clock, currency=settings.currency)
        self.computation = TaxComputationService(session, config)
        self.tax = TaxReturnService(session, config, clock, computation=self.computation)
        self.receipts = ReceiptService(
            session, clock, ledger=self.ledger,
            clearing_account_code=settings.clearing_account_code,
        )


class BackOffice:
    """
    Transactional facade over the ledger, reporting, tax and receipts.

    Collaborators default to the HTTP clients configured in ``config``;
    pass explicit implementations to swap them (tests, local tooling).
    """

    def __init__(
        self,
        config: TaxbookConfig | None = None,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        ocr_client: OcrClient | None = None,
        classifier: ClassificationClient | None = None,
        tax_gateway: TaxAuthorityGateway | None = None,
    ):
        self._config = config or get_active_config()
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._ocr = ocr_client or HttpOcrClient(self._config.ocr)
        self._classifier = classifier or HttpClassificationClient(self._config.classifier)
        self._tax_gateway = tax_gateway or HttpTaxAuthorityGateway(self._config.tax_authority)

    @property
    def config(self) -> TaxbookConfig:
        return self._config

    def _scope(self):
        return session_scope(self._session_factory or get_session_factory())

    def _run(self, operation: str, work, **context: Any):
        with LogContext.bind(**context):
            with self._scope() as session:
                result = work(_Wiring(session, self._config, self._clock))
            logger.debug("backoffice_call_completed", extra={"operation": operation})
        return result

    # ------------------------------------------------------------------
    # Chart of accounts
    # ------------------------------------------------------------------

    def seed_chart(self, actor_id: UUID) -> int:
        """Load the configured standard chart; existing codes are kept."""
        return self._run(
            "seed_chart",
            lambda w: w.chart.seed_chart(self._config.chart, actor_id),
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def post_transaction(self, spec: TransactionSpec, actor_id: UUID) -> TransactionRecord:
        return self._run(
            "post_transaction",
            lambda w: TransactionRecord.from_model(w.ledger.post_transaction(spec, actor_id)),
            organization_id=spec.organization_id,
            actor_id=actor_id,
        )

    def approve_transaction(
        self,
        transaction_id: UUID,
        approver_id: UUID,
        note: str | None = None,
    ) -> TransactionRecord:
        return self._run(
            "approve_transaction",
            lambda w: TransactionRecord.from_model(
                w.ledger.approve_transaction(transaction_id, approver_id, note)
            ),
            transaction_id=transaction_id,
            actor_id=approver_id,
        )

    def cancel_transaction(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> TransactionRecord:
        return self._run(
            "cancel_transaction",
            lambda w: TransactionRecord.from_model(
                w.ledger.cancel_transaction(transaction_id, actor_id, reason)
            ),
            transaction_id=transaction_id,
            actor_id=actor_id,
        )

    def get_transaction(self, transaction_id: UUID) -> TransactionRecord:
        return self._run(
            "get_transaction",
            lambda w: TransactionRecord.from_model(w.ledger.get_transaction(transaction_id)),
        )

    def list_transactions(self, organization_id: str, **filters: Any) -> TransactionPage:
        """Filters: start_date, end_date, status, account_code, page, limit."""
        return self._run(
            "list_transactions",
            lambda w: w.journal.list_transactions(organization_id=organization_id, **filters),
        )

    def get_account_balance(
        self,
        account_code: str,
        as_of_date: date,
        organization_id: str | None = None,
    ) -> AccountBalance:
        return self._run(
            "get_account_balance",
            lambda w: w.ledger_selector.account_balance(account_code, as_of_date, organization_id),
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def trial_balance(
        self,
        as_of_date: date,
        organization_id: str | None = None,
    ) -> TrialBalanceReport:
        return self._run(
            "trial_balance",
            lambda w: w.reporting.trial_balance(as_of_date, organization_id),
        )

    def income_statement(
        self,
        year: int,
        period: int,
        organization_id: str | None = None,
    ) -> IncomeStatementReport:
        return self._run(
            "income_statement",
            lambda w: w.reporting.income_statement(year, period, organization_id),
        )

    def balance_sheet(
        self,
        year: int,
        period: int,
        organization_id: str | None = None,
    ) -> BalanceSheetReport:
        return self._run(
            "balance_sheet",
            lambda w: w.reporting.balance_sheet(year, period, organization_id),
        )

    # ------------------------------------------------------------------
    # Tax returns
    # ------------------------------------------------------------------

    def create_tax_return(
        self,
        organization_id: str,
        tax_type: TaxType | str,
        tax_year: int,
        tax_period: int,
        taxpayer: Taxpayer,
        actor_id: UUID,
        filing_date: date | None = None,
        due_date: date | None = None,
    ) -> TaxReturnRecord:
        return self._run(
            "create_tax_return",
            lambda w: TaxReturnRecord.from_model(
                w.tax.create_return(
                    organization_id, tax_type, tax_year, tax_period, taxpayer, actor_id,
                    filing_date=filing_date, due_date=due_date,
                )
            ),
            organization_id=organization_id,
            actor_id=actor_id,
        )

    def get_tax_return(self, return_id: UUID) -> TaxReturnRecord:
        return self._run(
            "get_tax_return",
            lambda w: TaxReturnRecord.from_model(w.tax.get_return(return_id)),
        )

    def calculate_tax(self, return_id: UUID, actor_id: UUID | None = None) -> TaxReturnRecord:
        return self._run(
            "calculate_tax",
            lambda w: TaxReturnRecord.from_model(w.tax.calculate(return_id, actor_id)),
            return_id=return_id,
        )

    def validate_tax_return(
        self,
        return_id: UUID,
        actor_id: UUID | None = None,
    ) -> TaxReturnRecord:
        return self._run(
            "validate_tax_return",
            lambda w: TaxReturnRecord.from_model(w.tax.validate(return_id, actor_id)),
            return_id=return_id,
        )

    def file_tax_return(self, return_id: UUID, actor_id: UUID | None = None) -> TaxReturnRecord:
        """Submit to the tax authority; a gateway failure rolls everything back."""
        return self._run(
            "file_tax_return",
            lambda w: TaxReturnRecord.from_model(
                w.tax.file(return_id, self._tax_gateway, actor_id)
            ),
            return_id=return_id,
        )

    def record_filing_result(
        self,
        return_id: UUID,
        accepted: bool,
        reason: str | None = None,
        acceptance_number: str | None = None,
    ) -> TaxReturnRecord:
        return self._run(
            "record_filing_result",
            lambda w: TaxReturnRecord.from_model(
                w.tax.submit_result(return_id, accepted, reason, acceptance_number)
            ),
            return_id=return_id,
        )

    def amend_tax_return(self, return_id: UUID, actor_id: UUID) -> TaxReturnRecord:
        return self._run(
            "amend_tax_return",
            lambda w: TaxReturnRecord.from_model(w.tax.amend(return_id, actor_id)),
            return_id=return_id,
        )

    def cancel_tax_return(self, return_id: UUID, actor_id: UUID, reason: str) -> TaxReturnRecord:
        return self._run(
            "cancel_tax_return",
            lambda w: TaxReturnRecord.from_model(w.tax.cancel(return_id, actor_id, reason)),
            return_id=return_id,
        )

    def overdue_tax_returns(
        self,
        organization_id: str,
        today: date | None = None,
    ) -> list[TaxReturnRecord]:
        return self._run(
            "overdue_tax_returns",
            lambda w: [
                TaxReturnRecord.from_model(r)
                for r in w.tax.overdue_returns(organization_id, today)
            ],
        )

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def register_receipt(self, organization_id: str, actor_id: UUID, **facts: Any) -> ReceiptRecord:
        return self._run(
            "register_receipt",
            lambda w: ReceiptRecord.from_model(
                w.receipts.register_receipt(organization_id, actor_id, **facts)
            ),
            organization_id=organization_id,
            actor_id=actor_id,
        )

    def process_receipt(self, receipt_id: UUID, actor_id: UUID | None = None) -> ReceiptRecord:
        """Recognize then classify with the configured collaborators."""

        def work(w: _Wiring) -> ReceiptRecord:
            w.receipts.process_with_ai(receipt_id, self._ocr)
            return ReceiptRecord.from_model(
                w.receipts.auto_classify(receipt_id, self._classifier, actor_id)
            )

        return self._run("process_receipt", work, receipt_id=receipt_id)

    def post_receipt_as_transaction(self, receipt_id: UUID, actor_id: UUID) -> TransactionRecord:
        return self._run(
            "post_receipt_as_transaction",
            lambda w: TransactionRecord.from_model(
                w.receipts.post_receipt_as_transaction(receipt_id, actor_id)
            ),
            receipt_id=receipt_id,
            actor_id=actor_id,
        )

    def batch_post_receipts(self, receipt_ids: Iterable[UUID], actor_id: UUID) -> BatchPostResult:
        return self._run(
            "batch_post_receipts",
            lambda w: w.receipts.batch_post(list(receipt_ids), actor_id),
            actor_id=actor_id,
        )

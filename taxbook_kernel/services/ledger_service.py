"""
LedgerService -- validates and writes journal entries (Transactions).

The Ledger is responsible for:
- Rejecting entries that break double-entry rules before anything is written
- Writing a Transaction and all of its lines in one flush
- Resolving VAT tags for each line
- Moving entries through draft -> posted and into cancelled

The Ledger does NOT:
- Compute balances (LedgerSelector)
- Commit (the caller owns the database transaction)
- Generate reversing entries on cancellation

Tax tag resolution per line (first hit wins):
    1. tags on the JournalLineSpec
    2. entry-level tags on the TransactionSpec
    3. the single distinct tax_category among the entry's accounts, so a
       purchase "Dr 5210(공제) / Cr 1100" tags both lines 공제/과세
    4. none
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from taxbook_kernel.domain.clock import Clock, SystemClock
from taxbook_kernel.domain.dtos import JournalLineSpec, TransactionSpec
from taxbook_kernel.exceptions import (
    AlreadyPostedError,
    InvalidLineAmountError,
    MissingFieldError,
    TransactionCancelledError,
    TransactionNotFoundError,
    UnbalancedEntryError,
    ValidationError,
)
from taxbook_kernel.logging_config import LogContext, get_logger
from taxbook_kernel.models.account import Account, TaxCategory, default_vat_category
from taxbook_kernel.models.transaction import (
    JournalLine,
    Transaction,
    TransactionSource,
    TransactionStatus,
)
from taxbook_kernel.services.base import BaseService
from taxbook_kernel.services.chart_service import ChartOfAccountsService

logger = get_logger("services.ledger")

DEFAULT_BALANCE_TOLERANCE = Decimal("0.01")
ZERO = Decimal("0")


def _tax_tag(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return TaxCategory(value).value
    except ValueError:
        raise ValidationError(
            f"Unknown tax category: {value!r}", rule="invalid_tax_category"
        ) from None


class LedgerService(BaseService[Transaction]):
    """
    Write side of the ledger.

    All operations happen within the caller's transaction boundary.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        chart: ChartOfAccountsService | None = None,
        balance_tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._chart = chart or ChartOfAccountsService(session, self._clock)
        self._tolerance = balance_tolerance

    @property
    def chart(self) -> ChartOfAccountsService:
        return self._chart

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_header(self, spec: TransactionSpec) -> None:
        if not spec.organization_id:
            raise MissingFieldError("organization_id")
        if spec.transaction_date is None:
            raise MissingFieldError("transaction_date")
        if not spec.description:
            raise MissingFieldError("description")

    def _validate_lines(self, lines: tuple[JournalLineSpec, ...]) -> list[Account]:
        """
        Check amounts, resolve accounts and check balance.

        Returns the resolved Account for each line, in order.

        Raises:
            ValidationError (minimum_lines), InvalidLineAmountError,
            UnknownAccountError, InactiveAccountError, UnbalancedEntryError
        """
        if len(lines) < 2:
            raise ValidationError(
                f"A journal entry needs at least two lines, got {len(lines)}",
                rule="minimum_lines",
            )

        for seq, line in enumerate(lines):
            if (
                not (line.debit_amount.is_finite() and line.credit_amount.is_finite())
                or line.debit_amount < ZERO
                or line.credit_amount < ZERO
                or (line.debit_amount == ZERO and line.credit_amount == ZERO)
            ):
                raise InvalidLineAmountError(seq, line.debit_amount, line.credit_amount)

        accounts = [self._chart.require_postable(line.account_code) for line in lines]

        total_debits = sum((line.debit_amount for line in lines), ZERO)
        total_credits = sum((line.credit_amount for line in lines), ZERO)
        if abs(total_debits - total_credits) > self._tolerance:
            raise UnbalancedEntryError(total_debits, total_credits, self._tolerance)

        return accounts

    @staticmethod
    def _resolve_tags(
        spec: TransactionSpec,
        accounts: list[Account],
    ) -> list[tuple[str | None, str | None]]:
        account_categories = {a.tax_category for a in accounts if a.tax_category}
        inferred = account_categories.pop() if len(account_categories) == 1 else None

        resolved = []
        for line in spec.lines:
            tax_category = line.tax_category or spec.tax_category or inferred
            tax_category = _tax_tag(tax_category)
            vat_category = (
                line.vat_category
                or spec.vat_category
                or default_vat_category(tax_category)
            )
            vat_category = _tax_tag(vat_category)
            resolved.append((tax_category, vat_category))
        return resolved

    @staticmethod
    def _transaction_number(organization_id: str, transaction_date: date, txn_id: UUID) -> str:
        return f"{organization_id}-{transaction_date:%Y%m%d}-{txn_id.hex[:8].upper()}"

    def _build_lines(
        self,
        spec: TransactionSpec,
        accounts: list[Account],
        actor_id: UUID,
    ) -> list[JournalLine]:
        tags = self._resolve_tags(spec, accounts)
        return [
            JournalLine(
                account_code=line.account_code,
                debit_amount=line.debit_amount,
                credit_amount=line.credit_amount,
                description=line.description,
                tax_category=tax_category,
                vat_category=vat_category,
                line_seq=seq,
                created_by_id=actor_id,
            )
            for seq, (line, (tax_category, vat_category)) in enumerate(
                zip(spec.lines, tags, strict=True)
            )
        ]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def post_transaction(self, spec: TransactionSpec, actor_id: UUID) -> Transaction:
        """
        Validate and persist a journal entry as a draft.

        Every check runs before the first ``session.add``, so a rejected
        entry leaves no rows behind.  On success each distinct referenced
        account's usage counter is incremented.

        Raises:
            ValidationError subclasses naming the failed rule.
        """
        self._validate_header(spec)
        accounts = self._validate_lines(spec.lines)

        txn_id = uuid4()
        txn = Transaction(
            id=txn_id,
            organization_id=spec.organization_id,
            transaction_number=self._transaction_number(
                spec.organization_id, spec.transaction_date, txn_id,
            ),
            transaction_date=spec.transaction_date,
            description=spec.description,
            status=TransactionStatus.DRAFT.value,
            source=TransactionSource(spec.source).value,
            created_by_id=actor_id,
        )
        txn.lines = self._build_lines(spec, accounts, actor_id)
        self.session.add(txn)
        self._chart.record_usage(accounts, self._clock.now())
        self.session.flush()

        with LogContext.bind(transaction_id=txn.id, organization_id=spec.organization_id):
            logger.info(
                "transaction_recorded",
                extra={
                    "transaction_number": txn.transaction_number,
                    "line_count": len(txn.lines),
                    "total_debits": spec.total_debits,
                    "total_credits": spec.total_credits,
                    "source": txn.source,
                },
            )
        return txn

    def get_transaction(self, transaction_id: UUID) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        return txn

    def update_draft(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        description: str | None = None,
        transaction_date: date | None = None,
        lines: tuple[JournalLineSpec, ...] | list[JournalLineSpec] | None = None,
    ) -> Transaction:
        """
        Edit a draft.  Replacement lines go through the same validation as
        post_transaction and are checked before anything changes.  A new
        date renumbers the entry; accounts the draft did not reference
        before have their usage counted.

        Raises:
            TransactionNotFoundError, AlreadyPostedError,
            TransactionCancelledError, ValidationError subclasses
        """
        txn = self.get_transaction(transaction_id)
        if txn.is_cancelled:
            raise TransactionCancelledError(str(transaction_id))
        if txn.is_posted:
            raise AlreadyPostedError(str(transaction_id))

        if description is not None and not description:
            raise MissingFieldError("description")
        if lines is not None:
            spec = TransactionSpec(
                organization_id=txn.organization_id,
                transaction_date=transaction_date or txn.transaction_date,
                description=description or txn.description,
                lines=tuple(lines),
            )
            accounts = self._validate_lines(spec.lines)
            new_lines = self._build_lines(spec, accounts, actor_id)

        if description is not None:
            txn.description = description
        if transaction_date is not None and transaction_date != txn.transaction_date:
            txn.transaction_date = transaction_date
            txn.transaction_number = self._transaction_number(
                txn.organization_id, transaction_date, txn.id,
            )
        if lines is not None:
            previous = {line.account_code for line in txn.lines}
            txn.lines.clear()
            self.session.flush()
            txn.lines.extend(new_lines)
            self._chart.record_usage(
                [account for account in accounts if account.code not in previous],
                self._clock.now(),
            )
        txn.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "transaction_updated",
            extra={
                "transaction_id": txn.id,
                "transaction_number": txn.transaction_number,
                "lines_replaced": lines is not None,
            },
        )
        return txn

    def approve_transaction(
        self,
        transaction_id: UUID,
        approver_id: UUID,
        note: str | None = None,
    ) -> Transaction:
        """
        draft -> posted.

        Raises:
            TransactionNotFoundError, AlreadyPostedError,
            TransactionCancelledError
        """
        txn = self.get_transaction(transaction_id)
        if txn.is_posted:
            raise AlreadyPostedError(str(transaction_id))
        if txn.is_cancelled:
            raise TransactionCancelledError(str(transaction_id))

        txn.status = TransactionStatus.POSTED.value
        txn.approved_by_id = approver_id
        txn.approved_at = self._clock.now()
        txn.approval_note = note
        txn.updated_by_id = approver_id
        self.session.flush()

        logger.info(
            "transaction_posted",
            extra={
                "transaction_id": txn.id,
                "transaction_number": txn.transaction_number,
                "approver_id": approver_id,
            },
        )
        return txn

    def cancel_transaction(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> Transaction:
        """
        Any non-cancelled status -> cancelled.

        The row stays; balance queries skip it from now on.  No reversing
        entry is written.

        Raises:
            TransactionNotFoundError, TransactionCancelledError, MissingFieldError
        """
        if not reason:
            raise MissingFieldError("reason")
        txn = self.get_transaction(transaction_id)
        if txn.is_cancelled:
            raise TransactionCancelledError(str(transaction_id))

        previous = txn.status
        txn.status = TransactionStatus.CANCELLED.value
        txn.cancelled_by_id = actor_id
        txn.cancelled_at = self._clock.now()
        txn.cancellation_reason = reason
        txn.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "transaction_cancelled",
            extra={
                "transaction_id": txn.id,
                "previous_status": previous,
                "reason": reason,
            },
        )
        return txn

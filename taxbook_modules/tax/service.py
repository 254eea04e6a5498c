"""
Tax Return Service (``taxbook_modules.tax.service``).

Responsibility
--------------
Drives a TaxReturn through its lifecycle: creation, calculation,
validation, filing with the tax authority, the authority's verdict,
amendment and cancellation.  Flush-only; the caller owns the commit.

Invariants enforced
-------------------
* At most one return per (organization, tax type, year, period) is ever
  created; a duplicate is refused up front and, if a concurrent insert
  wins the race, by the unique constraint.
* Every status change goes through ``lifecycle.validate_transition``.
* ``calculate`` is idempotent: with an unchanged ledger it writes the same
  ``return_data`` every time.
* ``file`` leaves the return untouched when the gateway call fails.

Failure modes
-------------
* ``TaxReturnNotFoundError`` for unknown ids.
* ``DuplicateReturnError`` on a second return for the same period.
* ``InvalidStateTransitionError`` for a transition the lifecycle forbids.
* ``ReturnNotValidatedError`` when filing a return that failed (or never
  ran) validation.
* ``ExternalServiceError`` from the gateway propagates unchanged.
"""

from __future__ import annotations

import re
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taxbook_config.schema import TaxbookConfig
from taxbook_kernel.domain.clock import Clock, SystemClock
from taxbook_kernel.exceptions import (
    DuplicateReturnError,
    ExternalServiceError,
    InvalidStateTransitionError,
    MissingFieldError,
    ReturnNotValidatedError,
    TaxReturnNotFoundError,
    ValidationError,
)
from taxbook_kernel.logging_config import LogContext, get_logger
from taxbook_kernel.services.base import BaseService
from taxbook_modules.tax.computation import TaxComputationService
from taxbook_modules.tax.gateway import TaxAuthorityGateway
from taxbook_modules.tax.lifecycle import is_terminal, validate_transition
from taxbook_modules.tax.models import (
    ReturnType,
    TaxReturnStatus,
    TaxType,
    Taxpayer,
    IssueSeverity,
    ValidationIssue,
    non_negative_items,
    return_data_to_dict,
)
from taxbook_modules.tax.orm import TaxReturnModel

logger = get_logger("modules.tax.service")

_BUSINESS_NUMBER = re.compile(r"\d{10}")

OVERDUE_STATUSES = frozenset(
    {
        TaxReturnStatus.DRAFT,
        TaxReturnStatus.CALCULATED,
        TaxReturnStatus.VALIDATED,
        TaxReturnStatus.REJECTED,
    }
)


def return_number_for(
    organization_id: str,
    tax_type: TaxType,
    tax_year: int,
    tax_period: int,
    revision: int,
) -> str:
    return f"{organization_id}-{tax_type.value}-{tax_year}{tax_period:02d}-R{revision}"


def validate_return(tax_return: TaxReturnModel) -> list[ValidationIssue]:
    """
    Structural checks, independent of whether figures were calculated.

    Taxpayer business number (10 digits, hyphens ignored) and name are
    required, a filing date must be set, and every amount in
    ``return_data`` must be >= 0 except the signed ones (a corporate
    operating loss).  A filing date after the due date is only a warning.
    """
    issues: list[ValidationIssue] = []
    taxpayer = tax_return.taxpayer

    if not taxpayer.business_number:
        issues.append(ValidationIssue("taxpayer.business_number", "business number is required"))
    elif not _BUSINESS_NUMBER.fullmatch(taxpayer.business_number.replace("-", "")):
        issues.append(
            ValidationIssue("taxpayer.business_number", "business number must have 10 digits")
        )
    if not taxpayer.taxpayer_name:
        issues.append(ValidationIssue("taxpayer.taxpayer_name", "taxpayer name is required"))
    if tax_return.filing_date is None:
        issues.append(ValidationIssue("filing_date", "filing date is required"))
    elif tax_return.due_date is not None and tax_return.filing_date > tax_return.due_date:
        issues.append(
            ValidationIssue(
                "filing_date", "filing date is after the due date", IssueSeverity.WARNING,
            )
        )

    data = tax_return.return_data
    if data is not None:
        for name, amount in non_negative_items(data):
            if amount < 0:
                issues.append(ValidationIssue(f"return_data.{name}", "amount must be >= 0"))
    return issues


class TaxReturnService(BaseService[TaxReturnModel]):
    """Lifecycle operations on TaxReturnModel rows."""

    def __init__(
        self,
        session: Session,
        config: TaxbookConfig,
        clock: Clock | None = None,
        computation: TaxComputationService | None = None,
    ):
        super().__init__(session)
        self._config = config
        self._clock = clock or SystemClock()
        self._computation = computation or TaxComputationService(session, config)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, tax_return: TaxReturnModel, target: TaxReturnStatus) -> None:
        if not validate_transition(tax_return.status, target):
            raise InvalidStateTransitionError(
                "tax_return", str(tax_return.id), tax_return.status, target.value,
            )
        tax_return.status = target.value

    def _default_due_date(self, tax_type: TaxType, tax_year: int, tax_period: int) -> date:
        rules = self._config.rules_for(tax_year)
        match tax_type:
            case TaxType.VAT:
                return rules.vat_due_date(tax_year, tax_period)
            case TaxType.INCOME_TAX:
                return rules.annual_due_date(tax_year, corporate=False)
            case TaxType.CORPORATE_TAX:
                return rules.annual_due_date(tax_year, corporate=True)

    def _mark_late(self, tax_return: TaxReturnModel) -> None:
        """A regular return whose filing date passes the due date becomes ``late``."""
        if tax_return.return_type == ReturnType.AMENDED.value:
            return
        late = tax_return.filing_date is not None and tax_return.filing_date > tax_return.due_date
        tax_return.return_type = (ReturnType.LATE if late else ReturnType.REGULAR).value

    def _existing(
        self,
        organization_id: str,
        tax_type: TaxType,
        tax_year: int,
        tax_period: int,
    ) -> TaxReturnModel | None:
        return self.session.execute(
            select(TaxReturnModel)
            .where(
                TaxReturnModel.organization_id == organization_id,
                TaxReturnModel.tax_type == tax_type.value,
                TaxReturnModel.tax_year == tax_year,
                TaxReturnModel.tax_period == tax_period,
            )
            .limit(1)
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_return(self, return_id: UUID) -> TaxReturnModel:
        tax_return = self.session.get(TaxReturnModel, return_id)
        if tax_return is None:
            raise TaxReturnNotFoundError(str(return_id))
        return tax_return

    def list_returns(
        self,
        organization_id: str,
        tax_type: TaxType | str | None = None,
        tax_year: int | None = None,
        status: TaxReturnStatus | str | None = None,
    ) -> list[TaxReturnModel]:
        """Newest period first; revisions of one period newest first."""
        query = select(TaxReturnModel).where(TaxReturnModel.organization_id == organization_id)
        if tax_type is not None:
            query = query.where(TaxReturnModel.tax_type == TaxType(tax_type).value)
        if tax_year is not None:
            query = query.where(TaxReturnModel.tax_year == tax_year)
        if status is not None:
            query = query.where(TaxReturnModel.status == TaxReturnStatus(status).value)
        query = query.order_by(
            TaxReturnModel.tax_year.desc(),
            TaxReturnModel.tax_period.desc(),
            TaxReturnModel.revision.desc(),
        )
        return list(self.session.execute(query).scalars().all())

    def overdue_returns(
        self,
        organization_id: str,
        today: date | None = None,
    ) -> list[TaxReturnModel]:
        """Returns past their due date that still need filing."""
        today = today or self._clock.today()
        query = (
            select(TaxReturnModel)
            .where(
                TaxReturnModel.organization_id == organization_id,
                TaxReturnModel.due_date < today,
                TaxReturnModel.status.in_([s.value for s in OVERDUE_STATUSES]),
            )
            .order_by(TaxReturnModel.due_date)
        )
        return list(self.session.execute(query).scalars().all())

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_return(
        self,
        organization_id: str,
        tax_type: TaxType | str,
        tax_year: int,
        tax_period: int,
        taxpayer: Taxpayer,
        actor_id: UUID,
        filing_date: date | None = None,
        due_date: date | None = None,
        return_type: ReturnType = ReturnType.REGULAR,
    ) -> TaxReturnModel:
        """
        Create the draft return for a period.

        Raises:
            MissingFieldError, ValidationError (invalid_tax_period),
            DuplicateReturnError
        """
        tax_type = TaxType(tax_type)
        if not organization_id:
            raise MissingFieldError("organization_id")
        if not 1 <= tax_period <= 12:
            raise ValidationError(
                f"tax_period must be 1-12, got {tax_period}", rule="invalid_tax_period",
            )

        if self._existing(organization_id, tax_type, tax_year, tax_period) is not None:
            raise DuplicateReturnError(organization_id, tax_type.value, tax_year, tax_period)

        tax_return = TaxReturnModel(
            organization_id=organization_id,
            return_number=return_number_for(organization_id, tax_type, tax_year, tax_period, 0),
            tax_type=tax_type.value,
            return_type=ReturnType(return_type).value,
            tax_year=tax_year,
            tax_period=tax_period,
            revision=0,
            status=TaxReturnStatus.DRAFT.value,
            filing_date=filing_date,
            due_date=due_date or self._default_due_date(tax_type, tax_year, tax_period),
            is_calculated=False,
            is_valid=False,
            created_by_id=actor_id,
        )
        tax_return.taxpayer = taxpayer
        self._mark_late(tax_return)
        self.session.add(tax_return)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            logger.warning(
                "tax_return_create_conflict",
                extra={
                    "organization_id": organization_id,
                    "tax_type": tax_type.value,
                    "tax_year": tax_year,
                    "tax_period": tax_period,
                },
            )
            raise DuplicateReturnError(
                organization_id, tax_type.value, tax_year, tax_period,
            ) from None

        with LogContext.bind(return_id=tax_return.id, organization_id=organization_id):
            logger.info(
                "tax_return_created",
                extra={
                    "return_number": tax_return.return_number,
                    "tax_type": tax_type.value,
                    "due_date": tax_return.due_date,
                },
            )
        return tax_return

    def update_taxpayer(
        self,
        return_id: UUID,
        taxpayer: Taxpayer,
        actor_id: UUID,
        filing_date: date | None = None,
    ) -> TaxReturnModel:
        """Edit the taxpayer section before filing.  Clears prior validation."""
        tax_return = self.get_return(return_id)
        if tax_return.status_enum not in (
            TaxReturnStatus.DRAFT,
            TaxReturnStatus.CALCULATED,
            TaxReturnStatus.VALIDATED,
        ):
            raise InvalidStateTransitionError(
                "tax_return", str(return_id), tax_return.status, "edit",
            )
        tax_return.taxpayer = taxpayer
        if filing_date is not None:
            tax_return.filing_date = filing_date
            self._mark_late(tax_return)
        tax_return.is_valid = False
        if tax_return.status_enum == TaxReturnStatus.VALIDATED:
            self._transition(
                tax_return,
                TaxReturnStatus.CALCULATED if tax_return.is_calculated else TaxReturnStatus.DRAFT,
            )
        tax_return.updated_by_id = actor_id
        self.session.flush()
        return tax_return

    def calculate(self, return_id: UUID, actor_id: UUID | None = None) -> TaxReturnModel:
        """
        Compute figures from the ledger and overwrite ``return_data``.

        Moves the return to ``calculated``.  A validated return drops back
        to ``calculated`` and must be validated again.
        """
        tax_return = self.get_return(return_id)
        self._transition(tax_return, TaxReturnStatus.CALCULATED)

        tax_return.return_data = self._computation.compute(
            tax_return.tax_type,
            tax_return.organization_id,
            tax_return.tax_year,
            tax_return.tax_period,
        )
        tax_return.is_calculated = True
        tax_return.calculated_at = self._clock.now()
        tax_return.is_valid = False
        tax_return.validated_at = None
        if actor_id is not None:
            tax_return.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(return_id=tax_return.id):
            logger.info(
                "tax_return_calculated",
                extra={
                    "tax_type": tax_return.tax_type,
                    "tax_liability": tax_return.return_data.tax_liability,
                },
            )
        return tax_return

    def validate(self, return_id: UUID, actor_id: UUID | None = None) -> TaxReturnModel:
        """
        Run the structural checks and record the result.

        Every issue is stored; only error-severity ones block.  A clean
        result moves the return to ``validated``; a failing result on an
        already-validated return moves it back to ``calculated`` (or
        ``draft`` when no figures exist yet).
        """
        tax_return = self.get_return(return_id)
        if not validate_transition(tax_return.status, TaxReturnStatus.VALIDATED):
            raise InvalidStateTransitionError(
                "tax_return", str(return_id), tax_return.status, TaxReturnStatus.VALIDATED.value,
            )

        issues = validate_return(tax_return)
        tax_return.validation_errors = issues
        errors = [i for i in issues if i.severity == IssueSeverity.ERROR]
        tax_return.is_valid = not errors
        tax_return.validated_at = self._clock.now()

        if tax_return.is_valid:
            self._transition(tax_return, TaxReturnStatus.VALIDATED)
        elif tax_return.status_enum == TaxReturnStatus.VALIDATED:
            self._transition(
                tax_return,
                TaxReturnStatus.CALCULATED if tax_return.is_calculated else TaxReturnStatus.DRAFT,
            )
        if actor_id is not None:
            tax_return.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(return_id=tax_return.id):
            logger.info(
                "tax_return_validated",
                extra={
                    "is_valid": tax_return.is_valid,
                    "error_count": len(errors),
                    "warning_count": len(issues) - len(errors),
                },
            )
        return tax_return

    def build_payload(self, tax_return: TaxReturnModel) -> dict:
        data = tax_return.return_data
        taxpayer = tax_return.taxpayer
        return {
            "return_number": tax_return.return_number,
            "organization_id": tax_return.organization_id,
            "tax_type": tax_return.tax_type,
            "return_type": tax_return.return_type,
            "tax_year": tax_return.tax_year,
            "tax_period": tax_return.tax_period,
            "filing_date": tax_return.filing_date.isoformat() if tax_return.filing_date else None,
            "taxpayer": {
                "business_number": taxpayer.business_number,
                "taxpayer_name": taxpayer.taxpayer_name,
                "representative": taxpayer.representative,
                "address": taxpayer.address,
                "business_type": taxpayer.business_type,
            },
            "return_data": return_data_to_dict(data) if data is not None else None,
        }

    def file(
        self,
        return_id: UUID,
        gateway: TaxAuthorityGateway,
        actor_id: UUID | None = None,
    ) -> TaxReturnModel:
        """
        Submit a validated return to the tax authority.

        The gateway is called before any field changes, so a failed call
        leaves the return exactly as it was.

        Raises:
            ReturnNotValidatedError, InvalidStateTransitionError,
            ExternalServiceError
        """
        tax_return = self.get_return(return_id)
        if not tax_return.is_valid:
            raise ReturnNotValidatedError(str(return_id), len(tax_return.validation_errors))
        if not validate_transition(tax_return.status, TaxReturnStatus.FILED):
            raise InvalidStateTransitionError(
                "tax_return", str(return_id), tax_return.status, TaxReturnStatus.FILED.value,
            )

        with LogContext.bind(return_id=tax_return.id):
            try:
                submission_id = gateway.submit_return(self.build_payload(tax_return))
            except ExternalServiceError as exc:
                logger.warning(
                    "tax_return_filing_failed",
                    extra={"service": exc.service, "reason": exc.reason},
                )
                raise

            self._transition(tax_return, TaxReturnStatus.FILED)
            tax_return.submission_id = submission_id
            tax_return.submitted_at = self._clock.now()
            if actor_id is not None:
                tax_return.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "tax_return_filed",
                extra={
                    "return_number": tax_return.return_number,
                    "submission_id": submission_id,
                },
            )
        return tax_return

    def submit_result(
        self,
        return_id: UUID,
        accepted: bool,
        reason: str | None = None,
        acceptance_number: str | None = None,
    ) -> TaxReturnModel:
        """Record the authority's verdict on a filed return."""
        tax_return = self.get_return(return_id)
        target = TaxReturnStatus.ACCEPTED if accepted else TaxReturnStatus.REJECTED
        self._transition(tax_return, target)

        tax_return.resolved_at = self._clock.now()
        if accepted:
            tax_return.acceptance_number = acceptance_number
        else:
            tax_return.rejection_reason = reason
        self.session.flush()

        with LogContext.bind(return_id=tax_return.id):
            logger.info(
                "tax_return_resolved",
                extra={"status": tax_return.status, "reason": reason},
            )
        return tax_return

    def amend(self, return_id: UUID, actor_id: UUID) -> TaxReturnModel:
        """
        Supersede a return with a new draft revision.

        The original moves to ``amended``; the new row shares its period and
        taxpayer, carries ``return_type = amended``, the next revision number
        and ``amended_from_id`` pointing at the original.
        """
        original = self.get_return(return_id)
        self._transition(original, TaxReturnStatus.AMENDED)
        original.updated_by_id = actor_id

        tax_type = original.tax_type_enum
        revision = original.revision + 1
        amended = TaxReturnModel(
            organization_id=original.organization_id,
            return_number=return_number_for(
                original.organization_id, tax_type, original.tax_year, original.tax_period,
                revision,
            ),
            tax_type=original.tax_type,
            return_type=ReturnType.AMENDED.value,
            tax_year=original.tax_year,
            tax_period=original.tax_period,
            revision=revision,
            status=TaxReturnStatus.DRAFT.value,
            due_date=original.due_date,
            is_calculated=False,
            is_valid=False,
            amended_from_id=original.id,
            created_by_id=actor_id,
        )
        amended.taxpayer = original.taxpayer
        self.session.add(amended)
        self.session.flush()

        with LogContext.bind(return_id=amended.id):
            logger.info(
                "tax_return_amended",
                extra={"amended_from_id": original.id, "revision": revision},
            )
        return amended

    def cancel(self, return_id: UUID, actor_id: UUID, reason: str) -> TaxReturnModel:
        if not reason:
            raise MissingFieldError("reason")
        tax_return = self.get_return(return_id)
        if is_terminal(tax_return.status):
            raise InvalidStateTransitionError(
                "tax_return", str(return_id), tax_return.status, TaxReturnStatus.CANCELLED.value,
            )
        self._transition(tax_return, TaxReturnStatus.CANCELLED)
        tax_return.cancellation_reason = reason
        tax_return.cancelled_at = self._clock.now()
        tax_return.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(return_id=tax_return.id):
            logger.info("tax_return_cancelled", extra={"reason": reason})
        return tax_return

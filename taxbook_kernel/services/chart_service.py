"""
ChartOfAccountsService -- registry of postable account codes.

Responsibility:
    Creates, updates, deactivates and resolves Accounts.  The ledger calls
    ``require_postable`` for every journal line so unknown or inactive
    codes are rejected synchronously at write time.

Invariants enforced:
    - Codes are numeric strings and unique (uq_account_code backs the
      check against concurrent inserts).
    - normal_balance always equals normal_balance_for(category).
    - category (and therefore normal_balance) is frozen once any journal
      line references the account.
    - Accounts are never deleted.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taxbook_kernel.domain.clock import Clock, SystemClock
from taxbook_kernel.exceptions import (
    AccountNotFoundError,
    AccountReferencedError,
    DuplicateAccountError,
    InactiveAccountError,
    InvalidAccountDefinitionError,
    UnknownAccountError,
)
from taxbook_kernel.logging_config import get_logger
from taxbook_kernel.models.account import (
    Account,
    AccountCategory,
    NormalBalance,
    TaxCategory,
    normal_balance_for,
)
from taxbook_kernel.selectors.journal_selector import JournalSelector
from taxbook_kernel.services.base import BaseService

logger = get_logger("services.chart")


def _parse_category(code: str, category: Any) -> AccountCategory:
    try:
        return AccountCategory(category)
    except ValueError:
        raise InvalidAccountDefinitionError(code, f"unknown category {category!r}") from None


def _parse_tax_category(code: str, tax_category: Any) -> str | None:
    if tax_category is None:
        return None
    try:
        return TaxCategory(tax_category).value
    except ValueError:
        raise InvalidAccountDefinitionError(
            code, f"unknown tax category {tax_category!r}"
        ) from None


class ChartOfAccountsService(BaseService[Account]):
    """Write side of the chart of accounts."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _find(self, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.code == str(code))
        ).scalar_one_or_none()

    def get_account(self, code: str) -> Account:
        account = self._find(code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def require_postable(self, code: str) -> Account:
        """
        Resolve a journal line's account reference.

        Raises:
            UnknownAccountError: No account with this code.
            InactiveAccountError: Account exists but is deactivated.
        """
        account = self._find(code)
        if account is None:
            raise UnknownAccountError(code)
        if not account.is_active:
            raise InactiveAccountError(code)
        return account

    def list_accounts(
        self,
        category: AccountCategory | str | None = None,
        active_only: bool = False,
    ) -> list[Account]:
        query = select(Account).order_by(Account.code)
        if category is not None:
            query = query.where(Account.category == AccountCategory(category).value)
        if active_only:
            query = query.where(Account.is_active.is_(True))
        return list(self.session.execute(query).scalars().all())

    def create_account(
        self,
        code: str,
        name: str,
        category: AccountCategory | str,
        actor_id: UUID,
        normal_balance: NormalBalance | str | None = None,
        tax_category: TaxCategory | str | None = None,
        tags: Iterable[str] = (),
    ) -> Account:
        """
        Register a new account.

        Raises:
            InvalidAccountDefinitionError: Non-numeric code, unknown category,
                or a normal balance that contradicts the category.
            DuplicateAccountError: Code already registered.
        """
        code = str(code)
        if not code.isdigit():
            raise InvalidAccountDefinitionError(code, "code must be numeric")
        parsed_category = _parse_category(code, category)
        derived = normal_balance_for(parsed_category)
        if normal_balance is not None and NormalBalance(normal_balance) != derived:
            raise InvalidAccountDefinitionError(
                code,
                f"{parsed_category.value} accounts are {derived.value}-normal",
            )
        if self._find(code) is not None:
            raise DuplicateAccountError(code)

        account = Account(
            code=code,
            name=name,
            category=parsed_category.value,
            normal_balance=derived.value,
            is_active=True,
            tax_category=_parse_tax_category(code, tax_category),
            tags=sorted(set(tags)) or None,
            usage_count=0,
            created_by_id=actor_id,
        )
        self.session.add(account)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            logger.warning("account_create_conflict", extra={"account_code": code})
            raise DuplicateAccountError(code) from None

        logger.info(
            "account_created",
            extra={
                "account_code": code,
                "category": parsed_category.value,
                "normal_balance": derived.value,
            },
        )
        return account

    def update_account(
        self,
        code: str,
        actor_id: UUID,
        name: str | None = None,
        category: AccountCategory | str | None = None,
        tax_category: TaxCategory | str | None = None,
        tags: Iterable[str] | None = None,
    ) -> Account:
        """
        Update descriptive fields; a category change is refused once used.

        Raises:
            AccountNotFoundError, AccountReferencedError,
            InvalidAccountDefinitionError
        """
        account = self.get_account(code)
        if category is not None:
            new_category = _parse_category(code, category)
            if new_category.value != account.category:
                line_count = JournalSelector(self.session).count_lines_for_account(code)
                if line_count:
                    raise AccountReferencedError(code, line_count)
                account.category = new_category.value
                account.normal_balance = normal_balance_for(new_category).value
        if name is not None:
            account.name = name
        if tax_category is not None:
            account.tax_category = _parse_tax_category(code, tax_category)
        if tags is not None:
            account.tags = sorted(set(tags)) or None
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info("account_updated", extra={"account_code": code})
        return account

    def deactivate_account(self, code: str, actor_id: UUID) -> Account:
        account = self.get_account(code)
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info("account_deactivated", extra={"account_code": code})
        return account

    def reactivate_account(self, code: str, actor_id: UUID) -> Account:
        account = self.get_account(code)
        account.is_active = True
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info("account_reactivated", extra={"account_code": code})
        return account

    def record_usage(self, accounts: Iterable[Account], used_at: datetime | None = None) -> None:
        """Bump usage counters once per distinct account."""
        used_at = used_at or self._clock.now()
        seen: set[str] = set()
        for account in accounts:
            if account.code in seen:
                continue
            seen.add(account.code)
            account.usage_count = (account.usage_count or 0) + 1
            account.last_used_at = used_at

    def seed_chart(self, definitions: Iterable[Any], actor_id: UUID) -> int:
        """
        Load a standard chart.  Existing codes are left untouched.

        ``definitions`` items expose code, name, category and optionally
        tax_category and tags (ChartAccountDef from taxbook_config).

        Returns:
            Number of accounts created.
        """
        created = 0
        for definition in definitions:
            if self._find(definition.code) is not None:
                continue
            self.create_account(
                code=definition.code,
                name=definition.name,
                category=definition.category,
                actor_id=actor_id,
                tax_category=getattr(definition, "tax_category", None),
                tags=getattr(definition, "tags", ()) or (),
            )
            created += 1
        logger.info("chart_seeded", extra={"accounts_created": created})
        return created

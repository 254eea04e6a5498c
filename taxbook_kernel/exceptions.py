"""
Typed exception hierarchy for the taxbook back-office core.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (an HTTP layer, a batch job, a test) decide how to react to a
failure by its TYPE and its CODE, never by parsing the message:

    try:
        backoffice.post_transaction(spec, actor_id=user)
    except UnbalancedEntryError as e:
        return {"error": e.code, "debits": e.debits, "credits": e.credits}
    except ValidationError as e:
        return {"error": e.code, "rule": e.rule}

Every class carries:
  1. a ``code`` class attribute (machine-readable, API-safe)
  2. structured attributes describing the failing input

The core never retries. Each error propagates to the caller, which owns
the retry/backoff policy and the mapping to user-facing text.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TaxbookError (base)
    |
    +-- ValidationError                  (input rejected, nothing written)
    |   +-- UnbalancedEntryError
    |   +-- UnknownAccountError
    |   +-- InactiveAccountError
    |   +-- InvalidLineAmountError
    |   +-- MissingFieldError
    |   +-- InvalidAccountDefinitionError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- TaxReturnNotFoundError
    |   +-- ReceiptNotFoundError
    |
    +-- ConflictError
    |   +-- DuplicateAccountError
    |   +-- AccountReferencedError
    |   +-- AlreadyPostedError
    |   +-- TransactionCancelledError
    |   +-- DuplicateReturnError
    |   +-- ReceiptAlreadyPostedError
    |
    +-- StateError
    |   +-- InvalidStateTransitionError
    |   +-- ReturnNotValidatedError
    |   +-- NotClassifiedError
    |
    +-- ExternalServiceError
    |   +-- ExternalServiceTimeoutError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|--------------------------------------
Validation   | UNBALANCED_ENTRY            | |debits - credits| above tolerance
             | UNKNOWN_ACCOUNT             | Line references a missing code
             | INACTIVE_ACCOUNT            | Line references a deactivated code
             | INVALID_LINE_AMOUNT         | Negative or all-zero line amounts
             | MISSING_REQUIRED_FIELD      | Required input absent
             | INVALID_ACCOUNT_DEFINITION  | Bad code / category / normal side
-------------|-----------------------------|--------------------------------------
Not found    | ACCOUNT_NOT_FOUND           | Unknown account code
             | TRANSACTION_NOT_FOUND       | Unknown transaction id
             | TAX_RETURN_NOT_FOUND        | Unknown tax return id
             | RECEIPT_NOT_FOUND           | Unknown receipt id
-------------|-----------------------------|--------------------------------------
Conflict     | DUPLICATE_ACCOUNT           | Account code already registered
             | ACCOUNT_REFERENCED          | Category change on a used account
             | ALREADY_POSTED              | Approving / editing a posted entry
             | TRANSACTION_CANCELLED       | Acting on a cancelled entry
             | DUPLICATE_RETURN            | Second return for (org,type,year,period)
             | RECEIPT_ALREADY_POSTED      | Receipt already produced an entry
-------------|-----------------------------|--------------------------------------
State        | INVALID_STATE_TRANSITION    | Lifecycle move not allowed
             | RETURN_NOT_VALIDATED        | Filing a return with is_valid false
             | RECEIPT_NOT_CLASSIFIED      | Posting an unclassified receipt
-------------|-----------------------------|--------------------------------------
External     | EXTERNAL_SERVICE_ERROR      | OCR / classifier / gateway failure
             | EXTERNAL_SERVICE_TIMEOUT    | Collaborator exceeded its timeout
-------------|-----------------------------|--------------------------------------
Config       | CONFIGURATION_ERROR         | YAML missing or malformed

===============================================================================
"""

from decimal import Decimal


class TaxbookError(Exception):
    """
    Base exception for all taxbook errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "TAXBOOK_ERROR"


# Validation


class ValidationError(TaxbookError):
    """Input rejected before anything was written. ``rule`` names the check."""

    code: str = "VALIDATION_ERROR"
    rule: str = "validation"

    def __init__(self, message: str, rule: str | None = None):
        if rule is not None:
            self.rule = rule
        super().__init__(message)


class UnbalancedEntryError(ValidationError):
    """Sum of debits differs from sum of credits by more than the tolerance."""

    code: str = "UNBALANCED_ENTRY"
    rule: str = "unbalanced_entry"

    def __init__(self, debits: Decimal, credits: Decimal, tolerance: Decimal):
        self.debits = debits
        self.credits = credits
        self.tolerance = tolerance
        super().__init__(
            f"Entry is unbalanced: debits={debits}, credits={credits} "
            f"(tolerance {tolerance})"
        )


class UnknownAccountError(ValidationError):
    """Journal line references an account code that is not registered."""

    code: str = "UNKNOWN_ACCOUNT"
    rule: str = "unknown_account"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Unknown account: {account_code}")


class InactiveAccountError(ValidationError):
    """Journal line references a deactivated account."""

    code: str = "INACTIVE_ACCOUNT"
    rule: str = "inactive_account"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account is inactive: {account_code}")


class InvalidLineAmountError(ValidationError):
    """Line amount is negative or not finite, or both sides of the line are zero."""

    code: str = "INVALID_LINE_AMOUNT"
    rule: str = "invalid_line_amount"

    def __init__(self, line_seq: int, debit: Decimal, credit: Decimal):
        self.line_seq = line_seq
        self.debit = debit
        self.credit = credit
        super().__init__(
            f"Invalid amounts on line {line_seq}: debit={debit}, credit={credit}"
        )


class MissingFieldError(ValidationError):
    """A required input field was not supplied."""

    code: str = "MISSING_REQUIRED_FIELD"
    rule: str = "missing_required_field"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class InvalidAccountDefinitionError(ValidationError):
    """Account code, category or normal balance is not acceptable."""

    code: str = "INVALID_ACCOUNT_DEFINITION"
    rule: str = "invalid_account_definition"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        super().__init__(f"Invalid account definition {account_code}: {reason}")


# Not found


class NotFoundError(TaxbookError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    entity: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"
    entity: str = "Account"


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"
    entity: str = "Transaction"


class TaxReturnNotFoundError(NotFoundError):
    code: str = "TAX_RETURN_NOT_FOUND"
    entity: str = "TaxReturn"


class ReceiptNotFoundError(NotFoundError):
    code: str = "RECEIPT_NOT_FOUND"
    entity: str = "Receipt"


# Conflict


class ConflictError(TaxbookError):
    """Operation collides with existing persisted state."""

    code: str = "CONFLICT"


class DuplicateAccountError(ConflictError):
    code: str = "DUPLICATE_ACCOUNT"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account already exists: {account_code}")


class AccountReferencedError(ConflictError):
    """Account category cannot change once journal lines reference it."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, account_code: str, line_count: int):
        self.account_code = account_code
        self.line_count = line_count
        super().__init__(
            f"Account {account_code} is referenced by {line_count} journal line(s)"
        )


class AlreadyPostedError(ConflictError):
    """Transaction is already posted and can no longer be approved or edited."""

    code: str = "ALREADY_POSTED"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction already posted: {transaction_id}")


class TransactionCancelledError(ConflictError):
    """Transaction is cancelled; it is inert and accepts no further action."""

    code: str = "TRANSACTION_CANCELLED"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction is cancelled: {transaction_id}")


class DuplicateReturnError(ConflictError):
    """A tax return already exists for (organization, type, year, period)."""

    code: str = "DUPLICATE_RETURN"

    def __init__(
        self,
        organization_id: str,
        tax_type: str,
        tax_year: int,
        tax_period: int,
    ):
        self.organization_id = organization_id
        self.tax_type = tax_type
        self.tax_year = tax_year
        self.tax_period = tax_period
        super().__init__(
            f"Tax return already exists for {organization_id} "
            f"{tax_type} {tax_year}/{tax_period}"
        )


class ReceiptAlreadyPostedError(ConflictError):
    code: str = "RECEIPT_ALREADY_POSTED"

    def __init__(self, receipt_id: str, transaction_id: str | None):
        self.receipt_id = receipt_id
        self.transaction_id = transaction_id
        super().__init__(
            f"Receipt {receipt_id} already posted as transaction {transaction_id}"
        )


# State


class StateError(TaxbookError):
    """Operation is not allowed in the entity's current lifecycle state."""

    code: str = "STATE_ERROR"


class InvalidStateTransitionError(StateError):
    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, entity: str, entity_id: str, from_state: str, to_state: str):
        self.entity = entity
        self.entity_id = entity_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"{entity} {entity_id}: transition {from_state} -> {to_state} "
            f"is not allowed"
        )


class ReturnNotValidatedError(StateError):
    """Filing requires a structurally valid return."""

    code: str = "RETURN_NOT_VALIDATED"

    def __init__(self, return_id: str, error_count: int = 0):
        self.return_id = return_id
        self.error_count = error_count
        super().__init__(
            f"Tax return {return_id} is not valid ({error_count} error(s))"
        )


class NotClassifiedError(StateError):
    """Receipt has no completed classification to post from."""

    code: str = "RECEIPT_NOT_CLASSIFIED"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt is not classified: {receipt_id}")


# External collaborators


class ExternalServiceError(TaxbookError):
    """An external collaborator (OCR, classifier, tax gateway) failed."""

    code: str = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, reason: str, status_code: int | None = None):
        self.service = service
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{service} failed: {reason}")


class ExternalServiceTimeoutError(ExternalServiceError):
    code: str = "EXTERNAL_SERVICE_TIMEOUT"

    def __init__(self, service: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(service, f"timed out after {timeout_seconds}s")


# Configuration


class ConfigurationError(TaxbookError):
    """Configuration file missing, unreadable or structurally invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration {source}: {reason}")

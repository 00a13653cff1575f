"""Custom exception hierarchy for the loan ledger."""


class LoanLedgerError(Exception):
    """Base exception for all loan ledger errors."""


class InvalidScheduleParametersError(LoanLedgerError):
    """Raised when schedule inputs are out of range (term, principal, rate, insurance)."""


class InvalidPaymentRequestError(LoanLedgerError):
    """Raised when a payment request cannot be applied to the plan."""


class InstallmentAlreadyPaidError(InvalidPaymentRequestError):
    """Raised when a payment targets an installment that is already PAID."""


class OutOfOrderSettlementError(InvalidPaymentRequestError):
    """Raised in strict settlement mode when an earlier installment is still pending."""


class UnresolvableInstallmentError(LoanLedgerError):
    """Raised when the targeted payment number does not exist in the plan."""


class AmortizationDivergenceError(LoanLedgerError):
    """Raised when a re-amortized balance would never reach zero."""


class RefinanceWithoutBasisError(LoanLedgerError):
    """Raised when a refinance is requested without a positive amount to finance."""


class PlanInvariantError(LoanLedgerError):
    """Raised when a payment plan breaks its ordering or balance invariants."""


class ConfigurationError(LoanLedgerError):
    """Raised when configuration is invalid."""


class LoanNotFoundError(LoanLedgerError):
    """Raised when a loan id is unknown to the repository."""


class StalePlanError(LoanLedgerError):
    """Raised when a stored plan changed between read and write."""


class DuplicateLoanError(LoanLedgerError):
    """Raised when a loan id is already stored."""

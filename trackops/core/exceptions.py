class BusinessRuleError(Exception):
    """Raised when an operation would break a business rule.

    Views translate it to a 400 response carrying the message.
    """


class WorkflowError(BusinessRuleError):
    """Illegal job status transition or workflow action"""


class InventoryError(BusinessRuleError):
    """Stock shortfall, bad adjustment or illegal device status change"""


class BillingError(BusinessRuleError):
    """Invalid invoice, payment, ledger or fee settlement operation"""


class ImportFileError(BusinessRuleError):
    """Uploaded migration workbook cannot be read"""

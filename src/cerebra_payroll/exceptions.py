class StatutoryCalculationError(Exception):
    """Base error for statutory deduction calculations"""


class PayPeriodNotFoundError(StatutoryCalculationError, LookupError):
    """Raised when a pay period id does not resolve to a pay period"""

    def __init__(self, pay_period_id):
        super().__init__(f"Pay period {pay_period_id} not found")
        self.pay_period_id = pay_period_id


class InvalidCalculationInputError(StatutoryCalculationError, ValueError):
    """Raised when calculation parameters are malformed"""


class UnsupportedReliefMethodError(StatutoryCalculationError, ValueError):
    """Raised when a relief scheme uses an unknown calculation method"""


class ReferenceDataError(StatutoryCalculationError, ValueError):
    """Raised when stored reference or balance data cannot be read as numbers"""

from .statutory import (
    StatutoryDeductionType,
    StatutoryRateBand,
    CountryTaxSettings,
    PayPeriod,
)
from .relief import (
    TaxReliefRule,
    TaxReliefScheme,
    EmployeeReliefEnrollment,
    ReliefTier,
    TaxReliefContext,
    TaxReliefLine,
)
from .calculation import (
    YtdStatutoryAmounts,
    PeriodStatutoryAmounts,
    OpeningBalances,
    CumulativeCalculationContext,
    StatutoryDeductionResult,
    CalculationContextSnapshot,
    OffCycleCalculationResult,
)

__all__ = [
    'StatutoryDeductionType',
    'StatutoryRateBand',
    'CountryTaxSettings',
    'PayPeriod',
    'TaxReliefRule',
    'TaxReliefScheme',
    'EmployeeReliefEnrollment',
    'ReliefTier',
    'TaxReliefContext',
    'TaxReliefLine',
    'YtdStatutoryAmounts',
    'PeriodStatutoryAmounts',
    'OpeningBalances',
    'CumulativeCalculationContext',
    'StatutoryDeductionResult',
    'CalculationContextSnapshot',
    'OffCycleCalculationResult',
]

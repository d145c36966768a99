from .country_tax_settings import resolve_country_tax_settings, default_country_tax_settings
from .ytd_statutory_service import YtdStatutoryService
from .tax_relief_calculator import TaxReliefCalculator
from .cumulative_statutory_calculator import CumulativeStatutoryCalculator
from .off_cycle_statutory import (
    OffCycleStatutoryService,
    calculate_off_cycle_statutory,
    calculate_regular_statutory
)
from .statutory_report_generator import StatutoryReportGenerator


__all__ = [
    'resolve_country_tax_settings',
    'default_country_tax_settings',
    'YtdStatutoryService',
    'TaxReliefCalculator',
    'CumulativeStatutoryCalculator',
    'OffCycleStatutoryService',
    'calculate_off_cycle_statutory',
    'calculate_regular_statutory',
    'StatutoryReportGenerator'
]

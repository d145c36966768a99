"""
Country tax settings resolution.

The settings in force for a country on a date are the newest configured record
whose validity window contains the date. Countries without a record get the
single documented default: cumulative, mid-year refunds allowed, refunded
automatically and shown as reduced tax. Each value can be overridden through
``config.settings``.
"""
import logging
from dataclasses import replace
from datetime import date
from typing import Optional, Sequence

from ..config.settings import (
    DEFAULT_TAX_CALCULATION_METHOD, DEFAULT_ALLOW_MID_YEAR_REFUNDS, DEFAULT_REFUND_METHOD,
    DEFAULT_REFUND_DISPLAY_TYPE, DEFAULT_REFUND_LINE_ITEM_LABEL
)
from ..exceptions import InvalidCalculationInputError
from ..models.statutory import CountryTaxSettings, CUMULATIVE, NON_CUMULATIVE, is_effective

logger = logging.getLogger(__name__)


def default_country_tax_settings(country: str) -> CountryTaxSettings:
    """Documented fallback when a country has no settings record"""
    settings = CountryTaxSettings(
        country=country,
        tax_calculation_method=DEFAULT_TAX_CALCULATION_METHOD,
        allow_mid_year_refunds=DEFAULT_ALLOW_MID_YEAR_REFUNDS,
        refund_method=DEFAULT_REFUND_METHOD,
        refund_display_type=DEFAULT_REFUND_DISPLAY_TYPE,
        refund_line_item_label=DEFAULT_REFUND_LINE_ITEM_LABEL,
        is_default=True,
    )
    return _normalise(settings)


def resolve_country_tax_settings(country: str, effective_date: date,
                                 records: Optional[Sequence[CountryTaxSettings]] = None) -> CountryTaxSettings:
    """Pick the settings in force for a country on a date"""
    if not country:
        raise InvalidCalculationInputError("Country code is required")
    country = country.upper()

    active = [
        r for r in (records or [])
        if r.country.upper() == country and is_effective(r.effective_from, r.effective_to, effective_date)
    ]
    if not active:
        logger.debug("No tax settings configured for %s on %s, using defaults", country, effective_date)
        return default_country_tax_settings(country)

    active.sort(key=lambda r: r.effective_from or date.min, reverse=True)
    if len(active) > 1:
        logger.warning(
            "%d tax settings records active for %s on %s; using the one effective from %s",
            len(active), country, effective_date, active[0].effective_from
        )
    return _normalise(active[0])


def _normalise(settings: CountryTaxSettings) -> CountryTaxSettings:
    if settings.tax_calculation_method not in (CUMULATIVE, NON_CUMULATIVE):
        raise InvalidCalculationInputError(
            f"Unknown tax calculation method '{settings.tax_calculation_method}' for {settings.country}"
        )
    # Refunds only arise from cumulative recomputation
    if not settings.is_cumulative and settings.allow_mid_year_refunds:
        return replace(settings, allow_mid_year_refunds=False)
    return settings

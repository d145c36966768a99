from datetime import date
from decimal import Decimal

import pytest

from cerebra_payroll.exceptions import UnsupportedReliefMethodError
from cerebra_payroll.models.relief import (
    TaxReliefRule, TaxReliefScheme, EmployeeReliefEnrollment, ReliefTier, TaxReliefContext,
    FixedAmountRelief, PercentageOfIncomeRelief, PercentageOfContributionRelief, TieredRelief,
)
from cerebra_payroll.processors.tax_relief_calculator import (
    TaxReliefCalculator, relief_parameters_for, cap_relief, statutory_relief_line,
    scheme_relief_lines, reduced_rate_relief,
)

D = Decimal
ON = date(2024, 6, 1)


def scheme(scheme_id=1, code="PENSION", relief_type="deduction", method="fixed_amount", **kwargs):
    return TaxReliefScheme(
        id=scheme_id, country="XX", scheme_code=code, scheme_name=code.title(),
        relief_type=relief_type, calculation_method=method, effective_from=date(2024, 1, 1), **kwargs
    )


def enrollment(scheme_id=1, **kwargs):
    kwargs.setdefault("effective_from", date(2024, 1, 1))
    return EmployeeReliefEnrollment(id=scheme_id * 10, employee_id="E1", scheme_id=scheme_id, **kwargs)


def rule(code="NIS", **kwargs):
    return TaxReliefRule(id=1, country="XX", statutory_type_code=code, statutory_type_name="National Insurance",
                         effective_from=date(2024, 1, 1), **kwargs)


def resolve(rules=(), schemes=(), enrollments=(), **kwargs):
    return TaxReliefCalculator().resolve(rules, schemes, enrollments, ON, **kwargs)


def test_statutory_rules_apply_without_enrollment():
    context = resolve(rules=[rule()])
    assert context.rule_for("NIS") is not None
    assert context.schemes == ()


def test_rules_outside_validity_window_are_dropped():
    expired = TaxReliefRule(id=2, country="XX", statutory_type_code="NIS", statutory_type_name="NIS",
                            effective_from=date(2020, 1, 1), effective_to=date(2023, 12, 31))
    assert resolve(rules=[expired]).rule_for("NIS") is None


def test_scheme_requires_active_effective_enrollment():
    schemes = [scheme(1, relief_value=D("100")), scheme(2, "UNION", relief_value=D("50")),
               scheme(3, "MORTGAGE", relief_value=D("75"))]
    enrollments = [
        enrollment(1),
        enrollment(2, status="suspended"),
        enrollment(3, effective_to=date(2024, 3, 31)),
    ]
    context = resolve(schemes=schemes, enrollments=enrollments)
    assert [r.scheme.scheme_code for r in context.schemes] == ["PENSION"]


def test_scheme_not_in_force_is_ignored():
    future = TaxReliefScheme(id=1, country="XX", scheme_code="NEW", scheme_name="New", relief_type="deduction",
                             calculation_method="fixed_amount", effective_from=date(2025, 1, 1))
    assert resolve(schemes=[future], enrollments=[enrollment(1)]).schemes == ()


def test_scheme_requiring_proof_needs_verified_enrollment():
    context = resolve(schemes=[scheme(requires_proof=True, relief_value=D("10"))],
                      enrollments=[enrollment(proof_verified=False)])
    assert context.schemes == ()
    assert any("proof not verified" in w for w in context.warnings)

    context = resolve(schemes=[scheme(requires_proof=True, relief_value=D("10"))],
                      enrollments=[enrollment(proof_verified=True)])
    assert len(context.schemes) == 1


def test_scheme_age_limits():
    limited = scheme(max_age=30, relief_value=D("10"))

    assert len(resolve(schemes=[limited], enrollments=[enrollment()], employee_age=25).schemes) == 1
    too_old = resolve(schemes=[limited], enrollments=[enrollment()], employee_age=31)
    unknown = resolve(schemes=[limited], enrollments=[enrollment()], employee_age=None)

    assert too_old.schemes == () and "older than 30" in too_old.warnings[0]
    assert unknown.schemes == () and "age unknown" in unknown.warnings[0]


def test_relief_parameters_variants():
    assert relief_parameters_for(scheme(relief_value=D("250")), enrollment()) == FixedAmountRelief(D("250"))
    assert relief_parameters_for(
        scheme(method="percentage_of_income", relief_percentage=D("5")), enrollment()
    ) == PercentageOfIncomeRelief(D("5"))
    assert relief_parameters_for(
        scheme(method="percentage_of_contribution", relief_percentage=D("100")),
        enrollment(declared_amount=D("1500")),
    ) == PercentageOfContributionRelief(D("100"), D("1500"))

    tiers = (ReliefTier(D("500"), D("100")), ReliefTier(None, D("50")))
    tiered = relief_parameters_for(scheme(method="tiered", tiers=tiers), enrollment(declared_amount=D("800")))
    assert tiered == TieredRelief(tiers, D("800"))


def test_unknown_relief_method_raises():
    with pytest.raises(UnsupportedReliefMethodError):
        relief_parameters_for(scheme(method="lookup_table"), enrollment())


def test_relief_variant_amounts():
    assert FixedAmountRelief(D("250")).compute(D("9999")) == D("250")
    assert PercentageOfIncomeRelief(D("5")).compute(D("4000")) == D("200")
    assert PercentageOfContributionRelief(D("50"), D("1500")).compute(D("4000")) == D("750")
    tiers = (ReliefTier(D("500"), D("100")), ReliefTier(None, D("50")))
    assert TieredRelief(tiers, D("800")).compute(D("0")) == D("650")
    assert TieredRelief(tiers, D("300")).compute(D("0")) == D("300")


def test_cap_relief_respects_period_and_annual_caps():
    context = TaxReliefContext(ytd_relief_claimed={"PENSION": D("55000")},
                               period_relief_claimed={"PENSION": D("3000")})

    assert cap_relief(D("4000"), "PENSION", context, monthly_cap=D("5000")) == D("2000")
    assert cap_relief(D("4000"), "PENSION", context, annual_cap=D("60000")) == D("2000")
    assert cap_relief(D("4000"), "PENSION", context, annual_cap=D("50000")) == D("0")
    assert cap_relief(D("4000"), "OTHER", context, monthly_cap=D("5000")) == D("4000")


def test_statutory_relief_line_on_employee_contribution():
    line = statutory_relief_line(rule(relief_percentage=D("70")), D("127.50"), D("255.00"), TaxReliefContext())
    assert line.amount == D("89.25")
    assert line.source == "statutory_rule"
    assert line.relief_type == "deduction"


def test_statutory_relief_line_employer_portion_and_empty_base():
    both = rule(applies_to_employer_contribution=True)
    assert statutory_relief_line(both, D("100"), D("200"), TaxReliefContext()).amount == D("300")
    assert statutory_relief_line(rule(), D("0"), D("200"), TaxReliefContext()) is None


def test_scheme_relief_lines_skip_reduced_rate():
    context = resolve(
        schemes=[scheme(1, relief_value=D("400")),
                 scheme(2, "SENIOR", relief_type="reduced_rate", method="percentage_of_income",
                        relief_percentage=D("10"))],
        enrollments=[enrollment(1), enrollment(2)],
    )
    lines = scheme_relief_lines(context, D("5000"))
    assert [(l.code, l.amount) for l in lines] == [("PENSION", D("400.00"))]


def test_reduced_rate_relief_is_share_of_tax_due():
    context = resolve(
        schemes=[scheme(2, "SENIOR", relief_type="reduced_rate", method="percentage_of_income",
                        relief_percentage=D("10"))],
        enrollments=[enrollment(2)],
    )
    line = reduced_rate_relief(context.schemes[0], D("7000"), context)
    assert line.amount == D("700.00")
    assert line.relief_type == "reduced_rate"


def test_off_cycle_scheme_lines_net_off_period_allowance():
    context = resolve(
        schemes=[scheme(1, relief_value=D("400")),
                 scheme(2, "SAVING", method="percentage_of_income", relief_percentage=D("10"))],
        enrollments=[enrollment(1), enrollment(2)],
        period_relief_claimed={"PENSION": D("300"), "SAVING": D("500")},
    )

    off_cycle = scheme_relief_lines(context, D("1000"), is_off_cycle=True)
    regular = scheme_relief_lines(context, D("1000"))

    assert [(l.code, l.amount) for l in off_cycle] == [("PENSION", D("100.00")), ("SAVING", D("100.00"))]
    assert [(l.code, l.amount) for l in regular] == [("PENSION", D("400.00")), ("SAVING", D("100.00"))]

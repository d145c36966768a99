"""Cumulative statutory payroll deduction engine."""

__version__ = "0.1.0"

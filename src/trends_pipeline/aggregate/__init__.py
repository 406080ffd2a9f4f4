"""Monthly aggregation, derived metrics and alignment.

This package turns typed records into immutable monthly `Series`: bucketing
per category (`monthly`), derived metrics such as proportions and
year-over-year change (`derived`), and alignment of several series onto one
shared timeline (`align`).
"""

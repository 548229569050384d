"""Reference twelve-month data set, used for the CSV template."""

from __future__ import annotations

from sales_intake.models import SalesRecord

SAMPLE_RECORDS: tuple[SalesRecord, ...] = (
    SalesRecord("1月", 48, 35, 37, 36),
    SalesRecord("2月", 50, 52, 5, -3),
    SalesRecord("3月", 63, 55, 25, 14),
    SalesRecord("4月", 48, 65, -22, -16),
    SalesRecord("5月", 50, 55, 13, 40),
    SalesRecord("6月", 53, 58, -13, 15),
    SalesRecord("7月", 38, 60, 8, 69),
    SalesRecord("8月", 58, 50, -23, -16),
    SalesRecord("9月", 38, 75, 57, 116),
    SalesRecord("10月", 30, 38, -53, 27),
    SalesRecord("11月", 45, 50, 50, 10),
    SalesRecord("12月", 60, 55, 33, 9),
)

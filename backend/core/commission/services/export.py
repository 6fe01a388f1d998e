from __future__ import annotations

import csv
from decimal import Decimal
from typing import IO, Iterable

from commission.services.commission_engine import (
    STATUS_CALCULATED,
    STATUS_ERROR,
    STATUS_NO_GRID_MATCH,
    CommissionCalculationResult,
)


CSV_COLUMNS = (
    "Policy Number",
    "Customer",
    "Product Type",
    "Provider",
    "Premium",
    "Source Type",
    "Source Name",
    "Commission Rate %",
    "Insurer Commission",
    "Agent Commission",
    "MISP Commission",
    "Employee Commission",
    "Broker Share",
    "Status",
    "Grid Table",
)

_ZERO = Decimal("0.00")


def export_filename(calc_date) -> str:
    return f"policy-commission-distribution-{calc_date:%Y-%m-%d}.csv"


def result_to_csv_row(result: CommissionCalculationResult) -> list[str]:
    """One export row; party amounts add up to the insurer commission.

    Employee Commission is the employee's gross amount, including the slice
    passed on to the reporting employee.
    """

    return [
        result.policy_number,
        result.customer_name,
        result.product_type,
        result.provider,
        str(result.premium_amount),
        result.source_type,
        result.source_label,
        f"{result.rates.total_rate:.2f}",
        str(result.rates.insurer_commission),
        str(result.allocations.agent_commission),
        str(result.allocations.misp_commission),
        str(result.allocations.employee_commission + result.allocations.reporting_employee_commission),
        str(result.allocations.broker_share),
        result.status,
        result.grid_table,
    ]


def write_results_csv(results: Iterable[CommissionCalculationResult], stream: IO[str]) -> int:
    writer = csv.writer(stream)
    writer.writerow(CSV_COLUMNS)
    rows = 0
    for result in results:
        writer.writerow(result_to_csv_row(result))
        rows += 1
    return rows


def summarize_results(results: Iterable[CommissionCalculationResult]) -> dict:
    """Totals and status counts the commission report header shows."""

    summary = {
        "policies": 0,
        "total_premium": _ZERO,
        "total_insurer_commission": _ZERO,
        "total_agent_commission": _ZERO,
        "total_misp_commission": _ZERO,
        "total_employee_commission": _ZERO,
        "total_reporting_employee_commission": _ZERO,
        "total_broker_share": _ZERO,
        STATUS_CALCULATED: 0,
        STATUS_NO_GRID_MATCH: 0,
        STATUS_ERROR: 0,
    }
    for result in results:
        summary["policies"] += 1
        summary[result.status] = summary.get(result.status, 0) + 1
        summary["total_premium"] += result.premium_amount
        summary["total_insurer_commission"] += result.rates.insurer_commission
        summary["total_agent_commission"] += result.allocations.agent_commission
        summary["total_misp_commission"] += result.allocations.misp_commission
        summary["total_employee_commission"] += result.allocations.employee_commission
        summary["total_reporting_employee_commission"] += result.allocations.reporting_employee_commission
        summary["total_broker_share"] += result.allocations.broker_share
    return summary

from datetime import date
from decimal import Decimal

from commission.models import Agent, CommissionGrid, CommissionTier, Employee, GridRate, Misp
from insurance_core.models import Policy


def create_policy(company, number, **overrides) -> Policy:
    values = {
        "policy_number": number,
        "product_type": "motor",
        "provider": "ICICI Lombard",
        "premium_amount": Decimal("100000.00"),
        "customer_name": "Ravi Kumar",
        "source_type": "direct",
        "start_date": date(2024, 5, 1),
        "end_date": date(2025, 4, 30),
    }
    values.update(overrides)
    return Policy.all_objects.create(company=company, **values)


def create_grid(company, *, rates=(), **overrides) -> CommissionGrid:
    values = {
        "name": "Motor OD payout",
        "grid_table": "motor_payout_grid",
        "product_type": "motor",
        "effective_from": date(2020, 1, 1),
    }
    values.update(overrides)
    grid = CommissionGrid.all_objects.create(company=company, **values)
    for rate in rates:
        GridRate.all_objects.create(company=company, grid=grid, **rate)
    return grid


def create_channel(company):
    """A tier plus one agent, MISP, manager and employee for `company`."""

    gold = CommissionTier.all_objects.create(
        company=company,
        name="Gold",
        rank=1,
        share_percentage=Decimal("70.00"),
    )
    agent = Agent.all_objects.create(company=company, name="Asha Agent", code="AG-1", tier=gold)
    misp = Misp.all_objects.create(
        company=company,
        name="Sai Motors",
        code="MS-1",
        override_percentage=Decimal("5.00"),
    )
    manager = Employee.all_objects.create(company=company, name="Meera Manager", code="EM-1")
    employee = Employee.all_objects.create(
        company=company,
        name="Vikram Sales",
        code="EM-2",
        reporting_employee=manager,
    )
    return {"tier": gold, "agent": agent, "misp": misp, "manager": manager, "employee": employee}

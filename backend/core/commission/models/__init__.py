from .channel import Agent, AgentType, Employee, Misp
from .config import DistributionSettings
from .grid import CommissionGrid, GridRate
from .record import CommissionRecord
from .tier import CommissionTier

__all__ = [
    "Agent",
    "AgentType",
    "CommissionGrid",
    "CommissionRecord",
    "CommissionTier",
    "DistributionSettings",
    "Employee",
    "GridRate",
    "Misp",
]

from commission.services.commission_engine import (
    CommissionBatch,
    CommissionCalculationResult,
    CommissionEngineError,
    InvalidInputError,
    PersistenceError,
    SourceLookupError,
    SyncFailure,
    SyncReport,
    calculate_batch,
    calculate_rates,
    resolve_grid,
    split_commission,
    track_status,
)

__all__ = [
    "CommissionBatch",
    "CommissionCalculationResult",
    "CommissionEngineError",
    "InvalidInputError",
    "PersistenceError",
    "SourceLookupError",
    "SyncFailure",
    "SyncReport",
    "calculate_batch",
    "calculate_rates",
    "resolve_grid",
    "split_commission",
    "track_status",
]

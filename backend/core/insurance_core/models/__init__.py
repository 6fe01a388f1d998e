from .policy import Policy, ProductType, SourceType

__all__ = [
    "Policy",
    "ProductType",
    "SourceType",
]

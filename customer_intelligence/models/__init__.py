"""Customer lifetime value projection."""

from .cltv import (
    CLTVCustomerRecord,
    CLTVResult,
    CLTVSegmentRecord,
    base_churn_rate,
    calculate_cltv,
    project_cltv,
)

__all__ = [
    "CLTVCustomerRecord",
    "CLTVResult",
    "CLTVSegmentRecord",
    "base_churn_rate",
    "calculate_cltv",
    "project_cltv",
]

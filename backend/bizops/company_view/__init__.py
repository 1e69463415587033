from .aggregator import CompanyViewAggregator
from .cache import SnapshotCache
from .contracts import CompanyKpis, CompanyViewSnapshot, SectionError

__all__ = [
    "CompanyKpis",
    "CompanyViewAggregator",
    "CompanyViewSnapshot",
    "SectionError",
    "SnapshotCache",
]

# Application Stats Package
from .metrics_calculator import MetricsCalculator, ReviewStatistics
from .service import ReviewStatsService

__all__ = ["MetricsCalculator", "ReviewStatistics", "ReviewStatsService"]

"""
Analysis models package.
"""
from webanalyzer.features.analysis.models.analysis import Analysis, AnalysisStatus, TERMINAL_STATUSES
from webanalyzer.features.analysis.models.recent_result import RecentResult

__all__ = ["Analysis", "AnalysisStatus", "TERMINAL_STATUSES", "RecentResult"]

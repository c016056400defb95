from typing import Any, Dict, List, Optional

from webanalyzer.features.analysis.models.analysis import AnalysisStatus
from webanalyzer.features.analysis.schemas.analysis import AnalysisRecord, RecentResultSummary
from webanalyzer.features.analysis.services.capabilities.seo import seo_checks
from webanalyzer.platform.config import settings


def is_error(result: Any) -> bool:
    return not isinstance(result, dict) or result.get("status") == "error"


def capability_error(message: str) -> Dict[str, str]:
    return {"status": "error", "error": message}


def _ok(results: Dict[str, Any], tag: str) -> Optional[Dict[str, Any]]:
    result = results.get(tag)
    return None if result is None or is_error(result) else result


def seo_score(seo: Dict[str, Any], check_count: Optional[int] = None) -> int:
    """
    Share of passing SEO checks as 0-100.

    `check_count` is the divisor; 0 divides by the number of checks present.
    A fixed divisor never drops below that number, so only a page passing
    every check scores 100.
    """
    check_count = settings.SEO_SCORE_CHECK_COUNT if check_count is None else check_count
    checks = seo_checks(seo)
    divisor = max(check_count, len(checks))
    return round(sum(checks) / divisor * 100)


def top_technologies(tech: Optional[Dict[str, Any]], limit: int = 5) -> List[Dict[str, Any]]:
    if not tech:
        return []
    return [
        {"name": t.get("name"), "confidence": t.get("confidence")}
        for t in (tech.get("technologies") or [])[:limit]
    ]


def build_summary(record: AnalysisRecord) -> RecentResultSummary:
    """Project a terminal analysis onto its recent-results row."""
    if record.status == AnalysisStatus.failed:
        return RecentResultSummary(
            analysis_id=record.id,
            url=record.url,
            status="failed",
            error=record.error_message,
        )

    results = record.results or {}
    performance = _ok(results, "performance")
    accessibility = _ok(results, "accessibility")
    seo = _ok(results, "seo")

    return RecentResultSummary(
        analysis_id=record.id,
        url=record.url,
        status="completed",
        title=record.title,
        description=record.description,
        technologies=top_technologies(_ok(results, "tech")),
        performance_score=performance.get("score") if performance else None,
        accessibility_score=(
            max(0, 100 - len(accessibility.get("violations") or [])) if accessibility else None
        ),
        seo_score=seo_score(seo) if seo else None,
    )

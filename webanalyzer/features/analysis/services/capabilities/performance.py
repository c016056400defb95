import time
from typing import Any, Dict, List

from webanalyzer.features.analysis.services.capabilities.base import Capability, ScanContext


def calculate_performance_score(load_time: float) -> int:
    """
    Calculate performance score (0-100) based on load time.
    < 0.5s = 100
    > 10s = 0
    Linear interpolation in between.
    """
    if load_time <= 0.5:
        return 100
    if load_time >= 10.0:
        return 0

    slope = -100 / 9.5
    score = 100 + slope * (load_time - 0.5)
    return int(max(0, min(100, score)))


def get_performance_comment(score: int) -> str:
    if score >= 90:
        return "Excellent! The page loads very quickly."
    elif score >= 75:
        return "Good. The page load time is acceptable."
    elif score >= 50:
        return "Fair. The page could load faster."
    elif score >= 25:
        return "Poor. The page is slow to load."
    else:
        return "Critical. The page takes too long to load."


def build_recommendations(ttfb: float, content_length: int, headers: Dict[str, str]) -> List[str]:
    recommendations = []
    if ttfb > 0.8:
        recommendations.append("Reduce server response time (time to first byte is above 800ms).")
    if content_length > 2_000_000:
        recommendations.append("Reduce the HTML payload size (document is larger than 2MB).")
    if not headers.get("content-encoding"):
        recommendations.append("Enable gzip or brotli compression.")
    if not headers.get("cache-control"):
        recommendations.append("Set a Cache-Control header.")
    return recommendations


class PerformanceCapability(Capability):
    """Times a full document fetch; independent of the shared page load."""

    tag = "performance"
    needs_page = False
    timeout = 45.0

    async def run(self, context: ScanContext) -> Dict[str, Any]:
        start = time.perf_counter()
        response = await context.http.get(context.base_url)
        body = response.content
        load_time = time.perf_counter() - start

        headers = {key.lower(): value for key, value in response.headers.items()}
        ttfb = response.elapsed.total_seconds()
        score = calculate_performance_score(load_time)

        return {
            "score": score,
            "comment": get_performance_comment(score),
            "metrics": {
                "loadTime": round(load_time, 3),
                "timeToFirstByte": round(ttfb, 3),
                "contentLength": len(body),
                "statusCode": response.status_code,
            },
            "recommendations": build_recommendations(ttfb, len(body), headers),
        }

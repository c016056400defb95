import json
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from webanalyzer.features.analysis.services.capabilities.base import Capability, ScanContext


def _sitemaps_from_robots(robots_txt: Optional[str]) -> List[str]:
    if not robots_txt:
        return []
    sitemaps = []
    for line in robots_txt.splitlines():
        key, _, value = line.partition(":")
        if key.strip().lower() == "sitemap" and value.strip():
            sitemaps.append(value.strip())
    return sitemaps


def _json_ld(soup: BeautifulSoup) -> Dict[str, Any]:
    scripts = soup.find_all("script", attrs={"type": "application/ld+json"})
    types, errors = [], []
    for index, script in enumerate(scripts):
        try:
            data = json.loads(script.string or "")
        except ValueError as e:
            errors.append(f"Block {index + 1}: {e}")
            continue
        for item in data if isinstance(data, list) else [data]:
            if isinstance(item, dict) and item.get("@type"):
                types.append(item["@type"])
    return {"count": len(scripts), "types": types, "errors": errors}


def analyze_seo(html: str, base_url: str, robots_txt: Optional[str]) -> Dict[str, Any]:
    soup = BeautifulSoup(html or "", "html.parser")

    title = soup.title.get_text(strip=True) if soup.title else None
    description_tag = soup.find("meta", attrs={"name": "description"})
    description = (description_tag.get("content") or "").strip() if description_tag else None
    h1 = soup.find("h1")
    canonical_tag = soup.find("link", rel="canonical")
    canonical = urljoin(base_url, canonical_tag["href"]) if canonical_tag and canonical_tag.get("href") else None
    body = soup.body or soup

    return {
        "title": title,
        "titleLength": len(title) if title else 0,
        "description": description or None,
        "descriptionLength": len(description) if description else 0,
        "hasH1": h1 is not None and bool(h1.get_text(strip=True)),
        "wordCount": len(body.get_text(" ").split()),
        "canonicalUrl": canonical,
        "jsonLd": _json_ld(soup),
        "hreflangTags": len(soup.find_all("link", attrs={"rel": "alternate", "hreflang": True})),
        "robotsTxtStatus": "found" if robots_txt else "not_found",
        "sitemaps": _sitemaps_from_robots(robots_txt),
    }


class SeoCapability(Capability):
    tag = "seo"
    needs_page = True
    timeout = 20.0

    async def run(self, context: ScanContext) -> Dict[str, Any]:
        return analyze_seo(context.html, context.final_url or context.base_url, context.robots_txt)


def seo_checks(seo: Dict[str, Any]) -> List[bool]:
    """Pass/fail view of an SEO result, used for the headline score."""
    return [
        bool(seo.get("title")),
        bool(seo.get("description")),
        bool(seo.get("hasH1")),
        bool(seo.get("wordCount")),
        seo.get("robotsTxtStatus") == "found",
        bool(seo.get("canonicalUrl")),
        bool((seo.get("jsonLd") or {}).get("count")),
        bool(seo.get("hreflangTags")),
        bool(seo.get("sitemaps")),
    ]

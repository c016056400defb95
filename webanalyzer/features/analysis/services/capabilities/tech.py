import re
from typing import Any, Dict, List

from bs4 import BeautifulSoup

from webanalyzer.features.analysis.services.capabilities.base import Capability, ScanContext

# name, category, where to look, pattern
SIGNATURES = [
    ("WordPress", "CMS", "html", r"/wp-content/|/wp-includes/"),
    ("WordPress", "CMS", "generator", r"wordpress"),
    ("Drupal", "CMS", "generator", r"drupal"),
    ("Joomla", "CMS", "generator", r"joomla"),
    ("Shopify", "Ecommerce", "html", r"cdn\.shopify\.com"),
    ("Wix", "Website Builder", "html", r"static\.wixstatic\.com"),
    ("Squarespace", "Website Builder", "html", r"static1\.squarespace\.com"),
    ("React", "JavaScript Framework", "html", r"data-reactroot|__REACT_DEVTOOLS|react(?:-dom)?(?:\.production)?(?:\.min)?\.js"),
    ("Next.js", "JavaScript Framework", "html", r"/_next/static/|__NEXT_DATA__"),
    ("Vue.js", "JavaScript Framework", "html", r"data-v-[0-9a-f]{8}|vue(?:\.runtime)?(?:\.min)?\.js"),
    ("Nuxt.js", "JavaScript Framework", "html", r"/_nuxt/|__NUXT__"),
    ("Angular", "JavaScript Framework", "html", r"ng-version=|angular(?:\.min)?\.js"),
    ("jQuery", "JavaScript Library", "script", r"jquery(?:[.-]\d[\w.]*)?(?:\.min)?\.js"),
    ("Bootstrap", "UI Framework", "html", r"bootstrap(?:\.bundle)?(?:\.min)?\.(?:css|js)"),
    ("Tailwind CSS", "UI Framework", "html", r"tailwind(?:\.min)?\.css|tailwindcss"),
    ("Chart.js", "JavaScript Library", "script", r"chart(?:\.umd)?(?:\.min)?\.js"),
    ("Google Analytics", "Analytics", "script", r"googletagmanager\.com/gtag|google-analytics\.com"),
    ("Google Tag Manager", "Tag Manager", "html", r"googletagmanager\.com/gtm\.js"),
    ("Cloudflare", "CDN", "header:server", r"cloudflare"),
    ("Cloudflare", "CDN", "header:cf-ray", r".+"),
    ("Nginx", "Web Server", "header:server", r"nginx"),
    ("Apache", "Web Server", "header:server", r"apache"),
    ("Microsoft IIS", "Web Server", "header:server", r"microsoft-iis"),
    ("PHP", "Programming Language", "header:x-powered-by", r"php"),
    ("Express", "Web Framework", "header:x-powered-by", r"express"),
    ("ASP.NET", "Web Framework", "header:x-aspnet-version", r".+"),
    ("Vercel", "Hosting", "header:x-vercel-id", r".+"),
    ("Netlify", "Hosting", "header:x-nf-request-id", r".+"),
]

# One source is a hint; a header or generator tag is strong evidence
CONFIDENCE = {"html": 60, "script": 80, "generator": 100, "header": 90}


def _sources(context: ScanContext, soup: BeautifulSoup) -> Dict[str, str]:
    generator = soup.find("meta", attrs={"name": re.compile("^generator$", re.I)})
    scripts = " ".join(tag.get("src", "") for tag in soup.find_all("script") if tag.get("src"))
    return {
        "html": context.html or "",
        "script": scripts,
        "generator": (generator.get("content") or "") if generator else "",
    }


def detect_technologies(context: ScanContext) -> List[Dict[str, Any]]:
    soup = BeautifulSoup(context.html or "", "html.parser")
    sources = _sources(context, soup)
    headers = {key.lower(): value for key, value in (context.headers or {}).items()}

    found: Dict[str, Dict[str, Any]] = {}
    for name, category, where, pattern in SIGNATURES:
        if where.startswith("header:"):
            text = headers.get(where.split(":", 1)[1], "")
            kind = "header"
        else:
            text = sources[where]
            kind = where

        match = re.search(pattern, text, re.I) if text else None
        if not match:
            continue

        confidence = CONFIDENCE[kind]
        current = found.get(name)
        if current is None or confidence > current["confidence"]:
            found[name] = {
                "name": name,
                "category": category,
                "confidence": confidence,
                "evidence": f"{where}: {match.group(0)[:80]}",
            }

    return sorted(found.values(), key=lambda t: (-t["confidence"], t["name"]))


class TechCapability(Capability):
    tag = "tech"
    needs_page = True
    timeout = 20.0

    async def run(self, context: ScanContext) -> Dict[str, Any]:
        technologies = detect_technologies(context)
        return {"technologies": technologies, "count": len(technologies)}

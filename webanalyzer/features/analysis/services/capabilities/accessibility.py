from typing import Any, Dict, List

from selenium.webdriver.common.by import By

from webanalyzer.features.analysis.services.capabilities.base import Capability, ScanContext

RULES = {
    "image-alt": "Images must have alternate text",
    "label": "Form elements must have labels",
    "button-name": "Buttons must have discernible text",
    "link-name": "Links must have discernible text",
    "empty-heading": "Headings should not be empty",
    "html-has-lang": "<html> element must have a lang attribute",
}


def _text(element) -> str:
    return (element.text or "").strip()


def _has_accessible_name(element) -> bool:
    return bool(
        _text(element)
        or (element.get_attribute("aria-label") or "").strip()
        or (element.get_attribute("aria-labelledby") or "").strip()
        or (element.get_attribute("title") or "").strip()
    )


def collect_violations(driver) -> List[Dict[str, Any]]:
    """
    Run the DOM checks against the page loaded in `driver`.
    Blocking; call it from a thread.
    """
    nodes: Dict[str, List[str]] = {rule: [] for rule in RULES}

    for img in driver.find_elements(By.TAG_NAME, "img"):
        if img.get_attribute("alt") is None and (img.get_attribute("role") or "") != "presentation":
            nodes["image-alt"].append(img.get_attribute("src") or "")

    for field in driver.find_elements(By.CSS_SELECTOR, "input, textarea, select"):
        if (field.get_attribute("type") or "").lower() in {"hidden", "submit", "button", "reset", "image"}:
            continue
        if _has_accessible_name(field):
            continue
        field_id = field.get_attribute("id")
        if field_id and driver.find_elements(By.CSS_SELECTOR, f'label[for="{field_id}"]'):
            continue
        if field.find_elements(By.XPATH, "ancestor::label"):
            continue
        nodes["label"].append(field.get_attribute("name") or field_id or field.tag_name)

    for button in driver.find_elements(By.CSS_SELECTOR, "button, [role='button']"):
        if not _has_accessible_name(button):
            nodes["button-name"].append(button.get_attribute("outerHTML")[:120])

    for link in driver.find_elements(By.CSS_SELECTOR, "a[href]"):
        if _has_accessible_name(link):
            continue
        if link.find_elements(By.CSS_SELECTOR, "img[alt]:not([alt=''])"):
            continue
        nodes["link-name"].append(link.get_attribute("href") or "")

    for heading in driver.find_elements(By.CSS_SELECTOR, "h1, h2, h3, h4, h5, h6"):
        if not _text(heading):
            nodes["empty-heading"].append(heading.tag_name)

    html = driver.find_elements(By.TAG_NAME, "html")
    if html and not (html[0].get_attribute("lang") or "").strip():
        nodes["html-has-lang"].append("html")

    return [
        {"id": rule, "description": RULES[rule], "count": len(found), "nodes": found[:20]}
        for rule, found in nodes.items()
        if found
    ]


class AccessibilityCapability(Capability):
    tag = "accessibility"
    needs_page = True
    timeout = 30.0

    async def run(self, context: ScanContext) -> Dict[str, Any]:
        if context.browser is None:
            raise RuntimeError("Accessibility audit needs a browser session")
        violations = await context.browser.run(collect_violations)
        return {"violations": violations}

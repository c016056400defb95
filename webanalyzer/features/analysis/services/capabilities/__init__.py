"""
Scan capabilities and the tag -> implementation registry.

The orchestrator only talks to `Capability.run(context)`; adding an audit
means writing a Capability subclass and registering it here.
"""
from typing import Dict, Iterable, List, Optional

from webanalyzer.features.analysis.services.capabilities.accessibility import AccessibilityCapability
from webanalyzer.features.analysis.services.capabilities.base import Capability, ScanContext
from webanalyzer.features.analysis.services.capabilities.performance import PerformanceCapability
from webanalyzer.features.analysis.services.capabilities.security import SecurityCapability
from webanalyzer.features.analysis.services.capabilities.seo import SeoCapability
from webanalyzer.features.analysis.services.capabilities.tech import TechCapability


def build_registry(capabilities: Iterable[Capability]) -> Dict[str, Capability]:
    registry = {}
    for capability in capabilities:
        if not capability.tag:
            raise ValueError(f"{capability!r} has no tag")
        if capability.tag in registry:
            raise ValueError(f"Duplicate capability tag: {capability.tag}")
        registry[capability.tag] = capability
    return registry


CAPABILITY_REGISTRY: Dict[str, Capability] = build_registry([
    TechCapability(),
    SeoCapability(),
    PerformanceCapability(),
    AccessibilityCapability(),
    SecurityCapability(),
])


def unknown_tags(tags: Iterable[str], registry: Optional[Dict[str, Capability]] = None) -> List[str]:
    registry = CAPABILITY_REGISTRY if registry is None else registry
    return sorted({tag for tag in tags if tag not in registry})


def get_capabilities(
    tags: Optional[Iterable[str]], registry: Optional[Dict[str, Capability]] = None
) -> List[Capability]:
    """
    Capabilities to run for a job. No tags means all of them, in registry order.
    """
    registry = CAPABILITY_REGISTRY if registry is None else registry
    requested = set(tags or [])
    if not requested:
        return list(registry.values())

    missing = unknown_tags(requested, registry)
    if missing:
        raise KeyError(f"Unknown capabilities: {', '.join(missing)}")
    return [capability for tag, capability in registry.items() if tag in requested]


__all__ = [
    "Capability",
    "ScanContext",
    "CAPABILITY_REGISTRY",
    "build_registry",
    "get_capabilities",
    "unknown_tags",
]

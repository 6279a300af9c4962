# page_plan.py
"""
Page plan builder.

Maps (report type, settings, domain data) to the ordered list of abstract
pages a document will contain. The same function drives the live preview and,
once more at export time, decides what the final document holds.

Rules:
  * a section is emitted only when its content flag is on AND its source data
    is present (empty sections are skipped, never reordered)
  * sections without a flag (trailing detail lists) follow whenever at least
    one flagged section is selected and their data exists
  * with every content flag off the plan is empty

API
    from page_plan import build_plan, plan_summary
    plan = build_plan("quantity", settings, data)
    plan_summary(plan)  # {"total": 2, "portrait": 1, "landscape": 1}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from report_domains import Bundle, ReportDomain, SectionRule, get_domain
from report_settings import get_flag

logger = logging.getLogger(__name__)

DEFAULT_FOOTER_TEXT = "Contract"


@dataclass(frozen=True)
class PageDescriptor:
    section: str
    title: str
    orientation: str
    content_items: Tuple[str, ...]
    has_chart: bool
    has_table: bool
    footer_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section": self.section,
            "title": self.title,
            "orientation": self.orientation,
            "contentItems": list(self.content_items),
            "hasChart": self.has_chart,
            "hasTable": self.has_table,
            "footerText": self.footer_text,
        }


# ------------------------------- selection ----------------------------------

def _flag_on(rule: SectionRule, settings: Mapping[str, Any]) -> bool:
    return rule.flag is not None and get_flag(settings, rule.flag)


def _any_selected(domain: ReportDomain, settings: Mapping[str, Any]) -> bool:
    return any(_flag_on(r, settings) for r in domain.sections)


def _wanted(rule: SectionRule, settings: Mapping[str, Any]) -> bool:
    # unflagged detail lists ride along with any selected section
    return rule.flag is None or get_flag(settings, rule.flag)


def _descriptor(domain: ReportDomain, rule: SectionRule, footer_text: str) -> PageDescriptor:
    title, items = domain.label_for(rule.key)
    return PageDescriptor(
        section=rule.key,
        title=title,
        orientation=rule.orientation,
        content_items=tuple(items),
        has_chart=rule.has_chart,
        has_table=not rule.has_chart,
        footer_text=footer_text,
    )


# --------------------------------- build ------------------------------------

def build_plan(report_type: str, settings: Mapping[str, Any], domain_data: Optional[Bundle],
               contract_number: Optional[str] = None) -> List[PageDescriptor]:
    """
    Ordered page descriptors for one report.

    Raises UnknownReportType for a type outside the closed set. Never raises
    for missing or empty data: those sections are simply left out.
    """
    domain = get_domain(report_type)
    data = domain_data or {}
    if not _any_selected(domain, settings):
        return []

    footer_text = (contract_number or "").strip() or DEFAULT_FOOTER_TEXT
    plan: List[PageDescriptor] = []
    for rule in domain.sections:
        if not _wanted(rule, settings):
            continue
        if not rule.present(data):
            continue
        plan.append(_descriptor(domain, rule, footer_text))
    logger.debug("plan for %s: %s", report_type, [p.section for p in plan])
    return plan


def skipped_sections(report_type: str, settings: Mapping[str, Any],
                     domain_data: Optional[Bundle]) -> List[str]:
    """Sections that were selected but left out because their data is empty."""
    domain = get_domain(report_type)
    data = domain_data or {}
    if not _any_selected(domain, settings):
        return []
    return [r.key for r in domain.sections if _wanted(r, settings) and r.flag is not None and not r.present(data)]


def plan_summary(plan: List[PageDescriptor]) -> Dict[str, int]:
    """Page counts shown under the preview."""
    out = {"total": len(plan), "portrait": 0, "landscape": 0}
    for page in plan:
        out[page.orientation] += 1
    return out

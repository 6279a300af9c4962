# report_settings.py
"""
Toggleable report settings.

A settings value is a plain nested dict of boolean leaves:

    {
      "content": {"includeSummary": True, "includeStatusChart": True, ...},
      "header":  {"showContractInfo": True},
      "footer":  {"showPageNumbers": True, "showGeneratedDate": True},
    }

Settings are treated as immutable values: toggle() always returns a deep copy
and never touches its input. Leaves are addressed with SettingKey or with the
equivalent dotted path string ("content.includeSummary").

API
    from report_settings import REPORT_TYPES, SettingKey, create_default, toggle
    s = create_default("claims")
    s = toggle(s, SettingKey.INCLUDE_ITEMS)
"""

from __future__ import annotations

import copy
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from report_errors import UnknownReportType

logger = logging.getLogger(__name__)

REPORT_TYPES: Tuple[str, ...] = ("quantity", "claims", "financial", "diary")

Settings = Dict[str, Dict[str, bool]]


class SettingKey(str, Enum):
    INCLUDE_SUMMARY = "content.includeSummary"
    INCLUDE_STATUS_CHART = "content.includeStatusChart"
    INCLUDE_SECTION_PROGRESS = "content.includeSectionProgress"
    INCLUDE_ITEMS = "content.includeItems"
    SHOW_CONTRACT_INFO = "header.showContractInfo"
    SHOW_PAGE_NUMBERS = "footer.showPageNumbers"
    SHOW_GENERATED_DATE = "footer.showGeneratedDate"


# Item-level detail only makes sense where there are line items.
_ITEM_DOMAINS = ("quantity", "claims")

# Names used by older export screens, mapped onto the current leaves.
ALIASES: Dict[str, str] = {
    "includeSections": SettingKey.INCLUDE_SECTION_PROGRESS.value,
    "includeItemDetails": SettingKey.INCLUDE_ITEMS.value,
    "showPageNumber": SettingKey.SHOW_PAGE_NUMBERS.value,
}


def _require_type(report_type: str) -> str:
    if report_type not in REPORT_TYPES:
        raise UnknownReportType(report_type)
    return report_type


def _key_path(key: Union[SettingKey, str]) -> str:
    return key.value if isinstance(key, SettingKey) else str(key)


def create_default(report_type: str) -> Settings:
    """Fresh default settings for one report domain."""
    _require_type(report_type)
    content = {
        "includeSummary": True,
        "includeStatusChart": True,
        "includeSectionProgress": True,
    }
    if report_type in _ITEM_DOMAINS:
        content["includeItems"] = False  # opt-in, can be large
    return {
        "content": content,
        "header": {"showContractInfo": True},
        "footer": {"showPageNumbers": True, "showGeneratedDate": True},
    }


def has_key(settings: Mapping[str, Any], key: Union[SettingKey, str]) -> bool:
    group, _, leaf = _key_path(key).partition(".")
    node = settings.get(group) if isinstance(settings, Mapping) else None
    return isinstance(node, Mapping) and isinstance(node.get(leaf), bool)


def get_flag(settings: Mapping[str, Any], key: Union[SettingKey, str]) -> bool:
    """Value of one leaf; absent leaves read as False."""
    if not has_key(settings, key):
        return False
    group, _, leaf = _key_path(key).partition(".")
    return bool(settings[group][leaf])


def toggle(settings: Mapping[str, Any], key: Union[SettingKey, str]) -> Settings:
    """
    Return a new settings tree with the leaf at `key` flipped.

    Unknown or stale paths are a no-op (an equal copy is returned) so a preview
    driven by out-of-date UI state never fails.
    """
    updated = copy.deepcopy(dict(settings))
    if not has_key(updated, key):
        logger.debug("toggle ignored for unknown settings path %s", _key_path(key))
        return updated
    group, _, leaf = _key_path(key).partition(".")
    updated[group][leaf] = not updated[group][leaf]
    return updated


def set_flag(settings: Mapping[str, Any], key: Union[SettingKey, str], value: bool) -> Settings:
    """Like toggle() but with an explicit target value."""
    if get_flag(settings, key) == bool(value):
        return copy.deepcopy(dict(settings))
    return toggle(settings, key)


def settings_from_mapping(report_type: str, overrides: Optional[Mapping[str, Any]] = None) -> Settings:
    """
    Defaults for `report_type` with caller values layered on top.

    Accepts nested groups ({"content": {"includeSummary": False}}), flat leaf
    names ({"includeSummary": False}), dotted paths and the legacy aliases.
    Leaves that do not exist for the domain, and values that are not
    booleans or 0/1, are dropped.
    """
    out = create_default(report_type)
    for raw_key, value in (overrides or {}).items():
        if isinstance(value, Mapping):
            for leaf, leaf_value in value.items():
                out = _apply(out, f"{raw_key}.{leaf}", leaf_value)
        else:
            out = _apply(out, str(raw_key), value)
    return out


def _apply(settings: Settings, raw_key: str, value: Any) -> Settings:
    path = _resolve_path(settings, raw_key)
    if path is None:
        logger.debug("ignoring unknown setting %s", raw_key)
        return settings
    # booleans or 0/1 only
    if not isinstance(value, (bool, int)) or value not in (0, 1):
        logger.debug("ignoring non-boolean value %r for setting %s", value, raw_key)
        return settings
    return set_flag(settings, path, bool(value))


def _resolve_path(settings: Settings, raw_key: str) -> Optional[str]:
    group, dot, leaf = raw_key.partition(".")
    candidates = [raw_key] if dot else []
    name = leaf if dot else raw_key
    if name in ALIASES:
        candidates.append(ALIASES[name])
    if not dot:
        candidates.extend(f"{g}.{raw_key}" for g in ("content", "header", "footer"))
    for cand in candidates:
        if has_key(settings, cand):
            return cand
    return None


def content_keys(settings: Mapping[str, Any]) -> Tuple[str, ...]:
    """Dotted paths of every content leaf present in `settings`."""
    content = settings.get("content") or {}
    return tuple(f"content.{k}" for k in content)

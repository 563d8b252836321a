"""
Actionable element discovery for ``observe``.

Two strategies: the page's ARIA snapshot (accessibility tree) and a plain
HTML scan for pages whose accessibility tree is unusable.
"""

import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

INTERACTIVE_ROLES = {
    "button",
    "checkbox",
    "combobox",
    "link",
    "listbox",
    "menuitem",
    "option",
    "radio",
    "searchbox",
    "slider",
    "spinbutton",
    "switch",
    "tab",
    "textbox",
}

INPUT_ROLES = {"textbox", "searchbox", "combobox", "spinbutton"}

_ARIA_LINE = re.compile(r'^\s*-\s+([a-z]+)(?:\s+"((?:[^"\\]|\\.)*)")?')

_TAG_ROLES = {
    "a": "link",
    "button": "button",
    "input": "textbox",
    "textarea": "textbox",
    "select": "combobox",
}

_HTML_SELECTOR = "a[href], button, input, textarea, select, [role]"


def _norm_ws(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "")).strip()


def parse_aria_snapshot(snapshot: str) -> List[Dict[str, Any]]:
    """Turn a Playwright ARIA snapshot into actionable elements."""
    elements: List[Dict[str, Any]] = []
    seen = set()
    for line in (snapshot or "").splitlines():
        m = _ARIA_LINE.match(line)
        if not m:
            continue
        role, name = m.group(1), (m.group(2) or "").replace('\\"', '"')
        if role not in INTERACTIVE_ROLES:
            continue
        key = (role, name)
        if key in seen:
            continue
        seen.add(key)
        elements.append(
            {
                "role": role,
                "name": name,
                "description": f'{role} "{name}"' if name else role,
                "method": "fill" if role in INPUT_ROLES else "click",
            }
        )
    return elements


def _css_escape(s: str) -> str:
    return re.sub(r'([!"#$%&\'()*+,./:;<=>?@\[\\\]^`{|}~])', r"\\\1", s)


def _build_selector(tag: str, attrs: Dict[str, str]) -> str:
    if attrs.get("id"):
        return f"#{_css_escape(attrs['id'])}"
    if attrs.get("name"):
        return f'{tag}[name="{attrs["name"]}"]'
    if attrs.get("aria-label"):
        return f'{tag}[aria-label="{attrs["aria-label"]}"]'
    if attrs.get("placeholder"):
        return f'{tag}[placeholder="{attrs["placeholder"]}"]'
    return tag


def _attrs_to_str_map(attrs: Dict[str, Any]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for k, v in attrs.items():
        out[k] = " ".join(v) if isinstance(v, list) else str(v or "")
    return out


def _label_for(soup: BeautifulSoup, el: Tag, attr_map: Dict[str, str]) -> str:
    if el.name in {"a", "button"}:
        text = _norm_ws(el.get_text(" ", strip=True))
        if text:
            return text[:120]

    for key in ("aria-label", "placeholder", "title", "value"):
        if attr_map.get(key):
            return _norm_ws(attr_map[key])[:120]

    if attr_map.get("id"):
        lab = soup.find("label", attrs={"for": attr_map["id"]})
        if lab is not None:
            return _norm_ws(lab.get_text(" ", strip=True))[:120]

    parent_label = el.find_parent("label")
    if parent_label is not None:
        return _norm_ws(parent_label.get_text(" ", strip=True))[:120]
    return ""


def parse_html_elements(html: str) -> List[Dict[str, Any]]:
    """Scan raw HTML for actionable elements, in document order."""
    if not html:
        return []
    soup = BeautifulSoup(html, "lxml")

    elements: List[Dict[str, Any]] = []
    for el in soup.select(_HTML_SELECTOR):
        tag = str(el.name or "")
        attr_map = _attrs_to_str_map(el.attrs or {})
        role = attr_map.get("role") or _TAG_ROLES.get(tag)
        if tag == "input":
            input_type = attr_map.get("type", "").lower()
            if input_type == "hidden":
                continue
            if input_type in {"submit", "button"}:
                role = "button"
        if role not in INTERACTIVE_ROLES:
            continue

        name = _label_for(soup, el, attr_map)
        elements.append(
            {
                "role": role,
                "name": name,
                "selector": _build_selector(tag, attr_map),
                "description": f'{role} "{name}"' if name else role,
                "method": "fill" if role in INPUT_ROLES else "click",
            }
        )
    return elements



def _tokenize(s: str) -> set:
    return {t for t in re.findall(r"[a-z0-9]{2,}", (s or "").lower())}


def score_element(instruction: str, el: Dict[str, Any]) -> float:
    """Structural score plus overlap with the instruction's words."""
    score = 0.0
    role = el.get("role")
    if role in INPUT_ROLES:
        score += 3.0
    elif role == "button":
        score += 2.0
    elif role == "link":
        score += 1.0
    if el.get("name"):
        score += 1.0
    overlap = _tokenize(instruction) & _tokenize(el.get("name", ""))
    score += 4.0 * len(overlap)
    return score


def rank_elements(
    instruction: Optional[str], elements: List[Dict[str, Any]], limit: int = 40
) -> List[Dict[str, Any]]:
    scored = [(i, score_element(instruction or "", el), el) for i, el in enumerate(elements)]
    scored.sort(key=lambda t: (t[1], -t[0]), reverse=True)
    ranked = [el for _, _, el in scored[:limit]]
    for i, el in enumerate(ranked):
        el["index"] = i
    return ranked

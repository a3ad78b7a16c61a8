# notifier/delivery/templates.py
"""
Resolução e renderização de templates.

A busca cai de escopo em escopo, em ordem:
  1) template da propriedade no idioma pedido
  2) template global no idioma pedido
  3) template da propriedade em inglês
  4) template global em inglês
Só entram templates habilitados e aprovados pela Meta.

Os níveis são predicados aplicados sobre as linhas candidatas, então a ordem de
precedência pode ser testada sem banco (select_template).
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from notifier.logging import get_logger
from notifier.models.templates import list_candidate_templates

logger = get_logger(__name__)

FALLBACK_LANGUAGE = "en"

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")

Template = Dict[str, Any]
Selector = Callable[[Template], bool]


def is_eligible(template: Template) -> bool:
    return bool(template.get("is_enabled")) and template.get("approval_status") == "approved"


def build_tiers(
    property_id: Optional[str], language_code: str, fallback_language: str = FALLBACK_LANGUAGE
) -> List[Tuple[str, Selector]]:
    """
    Lista ordenada (nome, predicado). Níveis que repetiriam um anterior
    (sem propriedade, ou idioma já igual ao de fallback) ficam de fora.
    """
    def scope(prop: Optional[str], lang: str) -> Selector:
        return lambda t: t.get("property_id") == prop and t.get("language_code") == lang

    tiers: List[Tuple[str, Selector]] = []
    if property_id:
        tiers.append(("property+language", scope(property_id, language_code)))
    tiers.append(("global+language", scope(None, language_code)))
    if language_code != fallback_language:
        if property_id:
            tiers.append(("property+fallback", scope(property_id, fallback_language)))
        tiers.append(("global+fallback", scope(None, fallback_language)))
    return tiers


def select_template(
    candidates: Iterable[Template],
    property_id: Optional[str],
    language_code: str,
    fallback_language: str = FALLBACK_LANGUAGE,
) -> Tuple[Optional[Template], Optional[str]]:
    """Primeiro template elegível do nível mais específico. Retorna (template, nome_do_nível)."""
    eligible = [t for t in candidates if is_eligible(t)]
    for name, selector in build_tiers(property_id, language_code, fallback_language):
        for t in eligible:
            if selector(t):
                return t, name
    return None, None


class TemplateResolver:
    def __init__(self, db_path: str, fallback_language: str = FALLBACK_LANGUAGE):
        self.db_path = db_path
        self.fallback_language = fallback_language

    def resolve(self, property_id: Optional[str], template_type: str, language_code: str) -> Optional[Template]:
        language_code = language_code or self.fallback_language
        candidates = list_candidate_templates(
            self.db_path,
            property_id=property_id,
            template_type=template_type,
            language_codes=[language_code, self.fallback_language],
        )
        template, tier = select_template(candidates, property_id, language_code, self.fallback_language)
        logger.debug(
            "template.resolve",
            extra={
                "property_id": property_id,
                "template_type": template_type,
                "language_code": language_code,
                "tier": tier,
                "template_id": (template or {}).get("id"),
            },
        )
        return template


def render_text(text: Optional[str], data: Dict[str, Any]) -> Optional[str]:
    """Troca {{chave}} por data[chave]; tokens sem valor ficam literais."""
    if text is None:
        return None

    def _sub(m: "re.Match[str]") -> str:
        value = data.get(m.group(1))
        return m.group(0) if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_sub, text)


def render(template: Template, data: Dict[str, Any]) -> Dict[str, Optional[str]]:
    return {
        "header": render_text(template.get("header_text"), data),
        "body": render_text(template.get("body_template"), data) or "",
        "footer": render_text(template.get("footer_text"), data),
    }


def placeholders(text: Optional[str]) -> List[str]:
    return _PLACEHOLDER_RE.findall(text or "")


def body_parameters(template: Template, data: Dict[str, Any]) -> List[Dict[str, str]]:
    """Parâmetros do componente "body" da Cloud API, na ordem dos placeholders."""
    params = []
    for key in placeholders(template.get("body_template")):
        value = data.get(key)
        params.append({"type": "text", "text": "" if value is None else str(value)})
    return params

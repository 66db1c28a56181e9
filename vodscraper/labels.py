"""
Règles déclaratives pour les champs "Libellé：Valeur"
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import structlog

log = structlog.get_logger(__name__)

# Deux-points ASCII et pleine chasse
LABEL_SEPARATOR_CHARS = (':', '：')


def strip_value(value: str) -> str:
    return value.strip()


def year_from_date(value: str) -> str:
    """'2024-01-06' -> '2024'"""
    return value.strip().split('-')[0].strip()


def split_tags(value: str) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(value.split()))


@dataclass(frozen=True)
class LabelRule:
    keyword: str
    field: str
    transform: Callable[[str], Any] = strip_value


def split_label(text: str) -> Optional[Tuple[str, str]]:
    """Coupe au premier deux-points (ASCII ou pleine chasse)"""
    positions = [text.find(sep) for sep in LABEL_SEPARATOR_CHARS if sep in text]
    if not positions:
        return None
    index = min(positions)
    return text[:index].strip(), text[index + 1:].strip()


def apply_rules(pairs: Iterable[Tuple[str, str]], rules: Iterable[LabelRule]) -> Dict[str, Any]:
    """
    Évalue chaque paire (libellé, valeur) contre la table de règles

    La première règle dont le mot-clé apparaît dans le libellé gagne. Une
    transformation qui échoue laisse simplement le champ absent.
    """
    rules = tuple(rules)
    fields: Dict[str, Any] = {}
    for label, value in pairs:
        for rule in rules:
            if rule.keyword not in label:
                continue
            try:
                fields[rule.field] = rule.transform(value)
            except (ValueError, IndexError, TypeError, AttributeError) as e:
                log.debug("label_transform_failed", keyword=rule.keyword, error=str(e))
            break
    return fields


def apply_text_rules(texts: Iterable[str], rules: Iterable[LabelRule]) -> Dict[str, Any]:
    """Variante pour des nœuds texte bruts 'Libellé：Valeur'"""
    pairs = []
    for text in texts:
        pair = split_label(text)
        if pair:
            pairs.append(pair)
    return apply_rules(pairs, rules)

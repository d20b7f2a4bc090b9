"""
@file normalize.py
@brief Normalizzazione di targhe, numeri e tipi carburante.
@ingroup domain_module

@details
Funzioni pure condivise da estrazione e matching. Le tabelle sinonimi e i
gruppi di compatibilità sono immutabili e inizializzati una sola volta.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Optional

_PLATE_STRIP_RE = re.compile(r"[\s\-]")
_LEADING_NUMBER_RE = re.compile(r"^[-+]?(?:\d+(?:\.\d*)?|\.\d+)")
_NON_DIGIT_RE = re.compile(r"\D")


def normalize_plate(plate: Optional[str]) -> str:
    """
    @brief Forma canonica di una targa: trim, maiuscolo, senza spazi e trattini.
    @note Idempotente: normalize_plate(normalize_plate(x)) == normalize_plate(x).
    """
    if not plate:
        return ""
    return _PLATE_STRIP_RE.sub("", plate.strip().upper())


def parse_decimal(value: Optional[str]) -> Optional[float]:
    """
    @brief Converte un numero con virgola o punto decimale in float.
    @param value Stringa tipo '45,20', '72.30', '45.2 L'.
    @return Float o None se non c'è un numero iniziale.

    @note Come per i campi FatturaPA, la virgola è solo separatore decimale:
          '1.234,56' non è un importo valido in questo contesto e produce 1.234.
    """
    if value is None:
        return None
    s = value.strip().replace(",", ".", 1)
    m = _LEADING_NUMBER_RE.match(s)
    if not m:
        return None
    try:
        return float(m.group(0))
    except ValueError:
        return None


def parse_odometer(value: Optional[str]) -> Optional[int]:
    """@brief Km contachilometri: tiene solo le cifre ('12.345 km' -> 12345)."""
    if value is None:
        return None
    digits = _NON_DIGIT_RE.sub("", value)
    return int(digits) if digits else None


def truncate(value: Optional[str], max_len: int) -> Optional[str]:
    if not value:
        return None
    return value[:max_len]


# ---------------------------------------------------------------------------
# Tipi carburante
# ---------------------------------------------------------------------------

FUEL_TYPE_CANONICAL = MappingProxyType({
    # Diesel / Gasolio
    "diesel": "DIESEL",
    "gasolio": "DIESEL",
    "gasolio autotrazion": "DIESEL",
    "gasolio autotrazione": "DIESEL",
    "gasolio auto": "DIESEL",
    "nafta": "DIESEL",
    "gas oil": "DIESEL",
    # Benzina
    "benzina": "BENZINA",
    "petrol": "BENZINA",
    "gasoline": "BENZINA",
    "unleaded": "BENZINA",
    "senza piombo": "BENZINA",
    "super benzina": "BENZINA",
    "super senza pb": "BENZINA",
    "super 95": "BENZINA",
    "super 98": "BENZINA",
    "senza pb": "BENZINA",
    "benzina super": "BENZINA",
    "benzina verde": "BENZINA",
    # GPL
    "gpl": "GPL",
    "lpg": "GPL",
    "gas liquido": "GPL",
    # Metano
    "metano": "METANO",
    "cng": "METANO",
    "gas naturale": "METANO",
    "natural gas": "METANO",
    "gas metano": "METANO",
    # Elettrico
    "elettrico": "ELETTRICO",
    "elettrica": "ELETTRICO",
    "electric": "ELETTRICO",
    "elettr": "ELETTRICO",
    # Ibridi
    "ibrido benzina": "IBRIDO_BENZINA",
    "ibrida benzina": "IBRIDO_BENZINA",
    "hybrid petrol": "IBRIDO_BENZINA",
    "ibrido diesel": "IBRIDO_DIESEL",
    "ibrida diesel": "IBRIDO_DIESEL",
    "hybrid diesel": "IBRIDO_DIESEL",
    # Bifuel
    "bifuel benzina gpl": "BIFUEL_BENZINA_GPL",
    "benzina/gpl": "BIFUEL_BENZINA_GPL",
    "benzina gpl": "BIFUEL_BENZINA_GPL",
    "bifuel benzina metano": "BIFUEL_BENZINA_METANO",
    "benzina/metano": "BIFUEL_BENZINA_METANO",
    "benzina metano": "BIFUEL_BENZINA_METANO",
    # Idrogeno
    "idrogeno": "IDROGENO",
    "hydrogen": "IDROGENO",
    # Additivi (non carburante, solo classificazione)
    "adblue": "ADBLUE",
    "ad blue": "ADBLUE",
})

CANONICAL_FUEL_TYPES = frozenset(FUEL_TYPE_CANONICAL.values())

FUEL_COMPATIBILITY_GROUPS: tuple[frozenset[str], ...] = (
    frozenset({"DIESEL", "IBRIDO_DIESEL"}),
    frozenset({"BENZINA", "IBRIDO_BENZINA", "BIFUEL_BENZINA_GPL", "BIFUEL_BENZINA_METANO"}),
    frozenset({"GPL", "BIFUEL_BENZINA_GPL"}),
    frozenset({"METANO", "BIFUEL_BENZINA_METANO"}),
)

# chiavi più lunghe prima: 'ibrido diesel' deve vincere su 'diesel'
_KEYS_BY_LENGTH = sorted(FUEL_TYPE_CANONICAL, key=len, reverse=True)
_FUEL_SEP_RE = re.compile(r"[\s_\-]+")
_MIN_PARTIAL_LEN = 3


def canonicalize_fuel_type(raw: Optional[str]) -> Optional[str]:
    """
    @brief Mappa un testo libero ('Gasolio', 'Benzina s.p.') al codice canonico.
    @return Codice canonico (es. 'DIESEL') o None se non riconosciuto.

    @details
    Ordine di risoluzione:
    1. lookup diretto sulla forma normalizzata
    2. valore già canonico (es. 'IBRIDO_BENZINA')
    3. contenimento parziale, chiave più lunga prima
    """
    if not raw or not raw.strip():
        return None
    normalized = _FUEL_SEP_RE.sub(" ", raw.strip().lower()).strip()

    hit = FUEL_TYPE_CANONICAL.get(normalized)
    if hit:
        return hit

    as_code = normalized.replace(" ", "_").upper()
    if as_code in CANONICAL_FUEL_TYPES:
        return as_code

    for key in _KEYS_BY_LENGTH:
        if key in normalized:
            return FUEL_TYPE_CANONICAL[key]
    if len(normalized) >= _MIN_PARTIAL_LEN:
        for key in _KEYS_BY_LENGTH:
            if normalized in key:
                return FUEL_TYPE_CANONICAL[key]
    return None


def are_fuel_types_compatible(a: str, b: str) -> bool:
    return any(a in group and b in group for group in FUEL_COMPATIBILITY_GROUPS)

"""
@file dates.py
@brief Parsing tollerante di date in formati italiani e ISO.
@ingroup domain_module

@details
Due parser distinti, ciascuno al proprio punto d'uso:
- parse_flexible_date: usato dal matching (anno a 2 cifre: pivot 50)
- parse_invoice_date: usato per persistere date di fattura e righe
  (formato ESSO dd.MM.yy: pivot 70)

I due pivot divergono e vanno chiariti lato prodotto prima di unificarli.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Optional

from dateutil import parser as date_parser

ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:T[\d:.]+)?$")
ITALIAN_RE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$")
ITALIAN_SHORT_RE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2})$")
COMPACT_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")

MATCHING_CENTURY_PIVOT = 50
INVOICE_CENTURY_PIVOT = 70


def _safe_date(year: int, month: int, day: int) -> Optional[dt.date]:
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def _expand_year(yy: int, pivot: int) -> int:
    return 1900 + yy if yy >= pivot else 2000 + yy


def parse_flexible_date(raw: Optional[str]) -> Optional[dt.date]:
    """
    @brief Converte una stringa data nei formati comuni in date.
    @param raw Es. '2024-03-10', '2024-03-10T08:15:00', '10/03/2024', '10.03.24', '20240310'.
    @return date valida oppure None.
    """
    if not raw:
        return None
    s = raw.strip()
    if not s:
        return None

    m = ISO_RE.match(s)
    if m:
        d = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if d:
            return d

    m = ITALIAN_RE.match(s)
    if m:
        d = _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        if d:
            return d

    m = ITALIAN_SHORT_RE.match(s)
    if m:
        year = _expand_year(int(m.group(3)), MATCHING_CENTURY_PIVOT)
        d = _safe_date(year, int(m.group(2)), int(m.group(1)))
        if d:
            return d

    m = COMPACT_RE.match(s)
    if m:
        d = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if d:
            return d

    # numeri nudi ('10', '2024') non sono date: dateutil li completerebbe con oggi
    if s.isdigit():
        return None
    try:
        return date_parser.parse(s, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def parse_invoice_date(raw: Optional[str]) -> Optional[dt.date]:
    """
    @brief Parsing best-effort della data fattura/riga da persistere.
    @details ISO prima, poi dd/MM/yyyy, dd-MM-yyyy, dd.MM.yy (ESSO), dd.MM.yyyy.
    """
    if not raw:
        return None
    s = raw.strip()

    try:
        return dt.datetime.fromisoformat(s).date()
    except ValueError:
        pass

    m = re.match(r"^(\d{1,2})/(\d{1,2})/(\d{4})$", s) or re.match(r"^(\d{1,2})-(\d{1,2})-(\d{4})$", s)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    m = re.match(r"^(\d{1,2})\.(\d{1,2})\.(\d{2})$", s)
    if m:
        year = _expand_year(int(m.group(3)), INVOICE_CENTURY_PIVOT)
        return _safe_date(year, int(m.group(2)), int(m.group(1)))

    m = re.match(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$", s)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    return None


def days_between(a: dt.date, b: dt.date) -> int:
    """@brief Distanza assoluta in giorni di calendario."""
    return abs((a - b).days)

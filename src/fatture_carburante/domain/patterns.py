"""
@file patterns.py
@brief Catalogo di pattern regex comuni per documenti italiani e merge dei preset nei template.
@ingroup domain_module
"""

from __future__ import annotations

from typing import Mapping, Sequence

from pydantic import BaseModel

from .models import RegexPattern, RegexRule, TemplateConfig, XPathRegexRule


# pattern preset per nome campo (prima quelli del fornitore, poi i globali)
RegexPresets = dict[str, list[RegexPattern]]


class RegexPatternInfo(BaseModel):
    """@brief Pattern di catalogo con etichetta, descrizione ed esempi."""
    label: str
    pattern: str
    description: str
    examples: list[str]


DEFAULT_REGEX_PATTERNS: dict[str, RegexPatternInfo] = {
    # -- Date --
    "date_iso": RegexPatternInfo(
        label="Data ISO (yyyy-MM-dd)",
        pattern=r"(\d{4}-\d{2}-\d{2})",
        description="Data in formato ISO: 2024-01-15",
        examples=["2024-01-15", "2025-12-31"],
    ),
    "date_italian": RegexPatternInfo(
        label="Data italiana (dd/MM/yyyy)",
        pattern=r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{4})",
        description="Data in formato italiano: 15/01/2024, 15-01-2024, 15.01.2024",
        examples=["15/01/2024", "1-3-2025", "31.12.2024"],
    ),
    "date_italian_short": RegexPatternInfo(
        label="Data italiana breve (dd/MM/yy)",
        pattern=r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2})",
        description="Data in formato italiano breve: 15/01/24",
        examples=["15/01/24", "1-3-25"],
    ),
    "date_compact": RegexPatternInfo(
        label="Data compatta (yyyyMMdd)",
        pattern=r"(\d{8})",
        description="Data senza separatori: 20240115",
        examples=["20240115", "20251231"],
    ),
    # -- Numeri --
    "amount": RegexPatternInfo(
        label="Importo (EUR)",
        pattern=r"([\d.,]+)",
        description="Cifra numerica con separatori: 1.234,56 o 1234.56",
        examples=["1.234,56", "1234.56", "99,99"],
    ),
    "amount_with_currency": RegexPatternInfo(
        label="Importo con valuta",
        pattern=r"(?:EUR|€)?\s*([\d.,]+)",
        description="Importo con eventuale prefisso EUR o simbolo euro",
        examples=["EUR 1.234,56", "1234.56"],
    ),
    "integer_number": RegexPatternInfo(
        label="Numero intero",
        pattern=r"(\d+)",
        description="Sequenza di sole cifre",
        examples=["12345", "0", "999999"],
    ),
    "decimal_number": RegexPatternInfo(
        label="Numero decimale",
        pattern=r"(\d+[.,]\d+)",
        description="Numero con decimali (punto o virgola)",
        examples=["12.50", "1234,56", "0.5"],
    ),
    # -- Identificativi fiscali --
    "codice_fiscale": RegexPatternInfo(
        label="Codice Fiscale",
        pattern=r"([A-Z]{6}\d{2}[A-Z]\d{2}[A-Z]\d{3}[A-Z])",
        description="Codice fiscale italiano (16 caratteri alfanumerici)",
        examples=["RSSMRA85M01H501Z"],
    ),
    "partita_iva": RegexPatternInfo(
        label="Partita IVA",
        pattern=r"(\d{11})",
        description="Partita IVA italiana (11 cifre)",
        examples=["01234567890", "08510870960"],
    ),
    "partita_iva_with_prefix": RegexPatternInfo(
        label="Partita IVA con prefisso IT",
        pattern=r"(?:IT)?(\d{11})",
        description="Partita IVA con eventuale prefisso IT",
        examples=["IT01234567890", "01234567890"],
    ),
    # -- Veicolo --
    "targa_italiana": RegexPatternInfo(
        label="Targa italiana",
        pattern=r"([A-Z]{2}\s?\d{3}\s?[A-Z]{2})",
        description="Targa italiana formato nuovo: AB123CD o AB 123 CD",
        examples=["GA727GS", "AB 123 CD", "FH432NB"],
    ),
    "targa_da_descrizione": RegexPatternInfo(
        label="Targa in testo descrittivo",
        pattern=r"(?:targa|plate|veicolo)[:\s]*([A-Za-z]{2}\s?\d{3}\s?[A-Za-z]{2})",
        description="Estrae la targa da testo con prefisso 'targa:', 'plate:', 'veicolo:'",
        examples=["targa: GA727GS", "veicolo AB123CD"],
    ),
    "targa_da_carta": RegexPatternInfo(
        label="Targa da numero carta carburante",
        pattern=r"\d+-([A-Z]{2}\d{3}[A-Z]{2})",
        description="Targa dal formato numero carta-targa (es. ESSO: 7033167200254244329-GA727GS)",
        examples=["7033167200254244329-GA727GS"],
    ),
    "telaio": RegexPatternInfo(
        label="Numero di telaio (VIN)",
        pattern=r"([A-HJ-NPR-Z0-9]{17})",
        description="Vehicle Identification Number: 17 caratteri (esclusi I, O, Q)",
        examples=["WVWZZZ3CZWE123456", "1HGBH41JXMN109186"],
    ),
}

# pattern usati dal generatore di template quando manca un campo dedicato
PLATE_FROM_CARD_PATTERN = DEFAULT_REGEX_PATTERNS["targa_da_carta"].pattern
DATE_IN_DESCRIPTION_PATTERN = r"(?:in data|data|il)\s*(\d{1,2}[./\-]\d{1,2}[./\-]\d{2,4})"


def merge_regex_presets(
    config: TemplateConfig,
    presets_by_field: Mapping[str, Sequence[RegexPattern]],
) -> TemplateConfig:
    """
    @brief Arricchisce le regole REGEX/XPATH_REGEX con i pattern preset.
    @param config Template di partenza (non modificato).
    @param presets_by_field Pattern preset per nome campo, già ordinati
           (prima quelli del fornitore, poi i globali).
    @return Copia del template con regex_patterns = [regex inline, *pattern esistenti, *preset].
    """
    enriched = config.model_copy(deep=True)
    for field_name, rule in enriched.fields:
        if not isinstance(rule, (RegexRule, XPathRegexRule)):
            continue
        presets = list(presets_by_field.get(field_name) or [])
        if not presets:
            continue
        patterns: list[RegexPattern] = []
        if rule.regex:
            patterns.append(RegexPattern(label="Template inline", regex=rule.regex, regex_group=rule.regex_group))
        patterns.extend(rule.regex_patterns)
        patterns.extend(p.model_copy() for p in presets)
        rule.regex_patterns = patterns
    return enriched

"""
@file extraction.py
@brief Interprete delle regole di estrazione e estrazione righe da fattura XML.
@ingroup domain_module

@details
extract_field interpreta una singola FieldExtractionRule su un nodo;
extract_lines applica un TemplateConfig all'intero documento:
- parsing XML
- metadati fattura (best-effort)
- individuazione collezione righe
- estrazione campi per riga con isolamento degli errori
- filtri include/exclude

Gli errori strutturali (XML illeggibile, percorso righe assente) non sono
eccezioni: producono ExtractionResult(success=False).
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from .models import (
    ExtractedLine,
    ExtractionResult,
    InvoiceMetadata,
    LineFilter,
    RegexPattern,
    RegexRule,
    StaticRule,
    TemplateConfig,
    XPathRegexRule,
    XPathRule,
)
from .normalize import parse_decimal, parse_odometer
from .xml_tree import NavResult, XmlNode, XmlParseError, as_sequence, full_text, navigate, parse_xml, scalar_text

logger = logging.getLogger(__name__)

_TRANSFORMS: dict[str, Callable[[str], str]] = {
    "uppercase": str.upper,
    "lowercase": str.lower,
    "trim": str.strip,
}


def _apply_transform(text: str, transform: Optional[str]) -> str:
    fn = _TRANSFORMS.get(transform) if transform else None
    return fn(text) if fn else text


def _search(regex: str, text: str) -> Optional[re.Match]:
    try:
        return re.search(regex, text)
    except re.error as e:
        # regex non valida = nessun match
        logger.debug("regex non valida %r: %s", regex, e)
        return None


def _group_or_whole(m: re.Match, group: int) -> str:
    try:
        value = m.group(group)
    except IndexError:
        value = None
    return value if value is not None else m.group(0)


def _apply_patterns(
    text: str,
    patterns: list[RegexPattern],
    regex: Optional[str],
    regex_group: int,
) -> Optional[str]:
    if patterns:
        for p in patterns:
            m = _search(p.regex, text)
            if m:
                return _apply_transform(_group_or_whole(m, p.regex_group), p.transform)
        return None
    if regex:
        m = _search(regex, text)
        return _group_or_whole(m, regex_group) if m else None
    return text


def extract_field(
    node: NavResult,
    rule: StaticRule | XPathRule | RegexRule | XPathRegexRule,
    root: Optional[XmlNode] = None,
) -> Optional[str]:
    """
    @brief Estrae il valore di un campo applicando la regola al nodo riga.
    @param node Nodo della riga (o qualunque nodo di partenza).
    @param rule Regola di estrazione (variante taggata per metodo).
    @param root Radice del documento, usata dalle regole REGEX con percorso.
    @return Stringa estratta o None (stringa vuota dopo transform = None).
    """
    text: Optional[str]
    if isinstance(rule, StaticRule):
        return rule.static_value
    elif isinstance(rule, XPathRule):
        text = scalar_text(navigate(node, rule.xpath))
    elif isinstance(rule, XPathRegexRule):
        text = scalar_text(navigate(node, rule.xpath))
        if text:
            text = _apply_patterns(text, rule.regex_patterns, rule.regex, rule.regex_group)
    elif isinstance(rule, RegexRule):
        # con percorso il testo viene dalla radice del documento, altrimenti dalla riga
        if rule.xpath and root is not None:
            text = full_text(navigate(root, rule.xpath))
        else:
            text = full_text(node)
        if text:
            text = _apply_patterns(text, rule.regex_patterns, rule.regex, rule.regex_group)
    else:
        raise TypeError(f"Metodo di estrazione non supportato: {rule!r}")

    if text:
        text = _apply_transform(text, rule.transform)
    return text or None


# ---------------------------------------------------------------------------
# Estrazione righe
# ---------------------------------------------------------------------------


def _store_field(line: ExtractedLine, field_name: str, value: Optional[str]) -> None:
    if field_name == "license_plate":
        line.license_plate = value.upper() if value else None
    elif field_name in ("quantity", "amount", "unit_price"):
        setattr(line, field_name, parse_decimal(value) if value else None)
    elif field_name == "odometer_km":
        line.odometer_km = parse_odometer(value) if value else None
    else:
        setattr(line, field_name, value)


def line_field_value(line: ExtractedLine, field_path: str) -> Optional[str]:
    """@brief Valore testuale di un campo estratto, usato dai filtri riga."""
    if field_path not in ExtractedLine.model_fields or field_path in ("errors", "line_number"):
        return None
    value = getattr(line, field_path)
    if value is None:
        return None
    if isinstance(value, float):
        return repr(value) if not value.is_integer() else str(int(value))
    return str(value)


def apply_line_filters(
    lines: list[ExtractedLine],
    filters: list[LineFilter],
    errors: Optional[list[str]] = None,
) -> list[ExtractedLine]:
    """
    @brief Applica i filtri in ordine dichiarato (regex case-insensitive).
    @details include = tiene solo le righe che matchano; exclude = le scarta.
             Filtri senza campo o regex sono ignorati; regex non valide
             producono un avviso in errors e il filtro è saltato.
    """
    for flt in filters:
        if not flt.field_path or not flt.regex:
            continue
        try:
            pattern = re.compile(flt.regex, re.I)
        except re.error:
            if errors is not None:
                errors.append(f"Filtro regex non valido: {flt.regex}")
            continue

        kept = []
        for line in lines:
            value = line_field_value(line, flt.field_path)
            matches = bool(value and pattern.search(value))
            if matches == (flt.action == "include"):
                kept.append(line)
        lines = kept
    return lines


def _extract_metadata(doc: XmlNode, config: TemplateConfig) -> InvoiceMetadata:
    meta = InvoiceMetadata()
    paths = config.invoice_metadata
    if paths and paths.invoice_number_path:
        meta.invoice_number = scalar_text(navigate(doc, paths.invoice_number_path))
    if paths and paths.invoice_date_path:
        meta.invoice_date = scalar_text(navigate(doc, paths.invoice_date_path))
    if config.supplier_detection and config.supplier_detection.vat_number_path:
        meta.supplier_vat_number = scalar_text(navigate(doc, config.supplier_detection.vat_number_path))
    return meta


def extract_lines(document: bytes | str, config: TemplateConfig) -> ExtractionResult:
    """
    @brief Estrae le righe acquisto da un documento XML secondo il template.
    @param document Contenuto XML (bytes UTF-8 o stringa).
    @param config Template fornitore.
    @return ExtractionResult; success=False solo per errori strutturali.
    """
    errors: list[str] = []

    try:
        doc = parse_xml(document)
    except XmlParseError as e:
        logger.warning("parsing XML fallito: %s", e)
        return ExtractionResult(success=False, errors=[f"Errore parsing XML: {e}"])

    metadata = _extract_metadata(doc, config)

    items = as_sequence(navigate(doc, config.line_xpath))
    if not items:
        return ExtractionResult(
            success=False,
            errors=[f"Nessun elemento trovato al percorso: {config.line_xpath}"],
            invoice_metadata=metadata,
        )

    total = len(items)
    rules = [(name, rule) for name, rule in config.fields if rule is not None]

    lines: list[ExtractedLine] = []
    for idx, item in enumerate(items, start=1):
        line = ExtractedLine(line_number=idx)
        for field_name, rule in rules:
            try:
                _store_field(line, field_name, extract_field(item, rule, doc))
            except Exception as e:
                line.errors.append(f"Campo {field_name}: {e}")
        lines.append(line)

    lines = apply_line_filters(lines, config.line_filters, errors)

    logger.info("estratte %d righe su %d (%d filtrate)", len(lines), total, total - len(lines))
    return ExtractionResult(
        success=True,
        lines=lines,
        total_lines=total,
        filtered_lines=total - len(lines),
        errors=errors,
        invoice_metadata=metadata,
    )

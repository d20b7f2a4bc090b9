"""
@file detection.py
@brief Riconoscimento automatico della struttura FatturaPA e generazione template.
@ingroup domain_module

@details
Scansiona le radici FatturaPA note (con e senza prefisso di namespace),
analizza la prima riga DettaglioLinee per capire dove stanno targa, data e
quantità, e produce un TemplateConfig pronto all'uso.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel

from .models import (
    InvoiceMetadataPaths,
    SupplierDetection,
    TemplateConfig,
    TemplateFields,
    XPathRegexRule,
    XPathRule,
)
from .patterns import DATE_IN_DESCRIPTION_PATTERN, PLATE_FROM_CARD_PATTERN
from .xml_tree import XmlNode, XmlParseError, as_sequence, navigate, parse_xml, scalar_text

logger = logging.getLogger(__name__)

FATTURAPA_ROOTS = (
    "FatturaElettronica",
    "p:FatturaElettronica",
    "ns0:FatturaElettronica",
    "ns1:FatturaElettronica",
    "ns2:FatturaElettronica",
)

LINES_SUFFIX = "FatturaElettronicaBody.DatiBeniServizi.DettaglioLinee"
SUPPLIER_VAT_SUFFIX = "FatturaElettronicaHeader.CedentePrestatore.DatiAnagrafici.IdFiscaleIVA.IdCodice"
SUPPLIER_NAME_SUFFIX = "FatturaElettronicaHeader.CedentePrestatore.DatiAnagrafici.Anagrafica.Denominazione"
INVOICE_NUMBER_SUFFIX = "FatturaElettronicaBody.DatiGenerali.DatiGeneraliDocumento.Numero"
INVOICE_DATE_SUFFIX = "FatturaElettronicaBody.DatiGenerali.DatiGeneraliDocumento.Data"


class FatturaDetection(BaseModel):
    """@brief Struttura rilevata di una FatturaPA."""
    root: str
    line_xpath: str
    has_altri_dati_gestionali_targa: bool = False
    has_data_inizio_periodo: bool = False
    has_descrizione: bool = False
    has_quantita: bool = False
    supplier_vat: Optional[str] = None
    supplier_name: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    sample_line_count: int = 0


def _parse_or_none(document: bytes | str | XmlNode) -> Optional[XmlNode]:
    if isinstance(document, XmlNode):
        return document
    try:
        return parse_xml(document)
    except XmlParseError as e:
        logger.info("documento non analizzabile: %s", e)
        return None


def _has_plate_tag(line: XmlNode) -> bool:
    altri = navigate(line, "AltriDatiGestionali")
    if not isinstance(altri, XmlNode):
        return False
    return scalar_text(navigate(altri, "TipoDato")) == "TARGA"


def auto_detect_supplier_vat(document: bytes | str | XmlNode) -> Optional[str]:
    """@brief Partita IVA del cedente, cercata sulle radici FatturaPA note."""
    doc = _parse_or_none(document)
    if doc is None:
        return None
    for root in FATTURAPA_ROOTS:
        vat = scalar_text(navigate(doc, f"{root}.{SUPPLIER_VAT_SUFFIX}"))
        if vat:
            return vat
    return None


def detect_structure(document: bytes | str | XmlNode) -> Optional[FatturaDetection]:
    """
    @brief Analizza una FatturaPA e rileva percorsi righe e campi disponibili.
    @param document XML grezzo o albero già parsato.
    @return FatturaDetection per la prima radice con righe, altrimenti None.
    """
    doc = _parse_or_none(document)
    if doc is None:
        return None

    for root in FATTURAPA_ROOTS:
        line_xpath = f"{root}.{LINES_SUFFIX}"
        items = as_sequence(navigate(doc, line_xpath))
        if not items:
            continue

        first = items[0]

        def _text(suffix: str) -> Optional[str]:
            return scalar_text(navigate(doc, f"{root}.{suffix}"))

        detection = FatturaDetection(
            root=root,
            line_xpath=line_xpath,
            has_altri_dati_gestionali_targa=_has_plate_tag(first),
            has_data_inizio_periodo=bool(first.child_nodes("DataInizioPeriodo")),
            has_descrizione=bool(first.child_nodes("Descrizione")),
            has_quantita=bool(first.child_nodes("Quantita")),
            supplier_vat=_text(SUPPLIER_VAT_SUFFIX),
            supplier_name=_text(SUPPLIER_NAME_SUFFIX),
            invoice_number=_text(INVOICE_NUMBER_SUFFIX),
            invoice_date=_text(INVOICE_DATE_SUFFIX),
            sample_line_count=len(items),
        )
        logger.info("rilevata FatturaPA root=%s righe=%d", root, len(items))
        return detection

    return None


def generate_template_config(detection: FatturaDetection) -> TemplateConfig:
    """
    @brief Genera un TemplateConfig dalla struttura rilevata.
    @details
    Targa: AltriDatiGestionali.RiferimentoTesto se marcata TARGA, altrimenti
    regex carta-targa sulla Descrizione. Data: DataInizioPeriodo oppure regex
    'in data/data/il' sulla Descrizione.
    """
    root = detection.root
    fields = TemplateFields()

    if detection.has_altri_dati_gestionali_targa:
        fields.license_plate = XPathRule(xpath="AltriDatiGestionali.RiferimentoTesto", transform="uppercase")
    elif detection.has_descrizione:
        fields.license_plate = XPathRegexRule(
            xpath="Descrizione",
            regex=PLATE_FROM_CARD_PATTERN,
            regex_group=1,
            transform="uppercase",
        )

    if detection.has_data_inizio_periodo:
        fields.date = XPathRule(xpath="DataInizioPeriodo", date_format="yyyy-MM-dd")
    elif detection.has_descrizione:
        fields.date = XPathRegexRule(xpath="Descrizione", regex=DATE_IN_DESCRIPTION_PATTERN, regex_group=1)

    if detection.has_quantita:
        fields.quantity = XPathRule(xpath="Quantita")

    fields.amount = XPathRule(xpath="PrezzoTotale")

    if detection.has_descrizione:
        fields.fuel_type = XPathRule(xpath="Descrizione")
        fields.description = XPathRule(xpath="Descrizione")

    fields.unit_price = XPathRule(xpath="PrezzoUnitario")

    return TemplateConfig(
        version=1,
        line_xpath=detection.line_xpath,
        fields=fields,
        supplier_detection=SupplierDetection(vat_number_path=f"{root}.{SUPPLIER_VAT_SUFFIX}"),
        invoice_metadata=InvoiceMetadataPaths(
            invoice_number_path=f"{root}.{INVOICE_NUMBER_SUFFIX}",
            invoice_date_path=f"{root}.{INVOICE_DATE_SUFFIX}",
            invoice_date_format="yyyy-MM-dd",
        ),
    )

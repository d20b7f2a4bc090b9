from fatture_carburante.domain.detection import (
    auto_detect_supplier_vat,
    detect_structure,
    generate_template_config,
)
from fatture_carburante.domain.extraction import extract_lines
from fatture_carburante.domain.models import XPathRegexRule, XPathRule
from fatture_carburante.domain.xml_tree import parse_xml


def test_detect_prefixed_fattura(fattura_xml):
    d = detect_structure(fattura_xml)
    assert d is not None
    assert d.root == "p:FatturaElettronica"
    assert d.line_xpath == "p:FatturaElettronica.FatturaElettronicaBody.DatiBeniServizi.DettaglioLinee"
    assert d.has_altri_dati_gestionali_targa
    assert d.has_data_inizio_periodo
    assert d.has_descrizione
    assert d.has_quantita
    assert d.sample_line_count == 3
    assert d.supplier_vat == "01234567890"
    assert d.supplier_name == "Carburanti Italia SpA"
    assert d.invoice_number == "FT-2024-001"
    assert d.invoice_date == "2024-03-31"


def test_detect_accepts_parsed_tree(fattura_xml):
    assert detect_structure(parse_xml(fattura_xml)).root == "p:FatturaElettronica"


def test_detect_unknown_or_invalid_documents():
    assert detect_structure("<Ordine><Riga/></Ordine>") is None
    assert detect_structure("<FatturaElettronica>") is None
    assert detect_structure("") is None


def test_generated_template_uses_plate_tag(fattura_xml):
    config = generate_template_config(detect_structure(fattura_xml))
    plate = config.fields.license_plate
    assert isinstance(plate, XPathRule)
    assert plate.xpath == "AltriDatiGestionali.RiferimentoTesto"
    assert plate.transform == "uppercase"
    assert isinstance(config.fields.date, XPathRule)
    assert config.fields.date.xpath == "DataInizioPeriodo"
    assert config.supplier_detection.vat_number_path.startswith("p:FatturaElettronica.")
    assert config.invoice_metadata.invoice_number_path.endswith("DatiGeneraliDocumento.Numero")


def test_generated_template_falls_back_to_description(fattura_descrizione_xml):
    d = detect_structure(fattura_descrizione_xml)
    assert d.root == "FatturaElettronica"
    assert not d.has_altri_dati_gestionali_targa
    assert not d.has_data_inizio_periodo
    assert d.sample_line_count == 1

    config = generate_template_config(d)
    assert isinstance(config.fields.license_plate, XPathRegexRule)
    assert isinstance(config.fields.date, XPathRegexRule)

    result = extract_lines(fattura_descrizione_xml, config)
    assert result.success
    line = result.lines[0]
    assert line.license_plate == "GA727GS"
    assert line.date == "15.04.24"
    assert line.quantity == 50.0
    assert line.amount == 88.4
    assert result.invoice_metadata.supplier_vat_number == "00743110157"


def test_auto_detect_supplier_vat(fattura_xml, fattura_descrizione_xml):
    assert auto_detect_supplier_vat(fattura_xml) == "01234567890"
    assert auto_detect_supplier_vat(fattura_descrizione_xml) == "00743110157"
    assert auto_detect_supplier_vat("<Altro/>") is None
    assert auto_detect_supplier_vat("non xml") is None

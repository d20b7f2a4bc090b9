import pytest
from pydantic import ValidationError

from fatture_carburante.domain import extraction
from fatture_carburante.domain.detection import detect_structure, generate_template_config
from fatture_carburante.domain.extraction import apply_line_filters, extract_field, extract_lines
from fatture_carburante.domain.models import (
    ExtractedLine,
    LineFilter,
    RegexPattern,
    RegexRule,
    StaticRule,
    TemplateConfig,
    XPathRegexRule,
    XPathRule,
)
from fatture_carburante.domain.patterns import DEFAULT_REGEX_PATTERNS, merge_regex_presets
from fatture_carburante.domain.xml_tree import XmlNode, navigate, parse_xml

LINES = "p:FatturaElettronica.FatturaElettronicaBody.DatiBeniServizi.DettaglioLinee"


def _line(fattura_xml, index=0):
    doc = parse_xml(fattura_xml)
    return doc, navigate(doc, f"{LINES}[{index}]")


def _template(**fields):
    return TemplateConfig(line_xpath=LINES, fields=fields)


def test_static_rule():
    assert extract_field(XmlNode("X"), StaticRule(static_value="DIESEL")) == "DIESEL"


def test_xpath_rule_with_transform(fattura_xml):
    _, line = _line(fattura_xml, 1)
    rule = XPathRule(xpath="AltriDatiGestionali.RiferimentoTesto", transform="uppercase")
    assert extract_field(line, rule) == "EF 456 GH"


def test_xpath_rule_missing_node_is_none(fattura_xml):
    _, line = _line(fattura_xml, 2)
    assert extract_field(line, XPathRule(xpath="PrezzoUnitario")) is None


def test_xpath_regex_cascade_first_match_wins():
    line = XmlNode("Riga", children=[XmlNode("Descrizione", text="carta 7033167200254244329-GA727GS")])
    rule = XPathRegexRule(
        xpath="Descrizione",
        regex_patterns=[
            RegexPattern(label="targa esplicita", regex=r"targa:\s*(\w+)"),
            RegexPattern(label="carta-targa", regex=r"\d+-([A-Z]{2}\d{3}[A-Z]{2})"),
            RegexPattern(label="qualsiasi", regex=r"(\w+)"),
        ],
    )
    assert extract_field(line, rule) == "GA727GS"


def test_regex_pattern_transform_and_whole_match():
    line = XmlNode("Riga", children=[XmlNode("Descrizione", text="Targa ga727gs")])
    rule = XPathRegexRule(
        xpath="Descrizione",
        regex_patterns=[RegexPattern(regex=r"[a-z]{2}\d{3}[a-z]{2}", regex_group=3, transform="uppercase")],
    )
    assert extract_field(line, rule) == "GA727GS"


def test_invalid_regex_is_no_match():
    line = XmlNode("Riga", children=[XmlNode("Descrizione", text="abc")])
    rule = XPathRegexRule(xpath="Descrizione", regex="([a-z")
    assert extract_field(line, rule) is None


def test_regex_rule_on_document_root(fattura_xml):
    doc, line = _line(fattura_xml)
    rule = RegexRule(
        xpath="p:FatturaElettronica.FatturaElettronicaHeader",
        regex=r"IT\s+(\d{11})",
    )
    assert extract_field(line, rule, doc) == "01234567890"


def test_regex_rule_without_root_uses_line_text(fattura_xml):
    _, line = _line(fattura_xml)
    rule = RegexRule(regex=r"([A-Z]{2}\d{3}[A-Z]{2})")
    assert extract_field(line, rule) == "AB123CD"


def test_regex_rule_without_path_reads_each_line(fattura_xml):
    config = TemplateConfig(
        line_xpath=LINES,
        fields={"license_plate": RegexRule(regex=r"([A-Z]{2}\d{3}[A-Z]{2})")},
    )
    result = extract_lines(fattura_xml, config)
    assert [l.license_plate for l in result.lines] == ["AB123CD", None, "ZZ999ZZ"]


def test_rules_are_a_tagged_union():
    config = TemplateConfig.model_validate(
        {
            "line_xpath": LINES,
            "fields": {
                "license_plate": {"method": "XPATH", "xpath": "Targa"},
                "fuel_type": {"method": "STATIC", "static_value": "DIESEL"},
                "date": {"method": "XPATH_REGEX", "xpath": "Descrizione", "regex": r"(\d{2}/\d{2}/\d{4})"},
            },
        }
    )
    assert isinstance(config.fields.license_plate, XPathRule)
    assert isinstance(config.fields.fuel_type, StaticRule)
    assert isinstance(config.fields.date, XPathRegexRule)


@pytest.mark.parametrize(
    "fields",
    [
        {"license_plate": {"method": "REGEX"}},
        {"license_plate": {"method": "JSONPATH", "xpath": "X"}},
        {"targa": {"method": "XPATH", "xpath": "X"}},
    ],
)
def test_invalid_rules_are_rejected(fields):
    with pytest.raises(ValidationError):
        TemplateConfig.model_validate({"line_xpath": LINES, "fields": fields})


def test_extract_lines_with_generated_template(fattura_xml):
    config = generate_template_config(detect_structure(fattura_xml))
    result = extract_lines(fattura_xml, config)

    assert result.success
    assert result.total_lines == 3
    assert result.filtered_lines == 0
    first = result.lines[0]
    assert first.line_number == 1
    assert first.license_plate == "AB123CD"
    assert first.date == "2024-03-10"
    assert first.quantity == 45.2
    assert first.amount == 72.3
    assert first.unit_price == 1.6
    assert first.fuel_type == "Gasolio autotrazione"
    assert result.lines[1].license_plate == "EF 456 GH"
    assert result.lines[2].unit_price is None

    meta = result.invoice_metadata
    assert meta.invoice_number == "FT-2024-001"
    assert meta.invoice_date == "2024-03-31"
    assert meta.supplier_vat_number == "01234567890"


def test_extract_lines_missing_line_path(fattura_xml):
    config = TemplateConfig(line_xpath="p:FatturaElettronica.Nope")
    result = extract_lines(fattura_xml, config)
    assert not result.success
    assert result.lines == []
    assert result.errors == ["Nessun elemento trovato al percorso: p:FatturaElettronica.Nope"]


def test_extract_lines_malformed_document():
    result = extract_lines("<FatturaElettronica>", _template())
    assert not result.success
    assert result.errors[0].startswith("Errore parsing XML:")


def test_field_errors_stay_on_the_line(fattura_xml, monkeypatch):
    def _boom(value):
        raise ValueError("contachilometri illeggibile")

    monkeypatch.setattr(extraction, "parse_odometer", _boom)
    config = _template(
        license_plate=XPathRule(xpath="AltriDatiGestionali.RiferimentoTesto"),
        odometer_km=XPathRule(xpath="Quantita"),
    )
    result = extract_lines(fattura_xml, config)

    assert result.success
    assert len(result.lines) == 3
    assert result.lines[0].license_plate == "AB123CD"
    assert result.lines[0].odometer_km is None
    assert result.lines[0].errors == ["Campo odometer_km: contachilometri illeggibile"]


def test_line_filters_include_and_exclude(fattura_xml):
    config = _template(
        license_plate=XPathRule(xpath="AltriDatiGestionali.RiferimentoTesto"),
        description=XPathRule(xpath="Descrizione"),
    )
    config.line_filters = [LineFilter(field_path="description", regex="^gasolio", action="include")]
    result = extract_lines(fattura_xml, config)
    assert [l.line_number for l in result.lines] == [1, 3]
    assert result.filtered_lines == 1

    config.line_filters = [LineFilter(field_path="license_plate", regex="zz999", action="exclude")]
    result = extract_lines(fattura_xml, config)
    assert [l.line_number for l in result.lines] == [1, 2]


def test_line_filters_are_idempotent():
    lines = [
        ExtractedLine(line_number=1, description="Gasolio", quantity=10.0),
        ExtractedLine(line_number=2, description="Lavaggio"),
        ExtractedLine(line_number=3, description="GASOLIO premium", quantity=20.5),
    ]
    filters = [
        LineFilter(field_path="description", regex="gasolio"),
        LineFilter(field_path="quantity", regex=r"^20\.5$", action="exclude"),
    ]
    once = apply_line_filters(lines, filters)
    assert [l.line_number for l in once] == [1]
    assert apply_line_filters(once, filters) == once


def test_invalid_filter_regex_is_reported_and_skipped():
    lines = [ExtractedLine(line_number=1, description="Gasolio")]
    errors = []
    kept = apply_line_filters(lines, [LineFilter(field_path="description", regex="(")], errors)
    assert kept == lines
    assert errors == ["Filtro regex non valido: ("]


def test_filters_without_field_or_regex_are_ignored():
    lines = [ExtractedLine(line_number=1)]
    assert apply_line_filters(lines, [LineFilter(regex="x"), LineFilter(field_path="description")]) == lines


def test_merge_regex_presets_appends_after_inline():
    config = _template(
        license_plate=XPathRegexRule(xpath="Descrizione", regex=r"targa:\s*(\w+)"),
        fuel_type=XPathRule(xpath="Descrizione"),
    )
    preset = RegexPattern(label="Targa italiana", regex=DEFAULT_REGEX_PATTERNS["targa_italiana"].pattern)
    merged = merge_regex_presets(config, {"license_plate": [preset], "fuel_type": [preset]})

    patterns = merged.fields.license_plate.regex_patterns
    assert [p.label for p in patterns] == ["Template inline", "Targa italiana"]
    assert isinstance(merged.fields.fuel_type, XPathRule)
    # l'originale non viene modificato
    assert config.fields.license_plate.regex_patterns == []


def test_merged_presets_extract_plate():
    line = XmlNode("Riga", children=[XmlNode("Descrizione", text="Rifornimento GA 727 GS")])
    config = _template(license_plate=XPathRegexRule(xpath="Descrizione", regex=r"targa:\s*(\w+)"))
    preset = RegexPattern(regex=DEFAULT_REGEX_PATTERNS["targa_italiana"].pattern)
    merged = merge_regex_presets(config, {"license_plate": [preset]})
    assert extract_field(line, merged.fields.license_plate) == "GA 727 GS"

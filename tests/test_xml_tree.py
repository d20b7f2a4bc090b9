import pytest

from fatture_carburante.domain.xml_tree import (
    DOCUMENT_NODE,
    XmlNode,
    XmlParseError,
    as_sequence,
    full_text,
    navigate,
    parse_xml,
    scalar_text,
    tree_structure,
)

LINES = "p:FatturaElettronica.FatturaElettronicaBody.DatiBeniServizi.DettaglioLinee"


def test_parse_keeps_namespace_prefix(fattura_xml):
    doc = parse_xml(fattura_xml)
    assert doc.name == DOCUMENT_NODE
    assert doc.children[0].name == "p:FatturaElettronica"
    assert navigate(doc, "p:FatturaElettronica.@versione") == "FPR12"
    assert navigate(doc, "p:FatturaElettronica.@_versione") == "FPR12"


def test_parse_accepts_bytes(fattura_xml):
    doc = parse_xml(fattura_xml.encode("utf-8"))
    assert scalar_text(navigate(doc, LINES + "[0].Quantita")) == "45.20"


def test_repeated_siblings_become_list(fattura_xml):
    doc = parse_xml(fattura_xml)
    lines = navigate(doc, LINES)
    assert isinstance(lines, list)
    assert len(as_sequence(lines)) == 3
    assert scalar_text(lines) is None


def test_indexed_segment(fattura_xml):
    doc = parse_xml(fattura_xml)
    assert scalar_text(navigate(doc, LINES + "[1].Descrizione")) == "Benzina senza piombo"
    assert navigate(doc, LINES + "[5]") is None


def test_list_without_index_stops_navigation(fattura_xml):
    doc = parse_xml(fattura_xml)
    assert navigate(doc, LINES + ".Descrizione") is None


def test_missing_path_is_none(fattura_xml):
    doc = parse_xml(fattura_xml)
    assert navigate(doc, "p:FatturaElettronica.NonEsiste.Campo") is None
    assert as_sequence(None) == []


def test_empty_path_returns_node(fattura_xml):
    doc = parse_xml(fattura_xml)
    assert navigate(doc, "") is doc


def test_scalar_text_of_wrapper_with_single_leaf():
    node = XmlNode("Wrapper", children=[XmlNode("Valore", text="42")])
    assert scalar_text(node) == "42"


def test_full_text_collects_descendants(fattura_xml):
    doc = parse_xml(fattura_xml)
    line = navigate(doc, LINES + "[0]")
    text = full_text(line)
    assert "Gasolio autotrazione" in text
    assert "AB123CD" in text


@pytest.mark.parametrize("data", ["", "   ", "<a><b></a>", "non xml"])
def test_invalid_documents_raise(data):
    with pytest.raises(XmlParseError):
        parse_xml(data)


def test_tree_structure_marks_repeated_elements(fattura_xml):
    doc = parse_xml(fattura_xml)
    root = tree_structure(doc)[0]
    assert root.name == "p:FatturaElettronica"
    assert root.attributes["versione"] == "FPR12"

    body = next(c for c in root.children if c.name == "FatturaElettronicaBody")
    beni = next(c for c in body.children if c.name == "DatiBeniServizi")
    dettaglio = beni.children[0]
    assert dettaglio.path == LINES + "[0]"
    assert dettaglio.count == 3
    quantita = next(c for c in dettaglio.children if c.name == "Quantita")
    assert quantita.text == "45.20"
    assert quantita.path == LINES + "[0].Quantita"

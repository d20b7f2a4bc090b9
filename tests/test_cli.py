import datetime as dt
import json

import pytest

from fatture_carburante.cli import main
from fatture_carburante.storage.db import connect
from fatture_carburante.storage.repository import insert_fuel_record, insert_vehicle


@pytest.fixture
def files(tmp_path, fattura_xml):
    xml = tmp_path / "fattura.xml"
    xml.write_text(fattura_xml, encoding="utf-8")
    db = tmp_path / "cli.sqlite"
    seed = connect(str(db))
    vid = insert_vehicle(seed, "AB123CD")
    insert_fuel_record(seed, vid, dt.date(2024, 3, 10), 45.2, 72.30, "DIESEL")
    seed.close()
    return {"xml": str(xml), "db": str(db), "dir": tmp_path}


def _run(capsys, *argv):
    code = main(list(argv))
    out = capsys.readouterr().out
    return code, json.loads(out) if out.strip() else None


def test_detect_writes_template(capsys, files):
    template_path = files["dir"] / "template.json"
    code, out = _run(capsys, "detect", files["xml"], "--template-out", str(template_path))
    assert code == 0
    assert out["detection"]["sample_line_count"] == 3

    code, out = _run(capsys, "extract", files["xml"], "--template", str(template_path))
    assert code == 0
    assert len(out["lines"]) == 3


def test_inspect(capsys, files):
    code, out = _run(capsys, "inspect", files["xml"])
    assert code == 0
    assert out[0]["name"] == "p:FatturaElettronica"


def test_import_show_list_review_finalize(capsys, files):
    db = files["db"]
    code, imported = _run(capsys, "--log-level", "INFO", "import", files["xml"], "--db", db)
    assert code == 0
    assert imported["status"] == "PROCESSED"
    import_id = imported["id"]
    line_ids = [l["id"] for l in imported["lines"]]

    code, shown = _run(capsys, "show", str(import_id), "--db", db)
    assert shown["id"] == import_id

    code, listed = _run(capsys, "list", "--db", db)
    assert listed["pagination"]["total_count"] == 1

    code, line = _run(capsys, "review", str(line_ids[1]), "reject", "--db", db)
    assert line["match_status"] == "REJECTED"

    code, confirmed = _run(capsys, "confirm-all", str(import_id), "--db", db)
    assert confirmed["confirmed"] == 1

    code, done = _run(capsys, "finalize", str(import_id), "--db", db)
    assert code == 0
    assert done["status"] == "COMPLETED"
    assert done["total_lines_skipped"] == 1


def test_domain_errors_exit_with_one(capsys, files):
    assert main(["finalize", "999", "--db", files["db"]]) == 1
    assert "non trovato" in capsys.readouterr().err

    other = files["dir"] / "ordine.xml"
    other.write_text("<Ordine/>", encoding="utf-8")
    assert main(["extract", str(other)]) == 1
    assert "FatturaPA" in capsys.readouterr().err


def test_import_with_presets_file(capsys, files):
    template = files["dir"] / "template.json"
    template.write_text(
        json.dumps(
            {
                "line_xpath": "p:FatturaElettronica.FatturaElettronicaBody.DatiBeniServizi.DettaglioLinee",
                "fields": {
                    "license_plate": {
                        "method": "XPATH_REGEX",
                        "xpath": "AltriDatiGestionali.RiferimentoTesto",
                        "regex": r"targa:\s*(\w+)",
                    },
                    "date": {"method": "XPATH", "xpath": "DataInizioPeriodo"},
                },
            }
        ),
        encoding="utf-8",
    )
    presets = files["dir"] / "presets.json"
    presets.write_text(json.dumps({"license_plate": [{"regex": r"([A-Z]{2}\d{3}[A-Z]{2})"}]}), encoding="utf-8")

    code, out = _run(capsys, "extract", files["xml"], "--template", str(template), "--presets", str(presets))
    assert code == 0
    assert [l["license_plate"] for l in out["lines"]] == ["AB123CD", None, "ZZ999ZZ"]

    code, imported = _run(
        capsys, "import", files["xml"], "--template", str(template), "--presets", str(presets), "--db", files["db"]
    )
    assert code == 0
    assert imported["lines"][0]["resolved_vehicle_id"] is not None


def test_bad_configuration_files_exit_with_one(capsys, files):
    bad = files["dir"] / "matching.json"
    bad.write_text(json.dumps({"auto_match_threshold": "alta"}), encoding="utf-8")
    assert main(["import", files["xml"], "--matching", str(bad), "--db", files["db"]]) == 1
    assert "Configurazione non valida" in capsys.readouterr().err

    assert main(["extract", files["xml"], "--template", str(files["dir"] / "manca.json")]) == 1
    assert "File non trovato" in capsys.readouterr().err

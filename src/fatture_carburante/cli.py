"""
@file cli.py
@brief CLI per analisi fatture XML, import, revisione e chiusura su SQLite.
@ingroup cli_module

@details
Comandi:
- detect: riconosce la struttura FatturaPA e stampa il template generato
- inspect: stampa l'albero del documento con i percorsi usabili nei template
- extract: applica un template e stampa le righe estratte (senza DB)
- import: crea ed elabora un import (template generato se non fornito)
- show / list: consultazione import
- review / confirm-all / finalize: revisione righe e chiusura import

Tutti gli output sono JSON (ensure_ascii=False).
"""

from __future__ import annotations
import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from fatture_carburante import config
from fatture_carburante.domain.detection import detect_structure, generate_template_config
from fatture_carburante.domain.extraction import extract_lines
from fatture_carburante.domain.models import MatchingTolerances, TemplateConfig
from fatture_carburante.domain.patterns import RegexPresets, merge_regex_presets
from fatture_carburante.domain.xml_tree import XmlParseError, parse_xml, tree_structure
from fatture_carburante.imports import (
    InvoiceImportError,
    confirm_all_auto_matched,
    create_import,
    finalize_import,
    get_import_by_id,
    list_imports,
    process_import,
    review_line,
)
from fatture_carburante.storage.db import connect
from fatture_carburante.storage.repository import SqliteRecordStore


class TemplateNotFoundError(ValueError):
    """Nessun template fornito e struttura FatturaPA non riconosciuta."""


def build_template(
    document: bytes | str,
    template: Optional[TemplateConfig] = None,
    presets: Optional[RegexPresets] = None,
) -> TemplateConfig:
    """
    @brief Template da usare per un documento.
    @param template Template esplicito; se None viene generato dalla struttura rilevata.
    @param presets Pattern preset per campo, accodati alle regole REGEX/XPATH_REGEX.
    @throws TemplateNotFoundError se il documento non è una FatturaPA riconoscibile.
    """
    if template is None:
        detection = detect_structure(document)
        if detection is None:
            raise TemplateNotFoundError("Struttura FatturaPA non riconosciuta: specificare un template")
        template = generate_template_config(detection)
    if presets:
        template = merge_regex_presets(template, presets)
    return template


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _store(db_path: str) -> SqliteRecordStore:
    return SqliteRecordStore(connect(db_path))


def _cmd_detect(args) -> int:
    document = Path(args.file).read_bytes()
    detection = detect_structure(document)
    if detection is None:
        _print({"detected": False})
        return 1
    template = generate_template_config(detection)
    if args.template_out:
        Path(args.template_out).write_text(template.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
    _print(
        {
            "detected": True,
            "detection": detection.model_dump(),
            "template": template.model_dump(mode="json", exclude_none=True),
        }
    )
    return 0


def _cmd_inspect(args) -> int:
    document = Path(args.file).read_bytes()
    try:
        doc = parse_xml(document)
    except XmlParseError as e:
        print(f"XML non valido: {e}", file=sys.stderr)
        return 1
    _print([e.model_dump(exclude_none=True) for e in tree_structure(doc)])
    return 0


def _cmd_extract(args) -> int:
    document = Path(args.file).read_bytes()
    template = config.load_template_config(args.template) if args.template else None
    presets = config.load_regex_presets(args.presets) if args.presets else None
    result = extract_lines(document, build_template(document, template, presets))
    _print(result.model_dump(mode="json"))
    return 0 if result.success else 1


def _cmd_import(args) -> int:
    document = Path(args.file).read_bytes()
    template = config.load_template_config(args.template) if args.template else None
    presets = config.load_regex_presets(args.presets) if args.presets else None
    template = build_template(document, template, presets)
    matching: Optional[MatchingTolerances] = (
        config.load_matching_config(args.matching) if args.matching else None
    )

    store = _store(args.db)
    record = create_import(
        store,
        template_ref=args.template or "auto",
        file_name=Path(args.file).name,
        document=document,
        require_manual_confirm=args.manual_confirm,
    )
    processed = process_import(store, record.id, document, template, matching)
    _print(processed.model_dump(mode="json"))
    return 0


def _cmd_show(args) -> int:
    record = get_import_by_id(_store(args.db), args.import_id)
    if record is None:
        print(f"Import {args.import_id} non trovato", file=sys.stderr)
        return 1
    _print(record.model_dump(mode="json"))
    return 0


def _cmd_list(args) -> int:
    page = list_imports(_store(args.db), status=args.status, page=args.page, page_size=args.page_size)
    _print(page.model_dump(mode="json", exclude={"data": {"__all__": {"lines"}}}))
    return 0


def _cmd_review(args) -> int:
    line = review_line(_store(args.db), args.line_id, args.action)
    _print(line.model_dump(mode="json"))
    return 0


def _cmd_confirm_all(args) -> int:
    count = confirm_all_auto_matched(_store(args.db), args.import_id)
    _print({"import_id": args.import_id, "confirmed": count})
    return 0


def _cmd_finalize(args) -> int:
    record = finalize_import(_store(args.db), args.import_id)
    _print(record.model_dump(mode="json", exclude={"lines"}))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="fatture-carburante")
    p.add_argument("--log-level", default=None, help="Livello di log (default: FATTURE_LOG_LEVEL o WARNING)")
    sub = p.add_subparsers(dest="cmd", required=True)

    detect = sub.add_parser("detect", help="Riconosce la struttura FatturaPA e genera un template")
    detect.add_argument("file")
    detect.add_argument("--template-out", default=None, help="Salva il template generato in questo file JSON")
    detect.set_defaults(func=_cmd_detect)

    inspect = sub.add_parser("inspect", help="Mostra l'albero del documento con i percorsi")
    inspect.add_argument("file")
    inspect.set_defaults(func=_cmd_inspect)

    extract = sub.add_parser("extract", help="Estrae le righe e stampa il risultato (senza DB)")
    extract.add_argument("file")
    extract.add_argument("--template", default=None, help="Template JSON (default: generato automaticamente)")
    extract.add_argument("--presets", default=None, help="Pattern preset per campo (JSON)")
    extract.set_defaults(func=_cmd_extract)

    imp = sub.add_parser("import", help="Crea ed elabora un import su SQLite")
    imp.add_argument("file")
    imp.add_argument("--template", default=None, help="Template JSON (default: generato automaticamente)")
    imp.add_argument("--presets", default=None, help="Pattern preset per campo (JSON)")
    imp.add_argument("--matching", default=None, help="Tolleranze di matching JSON")
    imp.add_argument("--manual-confirm", action="store_true", help="Nessuna riga viene confermata automaticamente")
    imp.add_argument("--db", default=config.DB_PATH)
    imp.set_defaults(func=_cmd_import)

    show = sub.add_parser("show", help="Mostra un import con le righe")
    show.add_argument("import_id", type=int)
    show.add_argument("--db", default=config.DB_PATH)
    show.set_defaults(func=_cmd_show)

    lst = sub.add_parser("list", help="Elenco paginato degli import")
    lst.add_argument("--status", default=None, choices=["PENDING", "PROCESSED", "ERROR", "COMPLETED"])
    lst.add_argument("--page", type=int, default=1)
    lst.add_argument("--page-size", type=int, default=20)
    lst.add_argument("--db", default=config.DB_PATH)
    lst.set_defaults(func=_cmd_list)

    review = sub.add_parser("review", help="Conferma, rifiuta o salta una riga")
    review.add_argument("line_id", type=int)
    review.add_argument("action", choices=["confirm", "reject", "skip"])
    review.add_argument("--db", default=config.DB_PATH)
    review.set_defaults(func=_cmd_review)

    confirm_all = sub.add_parser("confirm-all", help="Conferma tutte le righe AUTO_MATCHED")
    confirm_all.add_argument("import_id", type=int)
    confirm_all.add_argument("--db", default=config.DB_PATH)
    confirm_all.set_defaults(func=_cmd_confirm_all)

    finalize = sub.add_parser("finalize", help="Ricalcola i contatori e chiude l'import")
    finalize.add_argument("import_id", type=int)
    finalize.add_argument("--db", default=config.DB_PATH)
    finalize.set_defaults(func=_cmd_finalize)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    """
    @brief Entry point CLI.
    @return Exit code (0 ok, 1 errore applicativo).
    """
    args = build_parser().parse_args(argv)
    config.configure_logging(args.log_level)
    try:
        return args.func(args)
    except (InvoiceImportError, TemplateNotFoundError) as e:
        print(str(e), file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"Configurazione non valida: {e}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"File non trovato: {e.filename}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

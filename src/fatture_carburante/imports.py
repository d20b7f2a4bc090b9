"""
@file imports.py
@brief Ciclo di vita di un import fattura: creazione, elaborazione, revisione, chiusura.
@ingroup imports_module

@details
Stati import: PENDING -> PROCESSED | ERROR; PROCESSED -> COMPLETED.
Stati riga: AUTO_MATCHED / SUGGESTED / UNMATCHED / ERROR dopo il matching,
poi CONFIRMED / REJECTED / SKIPPED dopo la revisione.
"""

from __future__ import annotations

import datetime as dt
import hashlib
import logging
import math
from typing import Literal, Optional

from fatture_carburante.domain.dates import parse_invoice_date
from fatture_carburante.domain.extraction import extract_lines
from fatture_carburante.domain.models import (
    DEFAULT_MATCHING_CONFIG,
    ImportLine,
    ImportPage,
    ImportStatus,
    InvoiceImport,
    LineStatus,
    MatchingTolerances,
    MatchResult,
    Pagination,
    TemplateConfig,
)
from fatture_carburante.domain.normalize import truncate
from fatture_carburante.matching.engine import match_lines
from fatture_carburante.storage.store import RecordStore

logger = logging.getLogger(__name__)

ReviewAction = Literal["confirm", "reject", "skip"]

PLATE_MAX_LEN = 50
FUEL_TYPE_MAX_LEN = 50
CARD_NUMBER_MAX_LEN = 50
DESCRIPTION_MAX_LEN = 500


class InvoiceImportError(Exception):
    """Errore base del ciclo di vita import."""


class ImportNotFoundError(InvoiceImportError):
    """Import o riga import inesistente."""


class ImportStateError(InvoiceImportError):
    """Operazione non ammessa nello stato corrente dell'import."""


def _as_bytes(document: bytes | str) -> bytes:
    return document.encode("utf-8") if isinstance(document, str) else document


def _require_import(store: RecordStore, import_id: int, with_lines: bool = False) -> InvoiceImport:
    record = store.get_import(import_id, with_lines=with_lines)
    if record is None:
        raise ImportNotFoundError(f"Import {import_id} non trovato")
    return record


def create_import(
    store: RecordStore,
    template_ref: Optional[str],
    file_name: str,
    document: bytes | str,
    require_manual_confirm: bool = False,
) -> InvoiceImport:
    """
    @brief Registra un nuovo import in stato PENDING.
    @param template_ref Riferimento opaco al template usato.
    @param document Contenuto XML, usato solo per l'impronta sha256.
    @return InvoiceImport persistito.
    """
    file_hash = hashlib.sha256(_as_bytes(document)).hexdigest()
    record = store.create_import(
        InvoiceImport(
            template_ref=template_ref,
            file_name=file_name,
            file_hash=file_hash,
            status=ImportStatus.PENDING,
            require_manual_confirm=require_manual_confirm,
        )
    )
    logger.info("creato import %s (%s)", record.id, file_name)
    return record


def _line_from_result(import_id: int, match: MatchResult) -> ImportLine:
    extracted = match.extracted_line
    errors = list(extracted.errors)
    if match.error:
        errors.append(match.error)
    return ImportLine(
        import_id=import_id,
        line_number=match.line_number,
        license_plate=truncate(extracted.license_plate, PLATE_MAX_LEN),
        date=parse_invoice_date(extracted.date),
        fuel_type=truncate(extracted.fuel_type, FUEL_TYPE_MAX_LEN),
        quantity=extracted.quantity,
        amount=extracted.amount,
        card_number=truncate(extracted.card_number, CARD_NUMBER_MAX_LEN),
        odometer_km=extracted.odometer_km,
        description=truncate(extracted.description, DESCRIPTION_MAX_LEN),
        unit_price=extracted.unit_price,
        match_status=LineStatus(match.match_status.value),
        matched_fuel_record_id=match.matched_fuel_record_id,
        match_score=match.match_score,
        match_details=match.match_details,
        resolved_vehicle_id=match.resolved_vehicle_id,
        extraction_errors=errors,
    )


def process_import(
    store: RecordStore,
    import_id: int,
    document: bytes | str,
    template_config: TemplateConfig,
    matching_config: Optional[MatchingTolerances] = None,
) -> InvoiceImport:
    """
    @brief Estrae, esegue il matching e persiste le righe di un import PENDING.
    @param store Store dei record.
    @param import_id ID import in stato PENDING.
    @param document Contenuto XML della fattura.
    @param template_config Template del fornitore.
    @param matching_config Tolleranze (default: DEFAULT_MATCHING_CONFIG).
    @return Import aggiornato (PROCESSED o ERROR) con le righe.
    @throws ImportNotFoundError se l'import non esiste.
    @throws ImportStateError se l'import non è PENDING.

    @details
    Estrazione fallita -> ERROR senza righe. Altrimenti una ImportLine per
    ogni riga estratta, metadati fattura salvati se presenti, contatori
    aggiornati e stato PROCESSED. Il processing_log riassume i passaggi.
    """
    record = _require_import(store, import_id)
    if record.status != ImportStatus.PENDING:
        raise ImportStateError(f"Import {import_id} in stato {record.status.value}: elaborazione non ammessa")

    config = matching_config or DEFAULT_MATCHING_CONFIG
    extraction = extract_lines(document, template_config)
    log: list[str] = []

    if not extraction.success:
        log.append(f"Estrazione fallita: {'; '.join(extraction.errors)}")
        logger.warning("import %s: estrazione fallita", import_id)
        store.update_import(
            import_id,
            status=ImportStatus.ERROR,
            total_lines_extracted=0,
            processing_log="\n".join(log),
        )
        return _require_import(store, import_id, with_lines=True)

    if extraction.errors:
        log.append(f"Avvisi estrazione: {'; '.join(extraction.errors)}")
    log.append(f"Estratte {len(extraction.lines)} righe ({extraction.filtered_lines} filtrate)")

    metadata: dict = {}
    meta = extraction.invoice_metadata
    if meta.supplier_vat_number:
        metadata["supplier_vat_number"] = meta.supplier_vat_number
    if meta.invoice_number:
        metadata["invoice_number"] = meta.invoice_number
    invoice_date = parse_invoice_date(meta.invoice_date)
    if invoice_date:
        metadata["invoice_date"] = invoice_date

    matching = match_lines(store, extraction.lines, config, record.require_manual_confirm)
    summary = matching.summary
    log.append(
        f"Matching completato: {summary.auto_matched} auto-match, "
        f"{summary.suggested} suggeriti, {summary.unmatched} non matchati"
    )

    store.save_processed_import(
        import_id,
        [_line_from_result(import_id, match) for match in matching.results],
        **metadata,
        status=ImportStatus.PROCESSED,
        total_lines_extracted=len(extraction.lines),
        total_lines_matched=summary.auto_matched + summary.suggested,
        total_lines_error=summary.errors,
        processing_log="\n".join(log),
    )
    logger.info("import %s elaborato: %d righe", import_id, len(extraction.lines))
    return _require_import(store, import_id, with_lines=True)


def review_line(store: RecordStore, line_id: int, action: ReviewAction) -> ImportLine:
    """
    @brief Applica una decisione di revisione a una riga.
    @param action confirm -> CONFIRMED; reject -> REJECTED (scollega il rifornimento); skip -> SKIPPED.
    @return Riga aggiornata.
    @throws ImportNotFoundError se la riga non esiste.
    @throws ValueError se l'azione non è riconosciuta.
    """
    if action == "confirm":
        fields = {"match_status": LineStatus.CONFIRMED}
    elif action == "reject":
        fields = {"match_status": LineStatus.REJECTED, "matched_fuel_record_id": None}
    elif action == "skip":
        fields = {"match_status": LineStatus.SKIPPED}
    else:
        raise ValueError(f"Azione non valida: {action}")

    if store.get_import_line(line_id) is None:
        raise ImportNotFoundError(f"Riga import {line_id} non trovata")

    store.update_import_line(line_id, **fields)
    updated = store.get_import_line(line_id)
    if updated is None:
        raise ImportNotFoundError(f"Riga import {line_id} non trovata")
    return updated


confirm_line = review_line


def confirm_all_auto_matched(store: RecordStore, import_id: int) -> int:
    """@brief Conferma in blocco le righe AUTO_MATCHED; ritorna quante sono state aggiornate."""
    _require_import(store, import_id)
    count = store.update_import_lines_status(import_id, LineStatus.AUTO_MATCHED, LineStatus.CONFIRMED)
    logger.info("import %s: confermate %d righe auto-match", import_id, count)
    return count


def finalize_import(store: RecordStore, import_id: int) -> InvoiceImport:
    """
    @brief Ricalcola i contatori finali e chiude l'import (COMPLETED).
    @throws ImportStateError se l'import è ancora PENDING o in ERROR.
    @note Su un import già COMPLETED ricalcola i contatori.
    """
    record = _require_import(store, import_id)
    if record.status not in (ImportStatus.PROCESSED, ImportStatus.COMPLETED):
        raise ImportStateError(f"Import {import_id} in stato {record.status.value}: chiusura non ammessa")

    lines = store.list_import_lines(import_id)
    store.update_import(
        import_id,
        status=ImportStatus.COMPLETED,
        completed_at=dt.datetime.now().replace(microsecond=0),
        total_lines_matched=sum(l.match_status in (LineStatus.CONFIRMED, LineStatus.AUTO_MATCHED) for l in lines),
        total_lines_created=sum(l.created_fuel_record_id is not None for l in lines),
        total_lines_skipped=sum(l.match_status in (LineStatus.SKIPPED, LineStatus.REJECTED) for l in lines),
        total_lines_error=sum(l.match_status == LineStatus.ERROR for l in lines),
    )
    logger.info("import %s completato", import_id)
    return _require_import(store, import_id, with_lines=True)


def get_import_by_id(store: RecordStore, import_id: int) -> Optional[InvoiceImport]:
    """@brief Import con righe ordinate per numero riga, None se assente."""
    return store.get_import(import_id, with_lines=True)


def list_imports(
    store: RecordStore,
    status: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> ImportPage:
    """@brief Elenco paginato degli import, più recenti prima."""
    page = max(page, 1)
    page_size = max(page_size, 1)
    rows, total = store.list_imports(status=status, offset=(page - 1) * page_size, limit=page_size)
    return ImportPage(
        data=rows,
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total_count=total,
            total_pages=math.ceil(total / page_size),
        ),
    )

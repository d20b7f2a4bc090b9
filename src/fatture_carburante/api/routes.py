"""
@file routes.py
@brief Endpoints HTTP per analisi fatture XML, import e revisione righe.
@ingroup api_module

@details
Espone:
- GET /health
- POST /detect, POST /extract (senza DB)
- POST /imports, GET /imports, GET /imports/{import_id}
- POST /imports/lines/{line_id}/{action}
- POST /imports/{import_id}/confirm-all, POST /imports/{import_id}/finalize

Errori di dominio: import/riga inesistente -> 404, stato non ammesso -> 409,
template non determinabile -> 422.
"""

from __future__ import annotations
from typing import Iterator, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from fatture_carburante import config
from fatture_carburante.cli import TemplateNotFoundError, build_template
from fatture_carburante.domain.detection import detect_structure, generate_template_config
from fatture_carburante.domain.extraction import extract_lines
from fatture_carburante.domain.models import ImportStatus, MatchingTolerances, TemplateConfig
from fatture_carburante.domain.patterns import RegexPresets
from fatture_carburante.imports import (
    ImportNotFoundError,
    ImportStateError,
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

router = APIRouter()


def get_store() -> Iterator[SqliteRecordStore]:
    """@brief Store SQLite per richiesta, sul database FATTURE_DB_PATH."""
    conn = connect(config.DB_PATH, check_same_thread=False)
    try:
        yield SqliteRecordStore(conn)
    finally:
        conn.close()


class DetectRequest(BaseModel):
    xml: str


class ExtractRequest(BaseModel):
    """
    @brief Payload estrazione.
    @details Senza template viene usato quello generato dalla struttura FatturaPA.
    """
    xml: str
    template: Optional[TemplateConfig] = None
    presets: Optional[RegexPresets] = None


class ImportRequest(BaseModel):
    """@brief Payload creazione + elaborazione import."""
    xml: str
    file_name: str
    template_ref: Optional[str] = None
    template: Optional[TemplateConfig] = None
    presets: Optional[RegexPresets] = None
    matching: Optional[MatchingTolerances] = None
    require_manual_confirm: bool = False


def _template_or_422(
    xml: str, template: Optional[TemplateConfig], presets: Optional[RegexPresets] = None
) -> TemplateConfig:
    try:
        return build_template(xml, template, presets)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/health")
def health():
    """
    @brief Healthcheck semplice.
    @return {"ok": True}
    """
    return {"ok": True}


@router.post("/detect")
def detect(req: DetectRequest):
    """
    @brief Rileva la struttura FatturaPA e genera il template corrispondente.
    @return {"detected": False} se il documento non è riconosciuto.
    """
    detection = detect_structure(req.xml)
    if detection is None:
        return {"detected": False}
    return {
        "detected": True,
        "detection": detection.model_dump(),
        "template": generate_template_config(detection).model_dump(mode="json", exclude_none=True),
    }


@router.post("/extract")
def extract(req: ExtractRequest):
    template = _template_or_422(req.xml, req.template, req.presets)
    return extract_lines(req.xml, template).model_dump(mode="json")


@router.post("/imports", status_code=201)
def create_and_process(req: ImportRequest, store: SqliteRecordStore = Depends(get_store)):
    """
    @brief Crea un import e lo elabora subito (estrazione + matching).
    @return Import con righe; status ERROR se l'estrazione è fallita.
    """
    template = _template_or_422(req.xml, req.template, req.presets)
    record = create_import(
        store,
        template_ref=req.template_ref or ("custom" if req.template else "auto"),
        file_name=req.file_name,
        document=req.xml,
        require_manual_confirm=req.require_manual_confirm,
    )
    processed = process_import(store, record.id, req.xml, template, req.matching)
    return processed.model_dump(mode="json")


@router.get("/imports")
def get_imports(
    status: Optional[ImportStatus] = None,
    page: int = 1,
    page_size: int = 20,
    store: SqliteRecordStore = Depends(get_store),
):
    result = list_imports(store, status=status.value if status else None, page=page, page_size=page_size)
    return result.model_dump(mode="json", exclude={"data": {"__all__": {"lines"}}})


@router.get("/imports/{import_id}")
def get_import(import_id: int, store: SqliteRecordStore = Depends(get_store)):
    record = get_import_by_id(store, import_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Import {import_id} non trovato")
    return record.model_dump(mode="json")


@router.post("/imports/lines/{line_id}/{action}")
def review(
    line_id: int,
    action: Literal["confirm", "reject", "skip"],
    store: SqliteRecordStore = Depends(get_store),
):
    """@brief Decisione di revisione su una riga (confirm / reject / skip)."""
    try:
        line = review_line(store, line_id, action)
    except ImportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return line.model_dump(mode="json")


@router.post("/imports/{import_id}/confirm-all")
def confirm_all(import_id: int, store: SqliteRecordStore = Depends(get_store)):
    try:
        count = confirm_all_auto_matched(store, import_id)
    except ImportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"import_id": import_id, "confirmed": count}


@router.post("/imports/{import_id}/finalize")
def finalize(import_id: int, store: SqliteRecordStore = Depends(get_store)):
    try:
        record = finalize_import(store, import_id)
    except ImportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ImportStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return record.model_dump(mode="json")

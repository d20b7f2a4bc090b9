"""
@file repository.py
@brief Layer repository per persistenza di veicoli, rifornimenti e import fatture su SQLite.
@ingroup storage_module

@details
Isola SQL e schema dal resto dell'applicazione. SqliteRecordStore implementa
la porta RecordStore usata da matching e ciclo di vita import; date e
timestamp sono salvati come testo ISO, match_details ed extraction_errors
come JSON.
"""

from __future__ import annotations
import datetime as dt
import json
import sqlite3
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

from fatture_carburante.domain.models import (
    FuelRecordCandidate,
    ImportLine,
    InvoiceImport,
    LineStatus,
    Vehicle,
)

_IMPORT_COLUMNS = (
    "template_ref",
    "file_name",
    "file_hash",
    "supplier_vat_number",
    "invoice_number",
    "invoice_date",
    "status",
    "total_lines_extracted",
    "total_lines_matched",
    "total_lines_created",
    "total_lines_skipped",
    "total_lines_error",
    "require_manual_confirm",
    "processing_log",
    "created_at",
    "updated_at",
    "completed_at",
)

_LINE_COLUMNS = (
    "import_id",
    "line_number",
    "license_plate",
    "date",
    "fuel_type",
    "quantity",
    "amount",
    "card_number",
    "odometer_km",
    "description",
    "unit_price",
    "match_status",
    "matched_fuel_record_id",
    "created_fuel_record_id",
    "match_score",
    "match_details",
    "resolved_vehicle_id",
    "extraction_errors",
)

_JSON_LINE_COLUMNS = ("match_details", "extraction_errors")


def init_schema(conn: sqlite3.Connection) -> None:
    """
    @brief Applica lo schema SQL (idempotente).
    @param conn Connessione SQLite.
    @return None
    """
    schema_path = Path(__file__).with_name("schema.sql")
    conn.executescript(schema_path.read_text(encoding="utf-8"))
    conn.commit()


def _db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, list):
        return json.dumps(value, ensure_ascii=False)
    return value


def _now() -> str:
    return dt.datetime.now().isoformat(timespec="seconds")


def _lastrowid(cur: sqlite3.Cursor, what: str) -> int:
    row_id = cur.lastrowid
    if row_id is None:
        raise RuntimeError(f"Failed to get lastrowid after inserting {what}")
    return int(row_id)


def _row_to_line(row: sqlite3.Row) -> ImportLine:
    data = dict(row)
    for col in _JSON_LINE_COLUMNS:
        raw = data.get(col)
        data[col] = json.loads(raw) if raw else None
    if data["extraction_errors"] is None:
        data["extraction_errors"] = []
    return ImportLine.model_validate(data)


def _row_to_import(row: sqlite3.Row) -> InvoiceImport:
    return InvoiceImport.model_validate(dict(row))


def insert_vehicle(conn: sqlite3.Connection, license_plate: str, status: str = "ACTIVE") -> int:
    """
    @brief Inserisce un veicolo nel parco.
    @param license_plate Targa così come registrata (non normalizzata).
    @return ID del veicolo inserito.
    """
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO vehicles(license_plate, status) VALUES (?, ?)",
        (license_plate, status),
    )
    vehicle_id = _lastrowid(cur, "vehicle")
    conn.commit()
    return vehicle_id


def insert_fuel_record(
    conn: sqlite3.Connection,
    vehicle_id: int,
    date: dt.date,
    quantity_liters: Optional[float] = None,
    amount_eur: Optional[float] = None,
    fuel_type: Optional[str] = None,
) -> int:
    """
    @brief Inserisce un rifornimento esistente (candidato per il matching).
    @return ID del rifornimento inserito.
    """
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO fuel_records(vehicle_id, date, quantity_liters, amount_eur, fuel_type)
        VALUES (?, ?, ?, ?, ?)
        """,
        (vehicle_id, date.isoformat(), quantity_liters, amount_eur, fuel_type),
    )
    record_id = _lastrowid(cur, "fuel record")
    conn.commit()
    return record_id


class SqliteRecordStore:
    """
    @brief Implementazione SQLite della porta RecordStore.
    @param conn Connessione ottenuta da storage.db.connect (row_factory sqlite3.Row).
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # -- veicoli e rifornimenti --

    def find_vehicle_by_normalized_plate(self, plate: str) -> Optional[int]:
        row = self.conn.execute(
            "SELECT id FROM vehicles WHERE license_plate = ? AND status != 'DISPOSED' ORDER BY id LIMIT 1",
            (plate,),
        ).fetchone()
        return int(row["id"]) if row else None

    def find_active_vehicles(self) -> list[Vehicle]:
        rows = self.conn.execute(
            "SELECT id, license_plate, status FROM vehicles WHERE status != 'DISPOSED' ORDER BY id"
        ).fetchall()
        return [Vehicle.model_validate(dict(r)) for r in rows]

    def find_fuel_records(
        self, vehicle_id: int, date_from: dt.date, date_to: dt.date
    ) -> list[FuelRecordCandidate]:
        rows = self.conn.execute(
            """
            SELECT id, date(date) AS date, quantity_liters AS quantity,
                   amount_eur AS total_cost, fuel_type
            FROM fuel_records
            WHERE vehicle_id = ? AND date(date) BETWEEN ? AND ?
            ORDER BY date(date) DESC, id DESC
            """,
            (vehicle_id, date_from.isoformat(), date_to.isoformat()),
        ).fetchall()
        return [FuelRecordCandidate.model_validate(dict(r)) for r in rows]

    # -- import --

    def create_import(self, record: InvoiceImport) -> InvoiceImport:
        now = _now()
        values = record.model_dump(include=set(_IMPORT_COLUMNS))
        values["created_at"] = values.get("created_at") or now
        values["updated_at"] = values.get("updated_at") or now
        cols = ", ".join(_IMPORT_COLUMNS)
        marks = ", ".join("?" for _ in _IMPORT_COLUMNS)
        cur = self.conn.cursor()
        cur.execute(
            f"INSERT INTO invoice_imports({cols}) VALUES ({marks})",
            tuple(_db_value(values.get(c)) for c in _IMPORT_COLUMNS),
        )
        import_id = _lastrowid(cur, "invoice import")
        self.conn.commit()
        created = self.get_import(import_id, with_lines=False)
        if created is None:
            raise RuntimeError(f"Import {import_id} not found after insert")
        return created

    def _update_import(self, cur: sqlite3.Cursor, import_id: int, fields: dict[str, Any]) -> None:
        unknown = set(fields) - set(_IMPORT_COLUMNS)
        if unknown:
            raise ValueError(f"Colonne import sconosciute: {sorted(unknown)}")
        fields.setdefault("updated_at", _now())
        assignments = ", ".join(f"{c} = ?" for c in fields)
        cur.execute(
            f"UPDATE invoice_imports SET {assignments} WHERE id = ?",
            (*(_db_value(v) for v in fields.values()), import_id),
        )

    def update_import(self, import_id: int, **fields: Any) -> None:
        self._update_import(self.conn.cursor(), import_id, fields)
        self.conn.commit()

    def get_import(self, import_id: int, with_lines: bool = True) -> Optional[InvoiceImport]:
        row = self.conn.execute("SELECT * FROM invoice_imports WHERE id = ?", (import_id,)).fetchone()
        if row is None:
            return None
        record = _row_to_import(row)
        if with_lines:
            record.lines = self.list_import_lines(import_id)
        return record

    def list_imports(
        self, status: Optional[str] = None, offset: int = 0, limit: int = 20
    ) -> tuple[list[InvoiceImport], int]:
        where, params = "", []
        if status:
            where, params = "WHERE status = ?", [_db_value(status)]
        total = self.conn.execute(f"SELECT COUNT(*) FROM invoice_imports {where}", params).fetchone()[0]
        rows = self.conn.execute(
            f"SELECT * FROM invoice_imports {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (*params, limit, offset),
        ).fetchall()
        return [_row_to_import(r) for r in rows], int(total)

    # -- righe import --

    def _insert_line(self, cur: sqlite3.Cursor, line: ImportLine) -> int:
        values = line.model_dump(include=set(_LINE_COLUMNS) - set(_JSON_LINE_COLUMNS))
        values["match_details"] = line.match_details
        values["extraction_errors"] = list(line.extraction_errors)
        cols = ", ".join(_LINE_COLUMNS)
        marks = ", ".join("?" for _ in _LINE_COLUMNS)
        cur.execute(
            f"INSERT INTO invoice_import_lines({cols}) VALUES ({marks})",
            tuple(_db_value(values.get(c)) for c in _LINE_COLUMNS),
        )
        return _lastrowid(cur, "import line")

    def create_import_line(self, line: ImportLine) -> ImportLine:
        line_id = self._insert_line(self.conn.cursor(), line)
        self.conn.commit()
        return line.model_copy(update={"id": line_id})

    def save_processed_import(self, import_id: int, lines: list[ImportLine], **fields: Any) -> None:
        """
        @brief Persiste righe e aggiornamento import in un'unica transazione.
        @param lines Righe da inserire (numero riga unico per import).
        @param fields Colonne import da aggiornare (stato, contatori, log, metadati).
        @note Su errore nessuna riga resta salvata e l'import non cambia.
        """
        cur = self.conn.cursor()
        try:
            for line in lines:
                self._insert_line(cur, line)
            self._update_import(cur, import_id, fields)
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()

    def update_import_line(self, line_id: int, **fields: Any) -> None:
        unknown = set(fields) - set(_LINE_COLUMNS)
        if unknown:
            raise ValueError(f"Colonne riga sconosciute: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{c} = ?" for c in fields)
        self.conn.execute(
            f"UPDATE invoice_import_lines SET {assignments} WHERE id = ?",
            (*(_db_value(v) for v in fields.values()), line_id),
        )
        self.conn.commit()

    def get_import_line(self, line_id: int) -> Optional[ImportLine]:
        row = self.conn.execute("SELECT * FROM invoice_import_lines WHERE id = ?", (line_id,)).fetchone()
        return _row_to_line(row) if row else None

    def list_import_lines(self, import_id: int) -> list[ImportLine]:
        rows = self.conn.execute(
            "SELECT * FROM invoice_import_lines WHERE import_id = ? ORDER BY line_number, id",
            (import_id,),
        ).fetchall()
        return [_row_to_line(r) for r in rows]

    def count_import_lines(self, import_id: int, status: Optional[LineStatus] = None) -> int:
        if status is None:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM invoice_import_lines WHERE import_id = ?", (import_id,)
            ).fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM invoice_import_lines WHERE import_id = ? AND match_status = ?",
                (import_id, _db_value(status)),
            ).fetchone()
        return int(row[0])

    def update_import_lines_status(
        self, import_id: int, from_status: LineStatus, to_status: LineStatus
    ) -> int:
        cur = self.conn.execute(
            "UPDATE invoice_import_lines SET match_status = ? WHERE import_id = ? AND match_status = ?",
            (_db_value(to_status), import_id, _db_value(from_status)),
        )
        self.conn.commit()
        return cur.rowcount

"""
@file store.py
@brief Porta verso lo store dei record (veicoli, rifornimenti, import, righe import).
@ingroup storage_module

@details
Il core di riconciliazione dipende solo da questa interfaccia; l'isolamento
per tenant e la persistenza effettiva sono responsabilità dell'implementazione.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional, Protocol

from fatture_carburante.domain.models import (
    FuelRecordCandidate,
    ImportLine,
    InvoiceImport,
    LineStatus,
    Vehicle,
)


class RecordStore(Protocol):
    def find_vehicle_by_normalized_plate(self, plate: str) -> Optional[int]:
        """Lookup indicizzato su veicoli attivi (non DISPOSED)."""

    def find_active_vehicles(self) -> list[Vehicle]:
        """Tutti i veicoli attivi, per la scansione di fallback."""

    def find_fuel_records(
        self, vehicle_id: int, date_from: dt.date, date_to: dt.date
    ) -> list[FuelRecordCandidate]:
        """Rifornimenti del veicolo con data nell'intervallo chiuso, più recenti prima."""

    def create_import(self, record: InvoiceImport) -> InvoiceImport: ...

    def update_import(self, import_id: int, **fields: Any) -> None: ...

    def get_import(self, import_id: int, with_lines: bool = True) -> Optional[InvoiceImport]: ...

    def list_imports(
        self, status: Optional[str] = None, offset: int = 0, limit: int = 20
    ) -> tuple[list[InvoiceImport], int]: ...

    def create_import_line(self, line: ImportLine) -> ImportLine: ...

    def save_processed_import(self, import_id: int, lines: list[ImportLine], **fields: Any) -> None:
        """Inserisce le righe e aggiorna l'import in modo atomico."""

    def update_import_line(self, line_id: int, **fields: Any) -> None: ...

    def get_import_line(self, line_id: int) -> Optional[ImportLine]: ...

    def list_import_lines(self, import_id: int) -> list[ImportLine]: ...

    def count_import_lines(self, import_id: int, status: Optional[LineStatus] = None) -> int: ...

    def update_import_lines_status(
        self, import_id: int, from_status: LineStatus, to_status: LineStatus
    ) -> int: ...

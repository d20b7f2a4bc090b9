"""
@file resolver.py
@brief Risoluzione targa -> veicolo del parco.
@ingroup matching_module
"""

from __future__ import annotations

import logging
from typing import Optional

from fatture_carburante.domain.normalize import normalize_plate
from fatture_carburante.storage.store import RecordStore

logger = logging.getLogger(__name__)


def resolve_plate(store: RecordStore, raw_plate: Optional[str]) -> Optional[int]:
    """
    @brief Cerca un veicolo attivo per targa (maiuscole, senza spazi/trattini).
    @param store Store dei record.
    @param raw_plate Targa grezza dalla riga fattura.
    @return ID veicolo o None se la targa è vuota o non presente nel parco.

    @details
    Prima il lookup indicizzato sulla targa normalizzata, poi una scansione
    dei veicoli attivi confrontando le targhe normalizzate (copre targhe
    registrate con formattazione diversa, es. 'ab 123-cd').
    """
    normalized = normalize_plate(raw_plate)
    if not normalized:
        return None

    vehicle_id = store.find_vehicle_by_normalized_plate(normalized)
    if vehicle_id is not None:
        return vehicle_id

    for vehicle in store.find_active_vehicles():
        if normalize_plate(vehicle.license_plate) == normalized:
            return vehicle.id

    logger.debug("targa %s non presente nel parco", normalized)
    return None


class PlateResolver:
    """@brief resolve_plate con cache per targa normalizzata (valida per un solo run)."""

    def __init__(self, store: RecordStore):
        self.store = store
        self._cache: dict[str, Optional[int]] = {}

    def resolve(self, raw_plate: Optional[str]) -> Optional[int]:
        key = normalize_plate(raw_plate)
        if not key:
            return None
        if key not in self._cache:
            self._cache[key] = resolve_plate(self.store, raw_plate)
        return self._cache[key]

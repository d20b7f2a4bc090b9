"""
@file scoring.py
@brief Punteggio ponderato e spiegabile tra riga fattura e rifornimento candidato.
@ingroup matching_module

@details
Cinque dimensioni (targa, data, quantità, importo, tipo carburante), ognuna
con punteggio in [0, 1], peso e dettaglio testuale. Il totale è la somma
pesata arrotondata a 4 decimali. Il calcolo non solleva mai eccezioni:
dati mancanti danno punteggio 0 con un dettaglio che lo spiega.
"""

from __future__ import annotations

from typing import Optional

from fatture_carburante.domain.dates import days_between, parse_flexible_date
from fatture_carburante.domain.models import (
    DimensionScore,
    ExtractedLine,
    FuelRecordCandidate,
    MatchingTolerances,
    MatchScoreBreakdown,
)
from fatture_carburante.domain.normalize import are_fuel_types_compatible, canonicalize_fuel_type


def _num(value: float) -> str:
    return f"{value:g}"


def _linear(diff: float, tolerance: float) -> float:
    # tolleranza zero: solo la corrispondenza esatta vale qualcosa
    if tolerance <= 0:
        return 0.0
    return 1.0 - diff / tolerance


def _score_date(line: ExtractedLine, candidate: FuelRecordCandidate, tol_days: int) -> tuple[float, str]:
    extracted = parse_flexible_date(line.date)
    if extracted is None:
        return 0.0, "Data: non disponibile nella riga estratta"
    if candidate.date is None:
        return 0.0, "Data: non disponibile nel record candidato"

    diff = days_between(extracted, candidate.date)
    if diff == 0:
        return 1.0, "Data: corrispondenza esatta"
    if diff <= tol_days:
        suffix = "o" if diff == 1 else "i"
        return _linear(diff, tol_days), f"Data: differenza di {diff} giorn{suffix} (tolleranza: {tol_days}gg)"
    return 0.0, f"Data: differenza di {diff} giorni, fuori tolleranza (max {tol_days}gg)"


def _score_quantity(
    extracted: Optional[float], candidate: Optional[float], tol_pct: float
) -> tuple[float, str]:
    if extracted is None:
        return 0.0, "Quantita: non disponibile nella riga estratta"
    if candidate is None or candidate <= 0:
        return 0.0, "Quantita: non disponibile nel record candidato"

    pct = abs(extracted - candidate) / candidate * 100
    if pct == 0:
        return 1.0, f"Quantita: corrispondenza esatta ({_num(extracted)})"
    if pct <= tol_pct:
        return _linear(pct, tol_pct), (
            f"Quantita: differenza {pct:.1f}% (fattura: {_num(extracted)}, record: {_num(candidate)})"
        )
    return 0.0, f"Quantita: differenza {pct:.1f}%, fuori tolleranza (max {_num(tol_pct)}%)"


def _score_amount(
    extracted: Optional[float], candidate: Optional[float], tol_pct: float
) -> tuple[float, str]:
    if extracted is None:
        return 0.0, "Importo: non disponibile nella riga estratta"
    if candidate is None or candidate <= 0:
        return 0.0, "Importo: non disponibile nel record candidato"

    pct = abs(extracted - candidate) / candidate * 100
    if pct == 0:
        return 1.0, f"Importo: corrispondenza esatta ({extracted:.2f} EUR)"
    if pct <= tol_pct:
        return _linear(pct, tol_pct), (
            f"Importo: differenza {pct:.1f}% (fattura: {extracted:.2f}, record: {candidate:.2f})"
        )
    return 0.0, f"Importo: differenza {pct:.1f}%, fuori tolleranza (max {_num(tol_pct)}%)"


def _score_fuel_type(raw_extracted: Optional[str], raw_candidate: Optional[str]) -> tuple[float, str]:
    extracted = canonicalize_fuel_type(raw_extracted)
    candidate = canonicalize_fuel_type(raw_candidate)

    if extracted is None:
        if raw_extracted and raw_extracted.strip():
            return 0.0, f"Tipo carburante: non riconosciuto nella riga estratta ({raw_extracted})"
        return 0.0, "Tipo carburante: non disponibile nella riga estratta"
    if candidate is None:
        if raw_candidate and raw_candidate.strip():
            return 0.0, f"Tipo carburante: non riconosciuto nel record candidato ({raw_candidate})"
        return 0.0, "Tipo carburante: non disponibile nel record candidato"

    if extracted == candidate:
        return 1.0, f"Tipo carburante: corrispondenza esatta ({extracted})"
    pair = f"(fattura: {raw_extracted} -> {extracted}, record: {raw_candidate} -> {candidate})"
    if are_fuel_types_compatible(extracted, candidate):
        return 0.5, f"Tipo carburante: compatibile {pair}"
    return 0.0, f"Tipo carburante: non corrispondente {pair}"


def score(
    line: ExtractedLine,
    candidate: FuelRecordCandidate,
    tolerances: MatchingTolerances,
) -> MatchScoreBreakdown:
    """
    @brief Calcola il punteggio di corrispondenza riga/candidato.
    @param line Riga estratta (la targa è già stata risolta: il candidato
           proviene da una ricerca filtrata per veicolo).
    @param candidate Rifornimento candidato.
    @param tolerances Tolleranze, soglia e pesi.
    @return MatchScoreBreakdown con dettaglio per dimensione e total_score.

    @details
    - data: 1 se coincide, decadimento lineare fino a date_tolerance_days, poi 0
    - quantità/importo: differenza percentuale rispetto al candidato, stesso decadimento
    - carburante: 1 se equivalenti, 0.5 se compatibili (stesso gruppo), altrimenti 0
    """
    w = tolerances.weights

    plate_detail = (
        f"Targa risolta: {line.license_plate}" if line.license_plate else "Targa non presente nella riga"
    )
    date_score, date_detail = _score_date(line, candidate, tolerances.date_tolerance_days)
    qty_score, qty_detail = _score_quantity(
        line.quantity, candidate.quantity, tolerances.quantity_tolerance_percent
    )
    amount_score, amount_detail = _score_amount(
        line.amount, candidate.total_cost, tolerances.amount_tolerance_percent
    )
    fuel_score, fuel_detail = _score_fuel_type(line.fuel_type, candidate.fuel_type)

    total = (
        1.0 * w.license_plate
        + date_score * w.date
        + qty_score * w.quantity
        + amount_score * w.amount
        + fuel_score * w.fuel_type
    )

    return MatchScoreBreakdown(
        license_plate=DimensionScore(score=1.0, weight=w.license_plate, detail=plate_detail),
        date=DimensionScore(score=date_score, weight=w.date, detail=date_detail),
        quantity=DimensionScore(score=qty_score, weight=w.quantity, detail=qty_detail),
        amount=DimensionScore(score=amount_score, weight=w.amount, detail=amount_detail),
        fuel_type=DimensionScore(score=fuel_score, weight=w.fuel_type, detail=fuel_detail),
        total_score=round(total, 4),
    )

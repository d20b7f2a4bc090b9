"""
@file engine.py
@brief Matching delle righe fattura contro i rifornimenti esistenti.
@ingroup matching_module

@details
Per ogni riga:
1. risolve la targa in un veicolo (con cache per run)
2. cerca i rifornimenti candidati entro la tolleranza temporale
3. calcola il punteggio di ogni candidato e sceglie il migliore
4. classifica: AUTO_MATCHED / SUGGESTED / UNMATCHED (ERROR se la riga non è matchabile)

Un errore su una riga non interrompe il batch.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Callable, Optional, Sequence

from fatture_carburante.domain.dates import days_between, parse_flexible_date
from fatture_carburante.domain.models import (
    ExtractedLine,
    FuelRecordCandidate,
    MatchingResult,
    MatchingSummary,
    MatchingTolerances,
    MatchResult,
    MatchScoreBreakdown,
    MatchStatus,
)
from fatture_carburante.storage.store import RecordStore

from .resolver import PlateResolver
from .scoring import score

logger = logging.getLogger(__name__)

NO_DATE_LOOKBACK_DAYS = 90
SUGGESTION_THRESHOLD = 0.5

Scored = tuple[FuelRecordCandidate, MatchScoreBreakdown]
BestSelector = Callable[[ExtractedLine, Sequence[Scored]], Scored]


def find_candidates(
    store: RecordStore,
    vehicle_id: int,
    ref_date: Optional[dt.date],
    tolerance_days: int,
    today: Optional[dt.date] = None,
) -> list[FuelRecordCandidate]:
    """
    @brief Rifornimenti del veicolo nella finestra [data - tol, data + tol], più recenti prima.
    @param ref_date Data della riga; se None tutti i rifornimenti dagli ultimi 90 giorni in poi.
    @param today Data di riferimento per la finestra senza data (default: oggi).
    """
    if ref_date is not None:
        span = dt.timedelta(days=tolerance_days)
        date_from, date_to = ref_date - span, ref_date + span
    else:
        # nessun limite superiore: anche i rifornimenti con data futura sono candidati
        date_from = (today or dt.date.today()) - dt.timedelta(days=NO_DATE_LOOKBACK_DAYS)
        date_to = dt.date.max
    return store.find_fuel_records(vehicle_id, date_from, date_to)


def first_best(line: ExtractedLine, scored: Sequence[Scored]) -> Scored:
    """@brief Punteggio strettamente più alto; a parità vince il primo visto (il più recente)."""
    best = scored[0]
    for item in scored[1:]:
        if item[1].total_score > best[1].total_score:
            best = item
    return best


def closest_date_best(line: ExtractedLine, scored: Sequence[Scored]) -> Scored:
    """@brief Come first_best, ma a parità di punteggio preferisce la data più vicina alla riga."""
    ref = parse_flexible_date(line.date)

    def _distance(item: Scored) -> float:
        if ref is None:
            return math.inf
        return days_between(ref, item[0].date)

    best = scored[0]
    for item in scored[1:]:
        if item[1].total_score > best[1].total_score:
            best = item
        elif item[1].total_score == best[1].total_score and _distance(item) < _distance(best):
            best = item
    return best


def classify(total_score: float, tolerances: MatchingTolerances, require_manual_confirm: bool) -> MatchStatus:
    if total_score >= tolerances.auto_match_threshold and not require_manual_confirm:
        return MatchStatus.AUTO_MATCHED
    if total_score >= SUGGESTION_THRESHOLD:
        return MatchStatus.SUGGESTED
    return MatchStatus.UNMATCHED


def _error(line: ExtractedLine, message: str) -> MatchResult:
    return MatchResult(
        line_number=line.line_number,
        extracted_line=line,
        match_status=MatchStatus.ERROR,
        error=message,
    )


def _match_line(
    resolver: PlateResolver,
    line: ExtractedLine,
    tolerances: MatchingTolerances,
    require_manual_confirm: bool,
    select_best: BestSelector,
) -> MatchResult:
    raw_plate = (line.license_plate or "").strip()
    if not raw_plate:
        return _error(line, "Targa mancante nella riga estratta")

    vehicle_id = resolver.resolve(raw_plate)
    if vehicle_id is None:
        return _error(line, f"Targa non trovata nel parco veicoli: {raw_plate}")

    candidates = find_candidates(
        resolver.store,
        vehicle_id,
        parse_flexible_date(line.date),
        tolerances.date_tolerance_days,
    )
    if not candidates:
        return MatchResult(
            line_number=line.line_number,
            extracted_line=line,
            match_status=MatchStatus.UNMATCHED,
            match_score=0,
            resolved_vehicle_id=vehicle_id,
        )

    scored = [(c, score(line, c, tolerances)) for c in candidates]
    best, breakdown = select_best(line, scored)
    breakdown.license_plate.detail = f"Targa risolta: {raw_plate} -> veicolo {vehicle_id}"

    return MatchResult(
        line_number=line.line_number,
        extracted_line=line,
        match_status=classify(breakdown.total_score, tolerances, require_manual_confirm),
        matched_fuel_record_id=best.id,
        match_score=breakdown.total_score,
        match_details=breakdown,
        resolved_vehicle_id=vehicle_id,
        candidate_count=len(candidates),
    )


def match_lines(
    store: RecordStore,
    lines: Sequence[ExtractedLine],
    tolerances: MatchingTolerances,
    require_manual_confirm: bool = False,
    select_best: BestSelector = first_best,
) -> MatchingResult:
    """
    @brief Esegue il matching di un batch di righe estratte.
    @param store Store dei record (veicoli e rifornimenti).
    @param lines Righe estratte dalla fattura.
    @param tolerances Configurazione di matching.
    @param require_manual_confirm Se True nessuna riga diventa AUTO_MATCHED.
    @param select_best Politica di scelta del candidato migliore.
    @return MatchingResult con un risultato per riga, nello stesso ordine, e riepilogo.
    """
    if not math.isclose(tolerances.weights_total, 1.0, abs_tol=1e-9):
        logger.warning("somma pesi matching = %.4f (attesa 1.0)", tolerances.weights_total)

    resolver = PlateResolver(store)
    results: list[MatchResult] = []

    for line in lines:
        try:
            result = _match_line(resolver, line, tolerances, require_manual_confirm, select_best)
        except Exception as e:
            logger.exception("matching riga %d fallito", line.line_number)
            result = _error(line, f"Errore durante il matching della riga {line.line_number}: {e}")
        results.append(result)

    summary = MatchingSummary(
        total=len(results),
        auto_matched=sum(r.match_status == MatchStatus.AUTO_MATCHED for r in results),
        suggested=sum(r.match_status == MatchStatus.SUGGESTED for r in results),
        unmatched=sum(r.match_status == MatchStatus.UNMATCHED for r in results),
        errors=sum(r.match_status == MatchStatus.ERROR for r in results),
    )
    logger.info(
        "matching: %d righe, %d auto, %d suggerite, %d non matchate, %d errori",
        summary.total,
        summary.auto_matched,
        summary.suggested,
        summary.unmatched,
        summary.errors,
    )
    return MatchingResult(results=results, summary=summary)

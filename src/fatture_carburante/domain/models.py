"""
@file models.py
@brief Modelli dominio (template, righe estratte, matching, import) tramite Pydantic.
@ingroup domain_module

@details
Definisce i contratti dati della riconciliazione fatture carburante.
Questi modelli fungono da:
- DTO tra layer (estrazione/matching/storage/api)
- schema implicito per serializzazione JSON delle configurazioni template
- base per validazione input/output
"""

from __future__ import annotations

import datetime as _dt
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

Transform = Literal["uppercase", "lowercase", "trim"]


# ---------------------------------------------------------------------------
# Template di estrazione
# ---------------------------------------------------------------------------


class RegexPattern(BaseModel):
    """@brief Singolo pattern di una cascata regex (il primo che matcha vince)."""
    label: Optional[str] = None
    regex: str
    regex_group: int = 1
    transform: Optional[Transform] = None


class _RuleBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    transform: Optional[Transform] = None
    # solo informativo: il parsing data avviene a valle, in modo tollerante
    date_format: Optional[str] = None


class _PatternRuleBase(_RuleBase):
    regex_patterns: List[RegexPattern] = Field(default_factory=list)
    regex: Optional[str] = None
    regex_group: int = 1

    @model_validator(mode="after")
    def _require_pattern(self):
        if not self.regex_patterns and not self.regex:
            raise ValueError(f"La regola {self.method} richiede almeno un pattern regex")
        return self


class StaticRule(_RuleBase):
    """@brief Valore costante, indipendente dal nodo."""
    method: Literal["STATIC"] = "STATIC"
    static_value: str


class XPathRule(_RuleBase):
    """@brief Testo del nodo raggiunto dal percorso puntato."""
    method: Literal["XPATH"] = "XPATH"
    xpath: str = ""


class RegexRule(_PatternRuleBase):
    """@brief Regex applicata al testo del documento (radice + percorso) o della riga."""
    method: Literal["REGEX"] = "REGEX"
    xpath: Optional[str] = None


class XPathRegexRule(_PatternRuleBase):
    """@brief Percorso puntato seguito da cascata regex sul testo ottenuto."""
    method: Literal["XPATH_REGEX"] = "XPATH_REGEX"
    xpath: str = ""


FieldExtractionRule = Annotated[
    Union[StaticRule, XPathRule, RegexRule, XPathRegexRule],
    Field(discriminator="method"),
]


class TemplateFields(BaseModel):
    """@brief Insieme chiuso dei campi estraibili da una riga fattura."""
    model_config = ConfigDict(extra="forbid")

    license_plate: Optional[FieldExtractionRule] = None
    date: Optional[FieldExtractionRule] = None
    fuel_type: Optional[FieldExtractionRule] = None
    quantity: Optional[FieldExtractionRule] = None
    amount: Optional[FieldExtractionRule] = None
    card_number: Optional[FieldExtractionRule] = None
    odometer_km: Optional[FieldExtractionRule] = None
    description: Optional[FieldExtractionRule] = None
    unit_price: Optional[FieldExtractionRule] = None


class LineFilter(BaseModel):
    """@brief Filtro include/exclude applicato alle righe estratte."""
    field_path: Optional[str] = None
    regex: Optional[str] = None
    action: Literal["include", "exclude"] = "include"


class SupplierDetection(BaseModel):
    vat_number_path: Optional[str] = None


class InvoiceMetadataPaths(BaseModel):
    invoice_number_path: Optional[str] = None
    invoice_date_path: Optional[str] = None
    invoice_date_format: Optional[str] = None


class TemplateConfig(BaseModel):
    """
    @brief Ricetta dichiarativa per la forma documento di un fornitore.
    @details
    Persistita come JSON opaco dallo store esterno; line_xpath indica la
    collezione ripetuta delle righe (zero o più nodi fratelli).
    """
    version: int = 1
    namespace: Optional[str] = None
    line_xpath: str
    fields: TemplateFields = Field(default_factory=TemplateFields)
    line_filters: List[LineFilter] = Field(default_factory=list)
    supplier_detection: Optional[SupplierDetection] = None
    invoice_metadata: Optional[InvoiceMetadataPaths] = None


# ---------------------------------------------------------------------------
# Risultato estrazione
# ---------------------------------------------------------------------------


class ExtractedLine(BaseModel):
    """@brief Riga acquisto estratta, prima del matching (data ancora grezza)."""
    line_number: int
    license_plate: Optional[str] = None
    date: Optional[str] = None
    fuel_type: Optional[str] = None
    quantity: Optional[float] = None
    amount: Optional[float] = None
    card_number: Optional[str] = None
    odometer_km: Optional[int] = None
    description: Optional[str] = None
    unit_price: Optional[float] = None
    errors: List[str] = Field(default_factory=list)


class InvoiceMetadata(BaseModel):
    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    supplier_vat_number: Optional[str] = None


class ExtractionResult(BaseModel):
    """
    @brief Esito di una estrazione documento.
    @details filtered_lines = total_lines - len(lines); success False implica lines vuota.
    """
    success: bool
    lines: List[ExtractedLine] = Field(default_factory=list)
    total_lines: int = 0
    filtered_lines: int = 0
    errors: List[str] = Field(default_factory=list)
    invoice_metadata: InvoiceMetadata = Field(default_factory=InvoiceMetadata)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class MatchingWeights(BaseModel):
    license_plate: float = 0.35
    date: float = 0.25
    quantity: float = 0.2
    amount: float = 0.15
    fuel_type: float = 0.05


class MatchingTolerances(BaseModel):
    """
    @brief Configurazione del punteggio di matching.
    @note I pesi non sono vincolati a sommare 1.0: con somme diverse il
          total_score può uscire da [0, 1].
    """
    date_tolerance_days: int = Field(default=2, ge=0)
    quantity_tolerance_percent: float = Field(default=5, ge=0)
    amount_tolerance_percent: float = Field(default=5, ge=0)
    auto_match_threshold: float = Field(default=0.85, ge=0, le=1)
    weights: MatchingWeights = Field(default_factory=MatchingWeights)

    @property
    def weights_total(self) -> float:
        w = self.weights
        return w.license_plate + w.date + w.quantity + w.amount + w.fuel_type


DEFAULT_MATCHING_CONFIG = MatchingTolerances()


class Vehicle(BaseModel):
    """@brief Snapshot veicolo del parco (solo i campi usati dalla risoluzione targa)."""
    id: int
    license_plate: str
    status: str = "ACTIVE"


class FuelRecordCandidate(BaseModel):
    """@brief Rifornimento esistente candidato al matching (snapshot immutabile)."""
    model_config = ConfigDict(frozen=True)

    id: int
    date: _dt.date
    quantity: Optional[float] = None
    total_cost: Optional[float] = None
    fuel_type: Optional[str] = None


class DimensionScore(BaseModel):
    score: float
    weight: float
    detail: str


class MatchScoreBreakdown(BaseModel):
    """@brief Punteggio spiegabile: una voce per dimensione + totale pesato."""
    license_plate: DimensionScore
    date: DimensionScore
    quantity: DimensionScore
    amount: DimensionScore
    fuel_type: DimensionScore
    total_score: float


class MatchStatus(str, Enum):
    AUTO_MATCHED = "AUTO_MATCHED"
    SUGGESTED = "SUGGESTED"
    UNMATCHED = "UNMATCHED"
    ERROR = "ERROR"


class MatchResult(BaseModel):
    line_number: int
    extracted_line: ExtractedLine
    match_status: MatchStatus
    matched_fuel_record_id: Optional[int] = None
    match_score: Optional[float] = None
    match_details: Optional[MatchScoreBreakdown] = None
    resolved_vehicle_id: Optional[int] = None
    candidate_count: int = 0
    error: Optional[str] = None


class MatchingSummary(BaseModel):
    total: int = 0
    auto_matched: int = 0
    suggested: int = 0
    unmatched: int = 0
    errors: int = 0


class MatchingResult(BaseModel):
    results: List[MatchResult] = Field(default_factory=list)
    summary: MatchingSummary = Field(default_factory=MatchingSummary)


# ---------------------------------------------------------------------------
# Import batch
# ---------------------------------------------------------------------------


class ImportStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    ERROR = "ERROR"
    COMPLETED = "COMPLETED"


class LineStatus(str, Enum):
    AUTO_MATCHED = "AUTO_MATCHED"
    SUGGESTED = "SUGGESTED"
    CANDIDATE = "CANDIDATE"
    UNMATCHED = "UNMATCHED"
    ERROR = "ERROR"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"


class ImportLine(BaseModel):
    """@brief Riga persistita di un import: campi estratti + esito matching + stato revisione."""
    id: Optional[int] = None
    import_id: int
    line_number: int
    license_plate: Optional[str] = None
    date: Optional[_dt.date] = None
    fuel_type: Optional[str] = None
    quantity: Optional[float] = None
    amount: Optional[float] = None
    card_number: Optional[str] = None
    odometer_km: Optional[int] = None
    description: Optional[str] = None
    unit_price: Optional[float] = None
    match_status: LineStatus
    matched_fuel_record_id: Optional[int] = None
    created_fuel_record_id: Optional[int] = None
    match_score: Optional[float] = None
    match_details: Optional[MatchScoreBreakdown] = None
    resolved_vehicle_id: Optional[int] = None
    extraction_errors: List[str] = Field(default_factory=list)


class InvoiceImport(BaseModel):
    """
    @brief Job di riconciliazione batch (una fattura).
    @details Stati: PENDING -> PROCESSED | ERROR; PROCESSED -> COMPLETED.
    """
    id: Optional[int] = None
    template_ref: Optional[str] = None
    file_name: str
    file_hash: Optional[str] = None
    supplier_vat_number: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[_dt.date] = None
    status: ImportStatus = ImportStatus.PENDING
    total_lines_extracted: int = 0
    total_lines_matched: int = 0
    total_lines_created: int = 0
    total_lines_skipped: int = 0
    total_lines_error: int = 0
    require_manual_confirm: bool = False
    processing_log: Optional[str] = None
    created_at: Optional[_dt.datetime] = None
    updated_at: Optional[_dt.datetime] = None
    completed_at: Optional[_dt.datetime] = None
    lines: List[ImportLine] = Field(default_factory=list)


class Pagination(BaseModel):
    page: int
    page_size: int
    total_count: int
    total_pages: int


class ImportPage(BaseModel):
    data: List[InvoiceImport] = Field(default_factory=list)
    pagination: Pagination

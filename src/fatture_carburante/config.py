"""
@file config.py
@brief Configurazione: percorsi, livello di log, caricamento template e tolleranze da JSON.
@ingroup config_module
"""

from __future__ import annotations
import logging
import os
from pathlib import Path

from pydantic import TypeAdapter

from fatture_carburante.domain.models import MatchingTolerances, TemplateConfig
from fatture_carburante.domain.patterns import RegexPresets

# Database SQLite di default (CLI e API)
DB_PATH = os.environ.get("FATTURE_DB_PATH", "data/fatture.sqlite")

LOG_LEVEL = os.environ.get("FATTURE_LOG_LEVEL", "WARNING")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    """
    @brief Configura il logging di base del processo.
    @param level Nome o valore del livello (default: FATTURE_LOG_LEVEL).
    """
    level = level or LOG_LEVEL
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


def load_template_config(path: str | Path) -> TemplateConfig:
    """
    @brief Legge un TemplateConfig da file JSON.
    @throws pydantic.ValidationError se il JSON non rispetta lo schema template.
    """
    return TemplateConfig.model_validate_json(Path(path).read_text(encoding="utf-8"))


def load_matching_config(path: str | Path) -> MatchingTolerances:
    """@brief Legge tolleranze, soglia e pesi di matching da file JSON."""
    return MatchingTolerances.model_validate_json(Path(path).read_text(encoding="utf-8"))


def load_regex_presets(path: str | Path) -> RegexPresets:
    """
    @brief Legge i pattern preset per campo da file JSON.
    @details Formato: {"license_plate": [{"label": "...", "regex": "...", "regex_group": 1}], ...}
    """
    return TypeAdapter(RegexPresets).validate_json(Path(path).read_text(encoding="utf-8"))

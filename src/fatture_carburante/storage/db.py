"""
@file db.py
@brief Connessione SQLite e inizializzazione schema.
@ingroup storage_module

@details
Centralizza la creazione della connessione e l'invocazione init_schema().
"""

from __future__ import annotations
import sqlite3
from pathlib import Path

from .repository import init_schema


def connect(db_path: str, check_same_thread: bool = True) -> sqlite3.Connection:
    """
    @brief Apre una connessione SQLite e garantisce schema pronto.
    @param db_path Path al file SQLite (':memory:' per database volatile).
    @param check_same_thread False quando la connessione passa tra thread (API).
    @return sqlite3.Connection con row_factory impostata e foreign key attive.

    @note Crea automaticamente la directory padre se non esiste.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    init_schema(conn)
    return conn

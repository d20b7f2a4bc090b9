import pytest

from fatture_carburante.storage.db import connect
from fatture_carburante.storage.repository import SqliteRecordStore

FATTURA_XML = """<?xml version="1.0" encoding="UTF-8"?>
<p:FatturaElettronica versione="FPR12" xmlns:p="http://ivaservizi.agenziaentrate.gov.it/docs/xsd/fatture/v1.2">
  <FatturaElettronicaHeader>
    <CedentePrestatore>
      <DatiAnagrafici>
        <IdFiscaleIVA>
          <IdPaese>IT</IdPaese>
          <IdCodice>01234567890</IdCodice>
        </IdFiscaleIVA>
        <Anagrafica>
          <Denominazione>Carburanti Italia SpA</Denominazione>
        </Anagrafica>
      </DatiAnagrafici>
    </CedentePrestatore>
  </FatturaElettronicaHeader>
  <FatturaElettronicaBody>
    <DatiGenerali>
      <DatiGeneraliDocumento>
        <TipoDocumento>TD01</TipoDocumento>
        <Data>2024-03-31</Data>
        <Numero>FT-2024-001</Numero>
      </DatiGeneraliDocumento>
    </DatiGenerali>
    <DatiBeniServizi>
      <DettaglioLinee>
        <NumeroLinea>1</NumeroLinea>
        <Descrizione>Gasolio autotrazione</Descrizione>
        <Quantita>45.20</Quantita>
        <PrezzoUnitario>1.60</PrezzoUnitario>
        <DataInizioPeriodo>2024-03-10</DataInizioPeriodo>
        <PrezzoTotale>72.30</PrezzoTotale>
        <AltriDatiGestionali>
          <TipoDato>TARGA</TipoDato>
          <RiferimentoTesto>AB123CD</RiferimentoTesto>
        </AltriDatiGestionali>
      </DettaglioLinee>
      <DettaglioLinee>
        <NumeroLinea>2</NumeroLinea>
        <Descrizione>Benzina senza piombo</Descrizione>
        <Quantita>30.00</Quantita>
        <PrezzoUnitario>1.85</PrezzoUnitario>
        <DataInizioPeriodo>2024-03-11</DataInizioPeriodo>
        <PrezzoTotale>55.50</PrezzoTotale>
        <AltriDatiGestionali>
          <TipoDato>TARGA</TipoDato>
          <RiferimentoTesto>ef 456 gh</RiferimentoTesto>
        </AltriDatiGestionali>
      </DettaglioLinee>
      <DettaglioLinee>
        <NumeroLinea>3</NumeroLinea>
        <Descrizione>Gasolio</Descrizione>
        <Quantita>20.00</Quantita>
        <DataInizioPeriodo>2024-03-12</DataInizioPeriodo>
        <PrezzoTotale>33.00</PrezzoTotale>
        <AltriDatiGestionali>
          <TipoDato>TARGA</TipoDato>
          <RiferimentoTesto>ZZ999ZZ</RiferimentoTesto>
        </AltriDatiGestionali>
      </DettaglioLinee>
      <DatiRiepilogo>
        <AliquotaIVA>22.00</AliquotaIVA>
        <ImponibileImporto>160.80</ImponibileImporto>
      </DatiRiepilogo>
    </DatiBeniServizi>
  </FatturaElettronicaBody>
</p:FatturaElettronica>
"""

# fattura senza AltriDatiGestionali: targa e data solo nella descrizione
FATTURA_DESCRIZIONE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<FatturaElettronica>
  <FatturaElettronicaHeader>
    <CedentePrestatore>
      <DatiAnagrafici>
        <IdFiscaleIVA><IdPaese>IT</IdPaese><IdCodice>00743110157</IdCodice></IdFiscaleIVA>
      </DatiAnagrafici>
    </CedentePrestatore>
  </FatturaElettronicaHeader>
  <FatturaElettronicaBody>
    <DatiGenerali>
      <DatiGeneraliDocumento><Data>2024-04-30</Data><Numero>E-77</Numero></DatiGeneraliDocumento>
    </DatiGenerali>
    <DatiBeniServizi>
      <DettaglioLinee>
        <Descrizione>DIESEL rifornimento in data 15.04.24 carta 7033167200254244329-GA727GS</Descrizione>
        <Quantita>50,00</Quantita>
        <PrezzoTotale>88,40</PrezzoTotale>
      </DettaglioLinee>
    </DatiBeniServizi>
  </FatturaElettronicaBody>
</FatturaElettronica>
"""


@pytest.fixture
def fattura_xml():
    return FATTURA_XML


@pytest.fixture
def fattura_descrizione_xml():
    return FATTURA_DESCRIZIONE_XML


@pytest.fixture
def conn(tmp_path):
    c = connect(str(tmp_path / "t.sqlite"))
    yield c
    c.close()


@pytest.fixture
def store(conn):
    return SqliteRecordStore(conn)

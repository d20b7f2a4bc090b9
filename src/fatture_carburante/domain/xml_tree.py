"""
@file xml_tree.py
@brief Albero generico del documento XML e navigazione per percorsi puntati.
@ingroup domain_module

@details
Il parsing usa expat senza elaborazione dei namespace: i nomi qualificati
(es. 'p:FatturaElettronica') restano letterali, così i percorsi dei template
possono citare il prefisso usato dal fornitore.

Un percorso è una sequenza di segmenti separati da '.':
- 'Nome'      figli con quel nome (lista se ripetuti)
- 'Nome[i]'   i-esimo figlio con quel nome
- '@attr'     valore dell'attributo (accettato anche '@_attr')
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Union
from xml.parsers import expat

from pydantic import BaseModel

DOCUMENT_NODE = "#document"

_INDEX_RE = re.compile(r"^(.+)\[(\d+)\]$")


class XmlParseError(ValueError):
    """@brief Documento XML vuoto o malformato."""


@dataclass
class XmlNode:
    """
    @brief Elemento XML: nome, attributi, testo (trim) e figli in ordine.
    """
    name: str
    attributes: dict[str, str] = field(default_factory=dict)
    text: str = ""
    children: list["XmlNode"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def child_nodes(self, name: str) -> list["XmlNode"]:
        return [c for c in self.children if c.name == name]

    def text_content(self) -> str:
        """@brief Testo del nodo e di tutti i discendenti, separato da spazi."""
        parts = [self.text] if self.text else []
        for c in self.children:
            t = c.text_content()
            if t:
                parts.append(t)
        return " ".join(parts)


NavResult = Union[XmlNode, list[XmlNode], str, None]


class _TreeBuilder:
    def __init__(self) -> None:
        self.document = XmlNode(DOCUMENT_NODE)
        self._stack: list[XmlNode] = [self.document]
        self._text: list[list[str]] = [[]]

    def start(self, name: str, attrs: dict[str, str]) -> None:
        node = XmlNode(name, dict(attrs))
        self._stack[-1].children.append(node)
        self._stack.append(node)
        self._text.append([])

    def end(self, name: str) -> None:
        node = self._stack.pop()
        node.text = "".join(self._text.pop()).strip()

    def data(self, chunk: str) -> None:
        self._text[-1].append(chunk)


def parse_xml(data: bytes | str) -> XmlNode:
    """
    @brief Converte il documento in un albero XmlNode.
    @param data Contenuto XML (bytes UTF-8 o stringa).
    @return Nodo documento sintetico il cui figlio è l'elemento radice.

    @throws XmlParseError Se il contenuto è vuoto o non è XML ben formato.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    if not data or not data.strip():
        raise XmlParseError("documento vuoto")

    builder = _TreeBuilder()
    parser = expat.ParserCreate()
    parser.buffer_text = True
    parser.StartElementHandler = builder.start
    parser.EndElementHandler = builder.end
    parser.CharacterDataHandler = builder.data
    try:
        parser.Parse(data, True)
    except expat.ExpatError as e:
        raise XmlParseError(str(e)) from e
    return builder.document


def _step(current: NavResult, segment: str) -> NavResult:
    # una lista di fratelli senza indice non è navigabile oltre
    if not isinstance(current, XmlNode):
        return None

    if segment.startswith("@"):
        return current.attributes.get(segment[2:] if segment.startswith("@_") else segment[1:])

    m = _INDEX_RE.match(segment)
    name = m.group(1) if m else segment
    matches = current.child_nodes(name)
    if not matches:
        return None
    if m:
        if len(matches) == 1:
            return matches[0]
        idx = int(m.group(2))
        return matches[idx] if idx < len(matches) else None
    return matches[0] if len(matches) == 1 else matches


def navigate(node: NavResult, path: Optional[str]) -> NavResult:
    """
    @brief Segue un percorso puntato a partire da un nodo.
    @param node Nodo di partenza (tipicamente documento o riga).
    @param path Percorso ('A.B[0].C', '@attr'); vuoto = nodo stesso.
    @return XmlNode, lista di XmlNode (fratelli omonimi), stringa (attributo) o None.
    """
    if not path:
        return node
    current = node
    for segment in path.split("."):
        if current is None:
            return None
        current = _step(current, segment)
    return current


def as_sequence(result: NavResult) -> list[XmlNode]:
    """@brief Normalizza un risultato di navigazione in lista di nodi."""
    if result is None:
        return []
    if isinstance(result, list):
        return result
    if isinstance(result, XmlNode):
        return [result]
    return []


def scalar_text(result: NavResult) -> Optional[str]:
    """
    @brief Testo 'scalare' di un risultato di navigazione.
    @details
    - stringa (attributo): restituita così com'è
    - nodo con testo: il testo
    - nodo senza testo con un solo figlio foglia: testo del figlio
    - liste e nodi strutturati: None
    """
    if result is None:
        return None
    if isinstance(result, str):
        return result
    if isinstance(result, list):
        return None
    if result.text:
        return result.text
    if len(result.children) == 1 and result.children[0].is_leaf:
        return result.children[0].text or None
    return None


def full_text(result: NavResult) -> str:
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, list):
        return " ".join(n.text_content() for n in result)
    return result.text_content()


class TreeEntry(BaseModel):
    """@brief Nodo semplificato per la visualizzazione ad albero (UI/CLI)."""
    name: str
    path: str
    attributes: Optional[dict[str, str]] = None
    text: Optional[str] = None
    count: Optional[int] = None
    children: Optional[list["TreeEntry"]] = None


TreeEntry.model_rebuild()


def tree_structure(node: XmlNode, parent_path: str = "") -> list[TreeEntry]:
    """
    @brief Struttura ad albero con i percorsi usabili nei template.
    @details Per gli elementi ripetuti mostra il primo come rappresentativo,
             con percorso 'Nome[0]' e count pari al numero di fratelli.
    """
    entries: list[TreeEntry] = []
    seen: set[str] = set()
    for child in node.children:
        if child.name in seen:
            continue
        seen.add(child.name)
        siblings = node.child_nodes(child.name)
        path = f"{parent_path}.{child.name}" if parent_path else child.name
        count = None
        if len(siblings) > 1:
            path = f"{path}[0]"
            count = len(siblings)
        entries.append(
            TreeEntry(
                name=child.name,
                path=path,
                attributes=child.attributes or None,
                text=child.text or None,
                count=count,
                children=tree_structure(child, path) if child.children else None,
            )
        )
    return entries

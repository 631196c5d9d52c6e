#!/usr/bin/env python3
"""
In-memory view of an Office Open XML spreadsheet archive.
Parts are kept as raw bytes; XML trees are parsed lazily for the parts a run
actually reads or mutates, and untouched parts are re-emitted byte-for-byte.
"""

import io
import logging
import zipfile
import zlib
from typing import Dict, List, Optional

from lxml import etree

from src.errors import ArchiveError, StructureError

WORKBOOK_PART = 'xl/workbook.xml'
WORKBOOK_RELS_PART = 'xl/_rels/workbook.xml.rels'
SHARED_STRINGS_PART = 'xl/sharedStrings.xml'

NS_REL = 'http://schemas.openxmlformats.org/officeDocument/2006/relationships'
NS_PKG_REL = 'http://schemas.openxmlformats.org/package/2006/relationships'

_PARSER = etree.XMLParser(resolve_entities=False, huge_tree=True, remove_blank_text=False)

logger = logging.getLogger(__name__)


def parse_xml(data: bytes, part_name: str = '') -> etree._Element:
    """Parse part bytes into an element tree, mapping syntax errors to StructureError"""
    try:
        return etree.fromstring(data, _PARSER)
    except etree.XMLSyntaxError as e:
        raise StructureError(f"Malformed XML in part {part_name}: {e}")


def serialize_xml(root: etree._Element) -> bytes:
    """Serialize a part root keeping its namespace prefixes and declaration"""
    standalone = root.getroottree().docinfo.standalone
    if standalone is None:
        return etree.tostring(root, xml_declaration=True, encoding='UTF-8')
    return etree.tostring(root, xml_declaration=True, encoding='UTF-8', standalone=standalone)


def main_namespace(root: etree._Element) -> str:
    """Namespace of the root element (transitional or strict SpreadsheetML)"""
    return etree.QName(root).namespace or ''


class Container:
    """Named parts of one spreadsheet archive"""

    def __init__(self, parts: Dict[str, bytes], infos: Dict[str, zipfile.ZipInfo], source: bytes):
        self.parts = parts
        self.infos = infos
        self.source = source
        self._trees: Dict[str, etree._Element] = {}

    @property
    def part_names(self) -> List[str]:
        return list(self.parts.keys())

    def find_part(self, path: str) -> Optional[bytes]:
        """Return the raw bytes of a part, or None when absent"""
        return self.parts.get(path.lstrip('/'))

    def has_part(self, path: str) -> bool:
        return path.lstrip('/') in self.parts

    def xml(self, path: str) -> etree._Element:
        """Parsed tree of a part, cached for the lifetime of the container"""
        path = path.lstrip('/')
        if path not in self._trees:
            data = self.find_part(path)
            if data is None:
                raise StructureError(f"Part not found: {path}")
            self._trees[path] = parse_xml(data, path)
        return self._trees[path]

    def fresh_xml(self, path: str) -> etree._Element:
        """Independent parsed copy of a part for mutation"""
        data = self.find_part(path)
        if data is None:
            raise StructureError(f"Part not found: {path}")
        return parse_xml(data, path)

    @property
    def workbook(self) -> etree._Element:
        return self.xml(WORKBOOK_PART)

    def workbook_relationships(self) -> Dict[str, str]:
        """Map relationship id -> part path from xl/_rels/workbook.xml.rels"""
        if not self.has_part(WORKBOOK_RELS_PART):
            return {}
        rels = {}
        for rel in self.xml(WORKBOOK_RELS_PART).iter(f'{{{NS_PKG_REL}}}Relationship'):
            rel_id = rel.get('Id')
            target = rel.get('Target')
            if not rel_id or not target or rel.get('TargetMode') == 'External':
                continue
            rels[rel_id] = _resolve_target('xl', target)
        return rels


def _resolve_target(base_dir: str, target: str) -> str:
    if target.startswith('/'):
        return target.lstrip('/')
    segments = base_dir.split('/')
    for segment in target.split('/'):
        if segment == '..':
            if segments:
                segments.pop()
        elif segment and segment != '.':
            segments.append(segment)
    return '/'.join(segments)


def open_container(data: bytes, path: Optional[str] = None) -> Container:
    """Open archive bytes; raises ArchiveError or StructureError"""
    if not data:
        raise ArchiveError("File is empty", path)

    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            parts: Dict[str, bytes] = {}
            infos: Dict[str, zipfile.ZipInfo] = {}
            for info in archive.infolist():
                if info.is_dir():
                    continue
                parts[info.filename] = archive.read(info)
                infos[info.filename] = info
    except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError) as e:
        raise ArchiveError(f"Not a valid spreadsheet archive: {e}", path)

    container = Container(parts, infos, data)

    if not container.has_part(WORKBOOK_PART):
        raise StructureError("Missing xl/workbook.xml", path)

    ns = main_namespace(container.workbook)
    if not container.workbook.findall(f'.//{{{ns}}}sheets/{{{ns}}}sheet'):
        raise StructureError("Workbook declares no sheets", path)

    logger.debug(f"Opened archive with {len(parts)} parts")
    return container


def repack(container: Container, mutated_parts: Dict[str, bytes]) -> bytes:
    """Re-emit every part, replacing the ones present in mutated_parts"""
    if not mutated_parts:
        return container.source

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
        for name, data in container.parts.items():
            info = container.infos[name]
            if name in mutated_parts:
                replacement = zipfile.ZipInfo(name, date_time=info.date_time)
                replacement.compress_type = zipfile.ZIP_DEFLATED
                replacement.external_attr = info.external_attr
                archive.writestr(replacement, mutated_parts[name])
            else:
                archive.writestr(info, data)
        for name, data in mutated_parts.items():
            if name not in container.parts:
                archive.writestr(name, data)
    return buffer.getvalue()

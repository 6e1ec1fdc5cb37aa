"""WebDAV and CalDAV XML elements.

Servers in the wild disagree on namespace prefixes and sometimes on the
namespaces themselves, so every lookup here matches on the local tag name
first by its proper namespace and then by the bare local name.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from urllib.parse import ParseResult as URL, unquote, urlparse

from lxml import etree

from .internal import HTTPError

# WebDAV namespace
NAMESPACE = "DAV:"
CALDAV_NAMESPACE = "urn:ietf:params:xml:ns:caldav"
NSMAP = {"D": NAMESPACE, "C": CALDAV_NAMESPACE}

# Common XML names
RESOURCE_TYPE = "{DAV:}resourcetype"
DISPLAY_NAME = "{DAV:}displayname"
GET_ETAG = "{DAV:}getetag"
COLLECTION = "{DAV:}collection"
CURRENT_USER_PRINCIPAL = "{DAV:}current-user-principal"
CALENDAR_HOME_SET = f"{{{CALDAV_NAMESPACE}}}calendar-home-set"
CALENDAR_DATA = f"{{{CALDAV_NAMESPACE}}}calendar-data"

_PARSER = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)


def _local(tag: str) -> str:
    # Recovered documents keep undeclared prefixes in the tag ("C:href")
    return tag.rpartition("}")[2].rpartition(":")[2]


def local_name(element: etree._Element) -> str:
    """Return the tag of an element without its namespace."""
    if not isinstance(element.tag, str):
        # Comments and processing instructions
        return ""
    return _local(element.tag)


def matches(element: etree._Element, tag: str) -> bool:
    """Check an element against a Clark-notation tag, ignoring the namespace
    when the exact tag is not used."""
    if element.tag == tag:
        return True
    return local_name(element) == _local(tag)


def children(element: etree._Element, tag: str) -> Iterator[etree._Element]:
    """Iterate over direct children matching ``tag``."""
    for child in element:
        if matches(child, tag):
            yield child


def child(element: etree._Element, tag: str) -> etree._Element | None:
    """Return the first direct child matching ``tag``."""
    return next(children(element, tag), None)


def descendants(element: etree._Element, tag: str) -> Iterator[etree._Element]:
    """Iterate over all descendants matching ``tag``.

    Exact namespace matches come first, then local-name matches, so that a
    well-behaved server's answer wins over a stray element with the same
    name in another namespace.
    """
    exact = [el for el in element.iter() if el is not element and el.tag == tag]
    yield from exact
    for el in element.iter():
        if el is element or el.tag == tag:
            continue
        if matches(el, tag):
            yield el


def parse_xml(content: bytes | str) -> etree._Element | None:
    """Parse a response body, recovering from minor breakage.

    Returns None when nothing resembling XML could be read.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    if not content.strip():
        return None
    try:
        return etree.fromstring(content, _PARSER)
    except etree.XMLSyntaxError:
        return None


def element_text(element: etree._Element | None) -> str:
    """Return the stripped text content of an element."""
    if element is None:
        return ""
    return "".join(element.itertext()).strip()


@dataclass
class Status:
    """HTTP status for WebDAV responses."""

    code: int
    text: str = ""

    @staticmethod
    def from_string(s: str) -> Status:
        """Unmarshal status from text."""
        if not s:
            return Status(code=0)

        parts = s.strip().split(" ", 2)
        if len(parts) < 2:
            raise ValueError(f"webdav: invalid HTTP status {s!r}: expected 3 fields")

        try:
            code = int(parts[1])
        except ValueError as e:
            raise ValueError(
                f"webdav: invalid HTTP status {s!r}: failed to parse code: {e}"
            ) from e

        return Status(code=code, text=parts[2] if len(parts) > 2 else "")

    def err(self) -> Exception | None:
        """Convert status to error if not OK."""
        if self.code == 0 or self.code // 100 == 2:
            return None
        return HTTPError(self.code)


@dataclass
class Href:
    """WebDAV href element."""

    url: URL

    def __str__(self) -> str:
        return self.url.geturl()

    @staticmethod
    def from_string(s: str) -> Href:
        """Parse href from string."""
        return Href(url=urlparse(s.strip()))

    @property
    def path(self) -> str:
        return unquote(self.url.path)


@dataclass
class Prop:
    """WebDAV prop element."""

    raw: list[etree._Element] = field(default_factory=list)

    def to_xml(self) -> etree._Element:
        """Convert to XML element."""
        prop = etree.Element(f"{{{NAMESPACE}}}prop", nsmap=NSMAP)
        for elem in self.raw:
            prop.append(elem)
        return prop

    @staticmethod
    def from_xml(element: etree._Element) -> Prop:
        """Parse from XML element."""
        return Prop(raw=[el for el in element if isinstance(el.tag, str)])

    @staticmethod
    def of(*tags: str) -> Prop:
        """Build an empty-valued prop request for the given tags."""
        return Prop(raw=[etree.Element(tag, nsmap=NSMAP) for tag in tags])

    def get(self, tag: str) -> etree._Element | None:
        """Get a property by tag name."""
        for elem in self.raw:
            if elem.tag == tag:
                return elem
        for elem in self.raw:
            if matches(elem, tag):
                return elem
        return None


@dataclass
class PropStat:
    """WebDAV propstat element."""

    prop: Prop
    status: Status
    response_description: str = ""

    @staticmethod
    def from_xml(element: etree._Element) -> PropStat:
        """Parse from XML element."""
        prop_el = child(element, f"{{{NAMESPACE}}}prop")
        prop = Prop.from_xml(prop_el) if prop_el is not None else Prop()

        status_el = child(element, f"{{{NAMESPACE}}}status")
        status = Status.from_string(element_text(status_el))

        desc = element_text(child(element, f"{{{NAMESPACE}}}responsedescription"))

        return PropStat(prop=prop, status=status, response_description=desc)


@dataclass
class Response:
    """WebDAV response element."""

    hrefs: list[Href] = field(default_factory=list)
    propstats: list[PropStat] = field(default_factory=list)
    response_description: str = ""
    status: Status | None = None

    @staticmethod
    def from_xml(element: etree._Element) -> Response:
        """Parse from XML element."""
        hrefs = []
        for href_el in children(element, f"{{{NAMESPACE}}}href"):
            text = element_text(href_el)
            if text:
                hrefs.append(Href.from_string(text))

        propstats = []
        for ps_el in children(element, f"{{{NAMESPACE}}}propstat"):
            propstats.append(PropStat.from_xml(ps_el))

        desc = element_text(child(element, f"{{{NAMESPACE}}}responsedescription"))

        status_el = child(element, f"{{{NAMESPACE}}}status")
        status = None
        if status_el is not None and element_text(status_el):
            status = Status.from_string(element_text(status_el))

        return Response(
            hrefs=hrefs,
            propstats=propstats,
            response_description=desc,
            status=status,
        )

    def href(self) -> Href:
        """Get the single href of this response."""
        if len(self.hrefs) != 1:
            raise ValueError(
                f"webdav: malformed response: expected exactly one href element, got {len(self.hrefs)}"
            )
        return self.hrefs[0]

    def get_prop(self, tag: str) -> etree._Element | None:
        """Find a property among the successful propstats."""
        for propstat in self.propstats:
            if propstat.status.err() is not None:
                continue
            elem = propstat.prop.get(tag)
            if elem is not None:
                return elem
        return None


@dataclass
class PropFind:
    """WebDAV PROPFIND request."""

    prop: Prop | None = None

    def to_xml(self) -> etree._Element:
        """Convert to XML element."""
        pf = etree.Element(f"{{{NAMESPACE}}}propfind", nsmap=NSMAP)

        if self.prop:
            pf.append(self.prop.to_xml())

        return pf


@dataclass
class ResourceType:
    """WebDAV resourcetype property."""

    types: list[str] = field(default_factory=list)

    def is_type(self, tag: str) -> bool:
        """Check if resource has a specific type."""
        name = _local(tag)
        return tag in self.types or any(_local(t) == name for t in self.types)

    @staticmethod
    def from_xml(element: etree._Element) -> ResourceType:
        """Parse from XML element."""
        types = [child.tag for child in element if isinstance(child.tag, str)]
        return ResourceType(types=types)


def find_href(root: etree._Element, tag: str) -> str | None:
    """Find the href nested in a property such as current-user-principal.

    Returns the first non-empty href found under any element matching
    ``tag``, or None.
    """
    for prop in descendants(root, tag):
        for href_el in descendants(prop, f"{{{NAMESPACE}}}href"):
            text = element_text(href_el)
            if text:
                return text
    return None


def error_message(root: etree._Element) -> str | None:
    """Extract the human-readable message from a DAV:error body."""
    if not matches(root, f"{{{NAMESPACE}}}error"):
        candidates = list(descendants(root, f"{{{NAMESPACE}}}error"))
        if not candidates:
            return None
        root = candidates[0]
    message = next(descendants(root, f"{{{NAMESPACE}}}message"), None)
    text = element_text(message)
    return text or None

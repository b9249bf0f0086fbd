import re
from datetime import datetime
from datetime import timezone
from typing import Iterable
from typing import Optional
from typing import Tuple

from lxml import etree

from smpclient.datamodel import Certificate
from smpclient.datamodel import Extension
from smpclient.datamodel import IdScheme
from smpclient.datamodel import Identifier
from smpclient.exception import UnparsableResponseError

DATE_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})(Z|[+-]\d{2}:\d{2})?$")
FRACTION_PATTERN = re.compile(r"\.(\d{1,6})\d*")


def qname(namespace: str, tag: str) -> str:
    return f"{{{namespace}}}{tag}"


def local_name(elem) -> str:
    return etree.QName(elem).localname


def find_child(elem, namespace: str, tag: str, required: Optional[bool] = False):
    _child = elem.find(qname(namespace, tag))
    if _child is None and required:
        raise UnparsableResponseError(f"{local_name(elem)} has no {tag}")
    return _child


def find_children(elem, namespace: str, tag: str) -> list:
    return elem.findall(qname(namespace, tag))


def element_text(elem) -> Optional[str]:
    if elem is None:
        return None
    _text = (elem.text or "").strip()
    return _text or None


def child_text(elem, namespace: str, tag: str, required: Optional[bool] = False) -> Optional[str]:
    _text = element_text(find_child(elem, namespace, tag, required))
    if _text is None and required:
        raise UnparsableResponseError(f"{local_name(elem)} has an empty {tag}")
    return _text


def identifier(elem, scheme_attribute: str = "scheme",
               case_sensitive_schemes: Iterable[str] = ()) -> Identifier:
    """
    Build an identifier from an element whose text is the value and where the scheme is
    held in an attribute.
    """
    _value = element_text(elem)
    if _value is None:
        raise UnparsableResponseError(f"Empty identifier in {local_name(elem)}")
    _scheme = elem.get(scheme_attribute)
    if _scheme:
        return Identifier(_value, IdScheme(_scheme, _scheme in case_sensitive_schemes))
    return Identifier(_value)


def parse_datetime(text: Optional[str]) -> Optional[datetime]:
    """
    Parse a xs:date or xs:dateTime value. Values without time zone are taken to be UTC.
    """
    if not text:
        return None

    _text = text.strip()
    _match = DATE_PATTERN.match(_text)
    if _match:
        _text = f"{_match.group(1)}T00:00:00{_match.group(2) or ''}"
    if _text.endswith("Z"):
        _text = _text[:-1] + "+00:00"
    _text = FRACTION_PATTERN.sub(lambda m: "." + m.group(1).ljust(6, "0"), _text)

    try:
        _when = datetime.fromisoformat(_text)
    except ValueError as err:
        raise UnparsableResponseError(f"Not a date: '{text}'") from err

    if _when.tzinfo is None:
        _when = _when.replace(tzinfo=timezone.utc)
    return _when


def parse_bool(text: Optional[str]) -> Optional[bool]:
    if text is None:
        return None
    if text in ("true", "1"):
        return True
    if text in ("false", "0"):
        return False
    raise UnparsableResponseError(f"Not a boolean: '{text}'")


def load_certificate(text: Optional[str], **kwargs) -> Certificate:
    if not text:
        raise UnparsableResponseError("Empty certificate")
    try:
        return Certificate.from_base64(text, **kwargs)
    except ValueError as err:
        raise UnparsableResponseError(f"Could not load certificate: {err}") from err


def extensions(elements: Iterable) -> Tuple[Extension, ...]:
    """Serialize extension elements as they are."""
    return tuple(
        Extension(name=local_name(el), namespace=etree.QName(el).namespace,
                  xml=etree.tostring(el, encoding="unicode", with_tail=False))
        for el in elements)

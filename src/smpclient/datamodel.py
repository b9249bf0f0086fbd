"""
The common model every SMP response is normalized into, whatever schema version the
publisher speaks. All entities are immutable and built once by a result processor.
"""
import base64
from dataclasses import dataclass
from dataclasses import replace
from datetime import datetime
from datetime import timezone
from typing import FrozenSet
from typing import Optional
from typing import Tuple
from typing import Union
from urllib.parse import quote

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding

SCHEME_SEPARATOR = "::"


@dataclass(frozen=True, eq=False)
class IdScheme:
    """
    The scheme an identifier belongs to. The scheme decides whether identifier values are
    compared case sensitively or not.
    """
    scheme_id: str
    case_sensitive: bool = False

    def __post_init__(self):
        if not self.scheme_id:
            raise ValueError("Scheme identifier must not be empty")

    def __eq__(self, other):
        if not isinstance(other, IdScheme):
            return NotImplemented
        return self.scheme_id == other.scheme_id

    def __hash__(self):
        return hash(self.scheme_id)

    def __str__(self):
        return self.scheme_id


@dataclass(frozen=True, eq=False)
class Identifier:
    """
    A value, optionally qualified by the scheme it belongs to.

    :param value: The identifier value, never empty
    :param scheme: An :py:class:`IdScheme` or a scheme identifier
    """
    value: str
    scheme: Optional[IdScheme] = None

    def __post_init__(self):
        if not self.value:
            raise ValueError("Identifier value must not be empty")
        if isinstance(self.scheme, str):
            object.__setattr__(self, "scheme", IdScheme(self.scheme) if self.scheme else None)

    @classmethod
    def parse(cls, text: str, case_sensitive: bool = False):
        """
        Parse the canonical string form, "scheme::value" or just "value".
        """
        _index = text.find(SCHEME_SEPARATOR)
        if _index > 0:
            return cls(text[_index + len(SCHEME_SEPARATOR):],
                       IdScheme(text[:_index], case_sensitive))
        return cls(text)

    @property
    def scheme_id(self) -> Optional[str]:
        if self.scheme is None:
            return None
        return self.scheme.scheme_id

    @property
    def case_sensitive(self) -> bool:
        return self.scheme is not None and self.scheme.case_sensitive

    @property
    def normalized_value(self) -> str:
        if self.case_sensitive:
            return self.value
        return self.value.lower()

    @property
    def canonical(self) -> str:
        if self.scheme is None:
            return self.normalized_value
        return f"{self.scheme.scheme_id}{SCHEME_SEPARATOR}{self.normalized_value}"

    @property
    def url_encoded(self) -> str:
        """The canonical form percent encoded as one URL path segment."""
        return quote(self.canonical, safe="")

    def _key(self) -> tuple:
        return self.scheme_id, self.normalized_value

    def __eq__(self, other):
        if not isinstance(other, Identifier):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __str__(self):
        return self.canonical


@dataclass(frozen=True, eq=False)
class ProcessIdentifier(Identifier):
    """An explicit process identifier."""

    @property
    def is_no_process(self) -> bool:
        return False


class NoProcess(object):
    """
    The reserved marker for "no specific process". Equal to every other NoProcess and to
    nothing else.
    """
    __slots__ = ()

    @property
    def is_no_process(self) -> bool:
        return True

    def __eq__(self, other):
        return isinstance(other, NoProcess)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(NoProcess)

    def __repr__(self):
        return "NO_PROCESS"

    def __str__(self):
        return "NO_PROCESS"


NO_PROCESS = NoProcess()

# Wire representations of the no process marker, as (scheme, value)
NO_PROCESS_VALUES = {
    ("bdx-procid-transport", "bdx:noprocess"),
    ("busdox-procid-transport", "busdox:noprocess"),
}

AnyProcessIdentifier = Union[ProcessIdentifier, NoProcess]


def process_identifier(value: str, scheme: Optional[str] = None,
                       case_sensitive: bool = False) -> AnyProcessIdentifier:
    """
    Build a process identifier, mapping the well known no process values to the marker.
    """
    if scheme and (scheme, value.lower()) in NO_PROCESS_VALUES:
        return NO_PROCESS
    if scheme:
        return ProcessIdentifier(value, IdScheme(scheme, case_sensitive))
    return ProcessIdentifier(value)


@dataclass(frozen=True)
class Extension:
    """A network specific XML extension, carried along untouched."""
    name: str
    xml: str
    namespace: Optional[str] = None


def _as_utc(when: datetime) -> datetime:
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when


def _in_window(when: datetime, activation: Optional[datetime],
               expiration: Optional[datetime]) -> bool:
    when = _as_utc(when)
    if activation is not None and when < _as_utc(activation):
        return False
    if expiration is not None and when > _as_utc(expiration):
        return False
    return True


@dataclass(frozen=True)
class Certificate:
    """
    An X.509 certificate together with the metadata the publisher attached to it.

    :param x509: The DER encoded certificate
    :param usage: What the certificate is meant to be used for. None means any usage.
    """
    x509: bytes
    usage: Optional[str] = None
    activation: Optional[datetime] = None
    expiration: Optional[datetime] = None
    description: Optional[str] = None
    extensions: Tuple[Extension, ...] = ()

    @classmethod
    def from_x509(cls, certificate: x509.Certificate, **kwargs):
        return cls(certificate.public_bytes(Encoding.DER), **kwargs)

    @classmethod
    def from_base64(cls, text: Union[str, bytes], **kwargs):
        """
        Load a base64 encoded DER certificate, as found in XML documents. Raises ValueError
        if the content is not a certificate.
        """
        if isinstance(text, str):
            text = text.encode("ascii")
        _der = base64.b64decode(b"".join(text.split()), validate=True)
        x509.load_der_x509_certificate(_der)
        return cls(_der, **kwargs)

    def certificate(self) -> x509.Certificate:
        return x509.load_der_x509_certificate(self.x509)

    @property
    def subject(self) -> str:
        return self.certificate().subject.rfc4514_string()

    @property
    def issuer(self) -> str:
        return self.certificate().issuer.rfc4514_string()

    @property
    def serial_number(self) -> int:
        return self.certificate().serial_number

    def public_key(self):
        return self.certificate().public_key()

    def is_valid(self, at: Optional[datetime] = None) -> bool:
        """
        Checks both the validity window given by the publisher and the one in the
        certificate itself.
        """
        at = at or datetime.now(timezone.utc)
        if not _in_window(at, self.activation, self.expiration):
            return False
        _cert = self.certificate()
        return _in_window(at, _cert.not_valid_before_utc, _cert.not_valid_after_utc)


@dataclass(frozen=True)
class EndpointInfo:
    transport_profile: str
    url: str
    activation: Optional[datetime] = None
    expiration: Optional[datetime] = None
    description: Optional[str] = None
    contact_info: Optional[str] = None
    certificates: Tuple[Certificate, ...] = ()
    extensions: Tuple[Extension, ...] = ()
    business_level_signature_required: Optional[bool] = None
    minimum_authentication_level: Optional[str] = None
    technical_information_url: Optional[str] = None

    def is_active(self, at: Optional[datetime] = None) -> bool:
        return _in_window(at or datetime.now(timezone.utc), self.activation, self.expiration)

    def certificates_for(self, usage: str) -> Tuple[Certificate, ...]:
        """Certificates meant for the given usage, including those without usage."""
        return tuple(c for c in self.certificates if c.usage is None or c.usage == usage)


@dataclass(frozen=True)
class ProcessInfo:
    """
    A process and the roles it applies to. Empty roles means that the process applies
    regardless of role.
    """
    process_id: AnyProcessIdentifier
    roles: FrozenSet[Identifier] = frozenset()
    extensions: Tuple[Extension, ...] = ()

    def __post_init__(self):
        if not isinstance(self.roles, frozenset):
            object.__setattr__(self, "roles", frozenset(self.roles))

    def supports(self, process_id: AnyProcessIdentifier,
                 role: Optional[Identifier] = None) -> bool:
        if process_id != self.process_id:
            return False
        return role is None or not self.roles or role in self.roles


@dataclass(frozen=True)
class Redirection:
    """
    The metadata is published by another SMP.

    :param new_url: Where to continue the query
    :param new_publisher_certificate: The certificate the other SMP signs with
    :param publisher_subject_unique_id: The v1 CertificateUID of the other SMP
    """
    new_url: str
    new_publisher_certificate: Optional[Certificate] = None
    publisher_subject_unique_id: Optional[str] = None
    extensions: Tuple[Extension, ...] = ()


@dataclass(frozen=True)
class ProcessGroup:
    """
    A set of processes sharing the same endpoints, or the same redirection.
    A group without processes applies to every process.
    """
    processes: Tuple[ProcessInfo, ...] = ()
    endpoints: Tuple[EndpointInfo, ...] = ()
    redirect: Optional[Redirection] = None
    extensions: Tuple[Extension, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "processes", tuple(self.processes))
        object.__setattr__(self, "endpoints", tuple(self.endpoints))
        if self.redirect is not None and self.endpoints:
            raise ValueError("A process group can have endpoints or a redirect, not both")

    @property
    def is_catch_all(self) -> bool:
        return not self.processes

    def matching_processes(self, process_id: AnyProcessIdentifier,
                           role: Optional[Identifier] = None) -> Tuple[ProcessInfo, ...]:
        return tuple(p for p in self.processes if p.supports(process_id, role))


@dataclass(frozen=True)
class ServiceMetadata:
    participant_id: Identifier
    service_id: Identifier
    process_groups: Tuple[ProcessGroup, ...] = ()
    signing_certificate: Optional[Certificate] = None
    extensions: Tuple[Extension, ...] = ()

    def with_signing_certificate(self, certificate: Optional[Certificate]):
        return replace(self, signing_certificate=certificate)

    @property
    def endpoints(self) -> Tuple[EndpointInfo, ...]:
        return tuple(ep for group in self.process_groups for ep in group.endpoints)


@dataclass(frozen=True)
class ServiceReference:
    """A service the participant supports, as listed in its service group."""
    service_id: Optional[Identifier] = None
    processes: Tuple[ProcessInfo, ...] = ()
    url: Optional[str] = None


@dataclass(frozen=True)
class ServiceGroup:
    participant_id: Identifier
    references: Tuple[ServiceReference, ...] = ()
    signing_certificate: Optional[Certificate] = None
    extensions: Tuple[Extension, ...] = ()

    def with_signing_certificate(self, certificate: Optional[Certificate]):
        return replace(self, signing_certificate=certificate)

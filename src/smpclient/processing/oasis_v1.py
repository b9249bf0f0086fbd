"""
Processor for the OASIS SMP 1.0 (bdxr-smp-1.0) documents. The PEPPOL (busdox) documents
share the structure and are handled by a subclass.
"""
import logging
from typing import Optional
from urllib.parse import unquote

from smpclient.datamodel import EndpointInfo
from smpclient.datamodel import Identifier
from smpclient.datamodel import ProcessGroup
from smpclient.datamodel import ProcessInfo
from smpclient.datamodel import Redirection
from smpclient.datamodel import ServiceGroup
from smpclient.datamodel import ServiceMetadata
from smpclient.datamodel import ServiceReference
from smpclient.datamodel import process_identifier
from smpclient.exception import InvalidRedirectionError
from smpclient.exception import UnknownResponseError
from smpclient.exception import UnparsableResponseError
from smpclient.processing import ResultProcessor
from smpclient.processing import SMPResult
from smpclient.processing.utils import child_text
from smpclient.processing.utils import element_text
from smpclient.processing.utils import extensions
from smpclient.processing.utils import find_child
from smpclient.processing.utils import find_children
from smpclient.processing.utils import identifier
from smpclient.processing.utils import load_certificate
from smpclient.processing.utils import local_name
from smpclient.processing.utils import parse_bool
from smpclient.processing.utils import parse_datetime

logger = logging.getLogger(__name__)

NAMESPACE = "http://docs.oasis-open.org/bdxr/ns/SMP/2016/05"

SERVICES_PATH = "/services/"


def service_from_reference(href: Optional[str]) -> Optional[Identifier]:
    """The service identifier is the last path segment of a service metadata reference."""
    if not href or SERVICES_PATH not in href:
        return None
    _segment = unquote(href.rsplit(SERVICES_PATH, 1)[1]).strip("/")
    if not _segment:
        return None
    return Identifier.parse(_segment)


class OASISv1ResultProcessor(ResultProcessor):
    namespace = NAMESPACE
    identifier_namespace = NAMESPACE
    namespaces = [NAMESPACE]
    case_sensitive_schemes = []

    def process(self, root) -> SMPResult:
        _tag = local_name(root)
        if _tag == "SignedServiceMetadata":
            return self.service_metadata(find_child(root, self.namespace, "ServiceMetadata", True))
        elif _tag == "ServiceMetadata":
            return self.service_metadata(root)
        elif _tag == "ServiceGroup":
            return self.service_group(root)

        raise UnknownResponseError(f"Unexpected document: {_tag}")

    def _extensions(self, elem):
        return extensions(find_children(elem, self.namespace, "Extension"))

    def _identifier(self, elem, tag: str) -> Identifier:
        _elem = find_child(elem, self.identifier_namespace, tag, True)
        return identifier(_elem, "scheme", self.case_sensitive_schemes)

    def _process_id(self, elem):
        _elem = find_child(elem, self.identifier_namespace, "ProcessIdentifier", True)
        _value = element_text(_elem)
        if _value is None:
            raise UnparsableResponseError("Empty process identifier")
        _scheme = _elem.get("scheme")
        return process_identifier(_value, _scheme, _scheme in self.case_sensitive_schemes)

    def service_metadata(self, elem):
        _redirect = find_child(elem, self.namespace, "Redirect")
        if _redirect is not None:
            return self.redirect(_redirect)

        _info = find_child(elem, self.namespace, "ServiceInformation", True)
        _list = find_child(_info, self.namespace, "ProcessList")
        if _list is None:
            _groups = ()
        else:
            _groups = tuple(
                self.process_group(p) for p in find_children(_list, self.namespace, "Process"))

        return ServiceMetadata(participant_id=self._identifier(_info, "ParticipantIdentifier"),
                               service_id=self._identifier(_info, "DocumentIdentifier"),
                               process_groups=_groups,
                               extensions=self._extensions(_info))

    def process_group(self, elem) -> ProcessGroup:
        # Every process has its own list of endpoints and no roles
        _info = ProcessInfo(self._process_id(elem), extensions=self._extensions(elem))
        _list = find_child(elem, self.namespace, "ServiceEndpointList")
        if _list is None:
            _endpoints = ()
        else:
            _endpoints = tuple(
                self.endpoint(e) for e in find_children(_list, self.namespace, "Endpoint"))
        return ProcessGroup(processes=(_info,), endpoints=_endpoints)

    def endpoint_url(self, elem) -> str:
        return child_text(elem, self.namespace, "EndpointURI", True)

    def endpoint(self, elem) -> EndpointInfo:
        _profile = elem.get("transportProfile")
        if not _profile:
            raise UnparsableResponseError("Endpoint without transport profile")

        _cert = child_text(elem, self.namespace, "Certificate")
        if _cert:
            _certificates = (load_certificate(_cert),)
        else:
            _certificates = ()

        _ns = self.namespace
        return EndpointInfo(
            transport_profile=_profile,
            url=self.endpoint_url(elem),
            activation=parse_datetime(child_text(elem, _ns, "ServiceActivationDate")),
            expiration=parse_datetime(child_text(elem, _ns, "ServiceExpirationDate")),
            description=child_text(elem, _ns, "ServiceDescription"),
            contact_info=child_text(elem, _ns, "TechnicalContactUrl"),
            certificates=_certificates,
            extensions=self._extensions(elem),
            business_level_signature_required=parse_bool(
                child_text(elem, _ns, "RequireBusinessLevelSignature")),
            minimum_authentication_level=child_text(elem, _ns, "MinimumAuthenticationLevel"),
            technical_information_url=child_text(elem, _ns, "TechnicalInformationUrl"))

    def redirect(self, elem) -> Redirection:
        _href = elem.get("href")
        if not _href:
            raise InvalidRedirectionError("Redirect without target URL")
        logger.debug(f"Redirect to {_href}")
        return Redirection(new_url=_href,
                           publisher_subject_unique_id=child_text(elem, self.namespace,
                                                                  "CertificateUID"),
                           extensions=self._extensions(elem))

    def service_group(self, elem) -> ServiceGroup:
        _references = []
        _collection = find_child(elem, self.namespace, "ServiceMetadataReferenceCollection")
        if _collection is not None:
            for ref in find_children(_collection, self.namespace, "ServiceMetadataReference"):
                _href = ref.get("href")
                _references.append(ServiceReference(service_id=service_from_reference(_href),
                                                    url=_href))

        return ServiceGroup(participant_id=self._identifier(elem, "ParticipantIdentifier"),
                            references=tuple(_references),
                            extensions=self._extensions(elem))

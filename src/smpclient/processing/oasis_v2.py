"""
Processor for OASIS SMP 2.0 documents. In SMP 2.0 processes are grouped in ProcessMetadata
elements that carry either endpoints or a redirect, and processes can be limited to roles.
"""
import logging

from smpclient.datamodel import Certificate
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
from smpclient.processing.utils import parse_datetime

logger = logging.getLogger(__name__)

SMP2 = "http://docs.oasis-open.org/bdxr/ns/SMP/2"

SERVICE_METADATA_NAMESPACE = f"{SMP2}/ServiceMetadata"
SERVICE_GROUP_NAMESPACE = f"{SMP2}/ServiceGroup"
CBC = f"{SMP2}/BasicComponents"
CAC = f"{SMP2}/AggregateComponents"
EXT = f"{SMP2}/ExtensionComponents"


def _extensions(elem):
    _container = find_child(elem, EXT, "SMPExtensions")
    if _container is None:
        return ()
    return extensions(find_children(_container, EXT, "SMPExtension"))


def _identifier(elem, tag: str) -> Identifier:
    return identifier(find_child(elem, CBC, tag, True), "schemeID")


class OASISv2ResultProcessor(ResultProcessor):
    namespaces = [SERVICE_METADATA_NAMESPACE, SERVICE_GROUP_NAMESPACE]

    def process(self, root) -> SMPResult:
        _tag = local_name(root)
        if _tag == "ServiceMetadata":
            return self.service_metadata(root)
        elif _tag == "ServiceGroup":
            return self.service_group(root)

        raise UnknownResponseError(f"Unexpected document: {_tag}")

    def service_metadata(self, elem) -> ServiceMetadata:
        logger.debug(f"SMP version: {child_text(elem, CBC, 'SMPVersionID')}")
        return ServiceMetadata(
            participant_id=_identifier(elem, "ParticipantID"),
            service_id=_identifier(elem, "ID"),
            process_groups=tuple(self.process_group(pm)
                                 for pm in find_children(elem, CAC, "ProcessMetadata")),
            extensions=_extensions(elem))

    def process_info(self, elem) -> ProcessInfo:
        _id = find_child(elem, CBC, "ID", True)
        _value = element_text(_id)
        if _value is None:
            raise UnparsableResponseError("Empty process identifier")
        _roles = [identifier(r, "schemeID") for r in find_children(elem, CBC, "RoleID")]
        return ProcessInfo(process_identifier(_value, _id.get("schemeID")), roles=_roles,
                           extensions=_extensions(elem))

    def process_group(self, elem) -> ProcessGroup:
        _processes = tuple(self.process_info(p) for p in find_children(elem, CAC, "Process"))
        _redirect = find_child(elem, CAC, "Redirect")
        _endpoints = find_children(elem, CAC, "Endpoint")
        if _redirect is not None:
            if _endpoints:
                raise UnparsableResponseError("Process metadata with both endpoints and redirect")
            return ProcessGroup(processes=_processes, redirect=self.redirect(_redirect),
                                extensions=_extensions(elem))

        return ProcessGroup(processes=_processes,
                            endpoints=tuple(self.endpoint(e) for e in _endpoints),
                            extensions=_extensions(elem))

    def certificate(self, elem) -> Certificate:
        return load_certificate(
            child_text(elem, CBC, "ContentBinaryObject", True),
            usage=child_text(elem, CBC, "TypeCode"),
            activation=parse_datetime(child_text(elem, CBC, "ActivationDate")),
            expiration=parse_datetime(child_text(elem, CBC, "ExpirationDate")),
            description=child_text(elem, CBC, "Description"),
            extensions=_extensions(elem))

    def endpoint(self, elem) -> EndpointInfo:
        return EndpointInfo(
            transport_profile=child_text(elem, CBC, "TransportProfileID", True),
            url=child_text(elem, CBC, "AddressURI", True),
            activation=parse_datetime(child_text(elem, CBC, "ActivationDate")),
            expiration=parse_datetime(child_text(elem, CBC, "ExpirationDate")),
            description=child_text(elem, CBC, "Description"),
            contact_info=child_text(elem, CBC, "Contact"),
            certificates=tuple(self.certificate(c) for c in find_children(elem, CAC, "Certificate")),
            extensions=_extensions(elem))

    def redirect(self, elem) -> Redirection:
        _url = child_text(elem, CBC, "PublisherURI")
        if not _url:
            raise InvalidRedirectionError("Redirect without publisher URI")

        _certificates = [self.certificate(c) for c in find_children(elem, CAC, "Certificate")]
        if len(_certificates) > 1:
            logger.warning(f"Redirect to {_url} names more than one certificate, using the first")
        logger.debug(f"Redirect to {_url}")
        return Redirection(new_url=_url,
                           new_publisher_certificate=_certificates[0] if _certificates else None,
                           extensions=_extensions(elem))

    def service_group(self, elem) -> ServiceGroup:
        _references = []
        for ref in find_children(elem, CAC, "ServiceReference"):
            _references.append(ServiceReference(
                service_id=_identifier(ref, "ID"),
                processes=tuple(self.process_info(p) for p in find_children(ref, CAC, "Process"))))

        return ServiceGroup(participant_id=_identifier(elem, "ParticipantID"),
                            references=tuple(_references),
                            extensions=_extensions(elem))

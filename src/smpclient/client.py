import logging
from typing import Callable
from typing import List
from typing import Optional
from typing import Union

from smpclient.datamodel import AnyProcessIdentifier
from smpclient.datamodel import Certificate
from smpclient.datamodel import EndpointInfo
from smpclient.datamodel import Identifier
from smpclient.datamodel import NoProcess
from smpclient.datamodel import Redirection
from smpclient.datamodel import ServiceGroup
from smpclient.datamodel import ServiceMetadata
from smpclient.datamodel import process_identifier
from smpclient.defaults import DEFAULT_MAX_REDIRECTS
from smpclient.defaults import DEFAULT_PROCESSORS
from smpclient.exception import ConfigurationError
from smpclient.exception import InvalidRedirectionError
from smpclient.exception import SMPConnectionError
from smpclient.exception import TooManyRedirections
from smpclient.exception import UnknownResponseError
from smpclient.exception import UntrustedCertificateError
from smpclient.locator import ParticipantLocator
from smpclient.locator import check_url
from smpclient.processing import ResultProcessorRegistry
from smpclient.processing import SMPResult
from smpclient.processing import build_processors
from smpclient.processing import parse_document
from smpclient.request import DefaultRequestExecutor
from smpclient.request import RequestExecutor
from smpclient.selector import EndpointSelector
from smpclient.signature import CertificateFinder
from smpclient.signature import SignatureVerifier
from smpclient.trust import TrustValidator

logger = logging.getLogger(__name__)


def _identifier(value: Union[str, Identifier], cls=Identifier) -> Identifier:
    if isinstance(value, str):
        return cls.parse(value)
    return value


def _process_identifier(value) -> Optional[AnyProcessIdentifier]:
    if value is None or isinstance(value, NoProcess):
        return value
    if isinstance(value, str):
        value = Identifier.parse(value)
    return process_identifier(value.value, value.scheme_id, value.case_sensitive)


class SMPClient(object):
    """
    Finds out where, and how, a message to a participant should be delivered.

    :param locator: Maps participant identifiers to SMP base URIs
    :param request_executor: Fetches documents from SMPs
    :param processors: A ResultProcessorRegistry or processors/processor specs
    :param certificate_finder: Picks the signing certificate out of a signature
    :param trust_validator: Decides whether an SMP signing certificate is trusted
    :param max_redirects: How many redirects are followed
    :param selector: Picks endpoints from service metadata
    """

    def __init__(self,
                 locator: ParticipantLocator,
                 request_executor: Optional[RequestExecutor] = None,
                 processors: Optional[Union[ResultProcessorRegistry, list, dict]] = None,
                 certificate_finder: Optional[CertificateFinder] = None,
                 trust_validator: Optional[TrustValidator] = None,
                 max_redirects: Optional[int] = DEFAULT_MAX_REDIRECTS,
                 selector: Optional[EndpointSelector] = None):
        if locator is None:
            raise ConfigurationError("A participant locator is needed")
        if max_redirects is None or max_redirects < 0:
            raise ConfigurationError(f"Bad max_redirects: {max_redirects}")

        self.locator = locator
        self.request_executor = request_executor or DefaultRequestExecutor()
        if isinstance(processors, ResultProcessorRegistry):
            self.processors = processors
        else:
            self.processors = build_processors(processors or DEFAULT_PROCESSORS)
        self.signature_verifier = SignatureVerifier(certificate_finder, trust_validator)
        self.max_redirects = max_redirects
        self.selector = selector or EndpointSelector()

    def _base_url(self, participant_id: Identifier) -> str:
        _url = self.locator.locate(participant_id)
        logger.debug(f"SMP of {participant_id}: {_url}")
        if not _url.endswith("/"):
            _url += "/"
        return _url

    def service_url(self, base_url: str, participant_id: Identifier,
                    service_id: Identifier) -> str:
        if not base_url.endswith("/"):
            base_url += "/"
        return f"{base_url}{participant_id.url_encoded}/services/{service_id.url_encoded}"

    def fetch(self, url: str, expected_signer: Optional[Certificate] = None) -> SMPResult:
        """
        Fetch, verify and process one SMP document.

        :param url: Where to get the document
        :param expected_signer: The certificate the document must be signed with
        :return: ServiceMetadata, Redirection or ServiceGroup instance
        """
        logger.debug(f"Query SMP: {url}")
        try:
            data = self.request_executor.execute(url)
        except OSError as err:
            raise SMPConnectionError(f"Could not fetch {url}") from err

        root = parse_document(data)
        signer = self.signature_verifier.verify(root)
        if expected_signer is not None:
            if signer is None or signer.x509 != expected_signer.x509:
                logger.error(f"{url} was not signed by the certificate named in the redirect")
                raise UntrustedCertificateError(
                    f"Response from {url} not signed by the expected SMP certificate")

        result = self.processors.process(root)
        if signer is not None and isinstance(result, (ServiceMetadata, ServiceGroup)):
            result = result.with_signing_certificate(signer)
        return result

    def _redirect_target(self, redirect: Redirection) -> str:
        if not redirect.new_url or not check_url(redirect.new_url):
            raise InvalidRedirectionError(f"Unusable redirect target: '{redirect.new_url}'")
        return redirect.new_url

    def _query(self, url: str, handler: Callable):
        """
        Follows redirections until the handler accepts a result.

        :param url: The first URL to query
        :param handler: Gets the processed result, returns a Redirection to follow or the
            final result.
        """
        _signer = None
        _redirects = 0
        while True:
            result = handler(self.fetch(url, _signer))
            if not isinstance(result, Redirection):
                return result

            _redirects += 1
            if _redirects > self.max_redirects:
                logger.error(f"More than {self.max_redirects} redirects, last to {result.new_url}")
                raise TooManyRedirections(f"Too many redirections, max is {self.max_redirects}")

            url = self._redirect_target(result)
            logger.warning(f"SMP redirects to {url}")
            if result.publisher_subject_unique_id:
                logger.debug(f"New SMP certificate UID: {result.publisher_subject_unique_id}")
            _signer = result.new_publisher_certificate

    def _service_metadata(self, participant_id, service_id, handler: Callable):
        participant_id = _identifier(participant_id)
        service_id = _identifier(service_id)
        _url = self.service_url(self._base_url(participant_id), participant_id, service_id)
        return self._query(_url, handler)

    def get_service_metadata(self, participant_id: Union[str, Identifier],
                             service_id: Union[str, Identifier]) -> ServiceMetadata:
        """
        Get the metadata a participant has published for a service, after following any
        redirects.

        :param participant_id: The participant identifier
        :param service_id: The service (document) identifier
        :return: A ServiceMetadata instance
        """

        def _handler(result):
            if isinstance(result, (ServiceMetadata, Redirection)):
                return result
            raise UnknownResponseError(f"Expected service metadata, got {type(result).__name__}")

        return self._service_metadata(participant_id, service_id, _handler)

    def get_endpoints(self, participant_id: Union[str, Identifier],
                      service_id: Union[str, Identifier],
                      process_id: Optional[Union[str, AnyProcessIdentifier]] = None,
                      role: Optional[Union[str, Identifier]] = None,
                      transport_profile: Optional[str] = None) -> List[EndpointInfo]:
        """
        All endpoints of a participant for a service and process. If no process is given
        the endpoints that apply to no specific process are returned.

        :return: list of EndpointInfo instances, empty if there are none
        """
        process_id = _process_identifier(process_id)
        if role is not None:
            role = _identifier(role)

        def _handler(result):
            if isinstance(result, Redirection):
                return result
            if not isinstance(result, ServiceMetadata):
                raise UnknownResponseError(
                    f"Expected service metadata, got {type(result).__name__}")

            group = self.selector.select_group(result, process_id, role)
            if group is None:
                return []
            if group.redirect is not None:
                return group.redirect
            return self.selector.filter_endpoints(group, transport_profile)

        return self._service_metadata(participant_id, service_id, _handler)

    def resolve(self, participant_id: Union[str, Identifier],
                service_id: Union[str, Identifier],
                process_id: Optional[Union[str, AnyProcessIdentifier]] = None,
                role: Optional[Union[str, Identifier]] = None,
                transport_profile: Optional[str] = None) -> List[EndpointInfo]:
        """
        Resolve the endpoints to which a message to a participant should be sent.

        :param participant_id: The receiving participant
        :param service_id: The service (document) identifier
        :param process_id: The process. None means no specific process.
        :param role: The role of the receiver in the process
        :param transport_profile: Only endpoints with this transport profile
        :return: list of EndpointInfo instances, empty if nothing matches
        """
        return self.get_endpoints(participant_id, service_id, process_id, role,
                                  transport_profile)

    def get_endpoint(self, participant_id: Union[str, Identifier],
                     service_id: Union[str, Identifier],
                     process_id: Optional[Union[str, AnyProcessIdentifier]],
                     transport_profile: str,
                     role: Optional[Union[str, Identifier]] = None) -> Optional[EndpointInfo]:
        """
        The first endpoint supporting the transport profile or None.
        """
        if not transport_profile:
            raise ValueError("A transport profile must be given")

        _endpoints = self.get_endpoints(participant_id, service_id, process_id, role,
                                        transport_profile)
        if _endpoints:
            return _endpoints[0]
        return None

    def get_service_group(self, participant_id: Union[str, Identifier]) -> ServiceGroup:
        """
        Get the list of services a participant supports.
        """
        participant_id = _identifier(participant_id)
        _url = f"{self._base_url(participant_id)}{participant_id.url_encoded}"

        def _handler(result):
            if isinstance(result, (ServiceGroup, Redirection)):
                return result
            raise UnknownResponseError(f"Expected service group, got {type(result).__name__}")

        return self._query(_url, _handler)

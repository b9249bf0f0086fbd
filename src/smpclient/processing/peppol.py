from smpclient.processing.oasis_v1 import OASISv1ResultProcessor
from smpclient.processing.utils import child_text
from smpclient.processing.utils import find_child

NAMESPACE = "http://busdox.org/serviceMetadata/publishing/1.0/"
IDENTIFIER_NAMESPACE = "http://busdox.org/transport/identifiers/1.0/"
WSA_NAMESPACE = "http://www.w3.org/2005/08/addressing"


class PeppolResultProcessor(OASISv1ResultProcessor):
    """
    The PEPPOL SMP documents. Same structure as OASIS SMP 1.0 but the identifiers live in
    their own namespace and the endpoint address is a WS-Addressing endpoint reference.
    """
    namespace = NAMESPACE
    identifier_namespace = IDENTIFIER_NAMESPACE
    namespaces = [NAMESPACE]
    # PEPPOL document identifiers are compared case sensitively
    case_sensitive_schemes = ["busdox-docid-qns", "peppol-doctype-wildcard"]

    def endpoint_url(self, elem) -> str:
        _reference = find_child(elem, WSA_NAMESPACE, "EndpointReference", True)
        return child_text(_reference, WSA_NAMESPACE, "Address", True)

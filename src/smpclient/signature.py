"""
Verification of the enveloped XML signature SMPs put on their responses.
"""
import base64
import copy
import hashlib
import hmac
import logging
from typing import Callable
from typing import List
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from lxml import etree

from smpclient.datamodel import Certificate
from smpclient.exception import InvalidSignatureError
from smpclient.exception import UntrustedCertificateError
from smpclient.trust import TrustValidator

logger = logging.getLogger(__name__)

DS_NS = "http://www.w3.org/2000/09/xmldsig#"
EXC_C14N_NS = "http://www.w3.org/2001/10/xml-exc-c14n#"
ENVELOPED_SIGNATURE = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"

# Elements below the document element a reference may point to and still cover the content
SIGNED_CONTENT = ("ServiceMetadata", "ServiceGroup")

# algorithm: (exclusive, with_comments)
CANONICALIZATION_ALGORITHMS = {
    "http://www.w3.org/2001/10/xml-exc-c14n#": (True, False),
    "http://www.w3.org/2001/10/xml-exc-c14n#WithComments": (True, True),
    "http://www.w3.org/TR/2001/REC-xml-c14n-20010315": (False, False),
    "http://www.w3.org/TR/2001/REC-xml-c14n-20010315#WithComments": (False, True),
    "http://www.w3.org/2006/12/xml-c14n11": (False, False),
    "http://www.w3.org/2006/12/xml-c14n11#WithComments": (False, True),
}

DIGEST_ALGORITHMS = {
    "http://www.w3.org/2000/09/xmldsig#sha1": hashlib.sha1,
    "http://www.w3.org/2001/04/xmlenc#sha256": hashlib.sha256,
    "http://www.w3.org/2001/04/xmldsig-more#sha384": hashlib.sha384,
    "http://www.w3.org/2001/04/xmlenc#sha512": hashlib.sha512,
}

KEY_TYPES = {
    "RSA": rsa.RSAPublicKey,
    "EC": ec.EllipticCurvePublicKey,
    "DSA": dsa.DSAPublicKey,
}

# algorithm: (key type, hash)
SIGNATURE_ALGORITHMS = {
    "http://www.w3.org/2000/09/xmldsig#rsa-sha1": ("RSA", hashes.SHA1),
    "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256": ("RSA", hashes.SHA256),
    "http://www.w3.org/2001/04/xmldsig-more#rsa-sha384": ("RSA", hashes.SHA384),
    "http://www.w3.org/2001/04/xmldsig-more#rsa-sha512": ("RSA", hashes.SHA512),
    "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha1": ("EC", hashes.SHA1),
    "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha256": ("EC", hashes.SHA256),
    "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha384": ("EC", hashes.SHA384),
    "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha512": ("EC", hashes.SHA512),
    "http://www.w3.org/2000/09/xmldsig#dsa-sha1": ("DSA", hashes.SHA1),
    "http://www.w3.org/2009/xmldsig11#dsa-sha256": ("DSA", hashes.SHA256),
}

CertificateFinder = Callable[[Optional[etree._Element], str], Optional[Certificate]]


def ds(tag: str) -> str:
    return f"{{{DS_NS}}}{tag}"


def key_type(algorithm: str) -> Optional[str]:
    try:
        return SIGNATURE_ALGORITHMS[algorithm][0]
    except KeyError:
        return None


def embedded_certificate_finder(key_info, algorithm: str) -> Optional[Certificate]:
    """
    Use the first X.509 certificate in the KeyInfo element that carries a key of the type
    the signature algorithm needs.

    :param key_info: The ds:KeyInfo element, may be None
    :param algorithm: The signature algorithm
    :return: A Certificate instance or None
    """
    if key_info is None:
        return None

    _type = key_type(algorithm)
    if _type is None:
        return None

    for elem in key_info.iter(ds("X509Certificate")):
        try:
            _cert = Certificate.from_base64(elem.text or "")
        except ValueError as err:
            logger.warning(f"Unusable certificate in KeyInfo: {err}")
            continue
        if isinstance(_cert.public_key(), KEY_TYPES[_type]):
            return _cert
    return None


def find_signatures(root) -> List[etree._Element]:
    return list(root.iter(ds("Signature")))


def _inclusive_prefixes(elem) -> Optional[List[str]]:
    _node = elem.find(f"{{{EXC_C14N_NS}}}InclusiveNamespaces")
    if _node is None:
        return None
    return _node.get("PrefixList", "").split() or None


def canonicalize(elem, algorithm: str, prefixes: Optional[List[str]] = None) -> bytes:
    try:
        exclusive, with_comments = CANONICALIZATION_ALGORITHMS[algorithm]
    except KeyError:
        raise InvalidSignatureError(f"Unsupported canonicalization: {algorithm}")
    return etree.tostring(elem, method="c14n", exclusive=exclusive,
                          with_comments=with_comments,
                          inclusive_ns_prefixes=prefixes if exclusive else None)


def _remove_keeping_tail(elem):
    parent = elem.getparent()
    if parent is None:
        raise InvalidSignatureError("Signature is the signed element")
    if elem.tail:
        previous = elem.getprevious()
        if previous is not None:
            previous.tail = (previous.tail or "") + elem.tail
        else:
            parent.text = (parent.text or "") + elem.tail
    parent.remove(elem)


def _raw_to_der(signature: bytes) -> bytes:
    # XML-DSig carries (EC)DSA signatures as r || s
    if len(signature) % 2:
        raise InvalidSignatureError("Malformed signature value")
    _half = len(signature) // 2
    return encode_dss_signature(int.from_bytes(signature[:_half], "big"),
                                int.from_bytes(signature[_half:], "big"))


def verify_signature_value(public_key, algorithm: str, signature: bytes, payload: bytes):
    try:
        _type, _hash = SIGNATURE_ALGORITHMS[algorithm]
    except KeyError:
        raise InvalidSignatureError(f"Unsupported signature algorithm: {algorithm}")

    if not isinstance(public_key, KEY_TYPES[_type]):
        raise InvalidSignatureError(f"Key does not fit signature algorithm {algorithm}")

    try:
        if _type == "RSA":
            public_key.verify(signature, payload, padding.PKCS1v15(), _hash())
        elif _type == "EC":
            public_key.verify(_raw_to_der(signature), payload, ec.ECDSA(_hash()))
        else:
            public_key.verify(_raw_to_der(signature), payload, _hash())
    except InvalidSignature as err:
        raise InvalidSignatureError("Signature value does not verify") from err


class SignatureVerifier(object):
    """
    Verifies the XML signature of an SMP response and evaluates the trust in the signer.

    :param certificate_finder: Picks the signing certificate from the KeyInfo element
    :param trust_validator: Decides whether the signing certificate is trusted. If None
        only the cryptographic validity of the signature is checked.
    """

    def __init__(self,
                 certificate_finder: Optional[CertificateFinder] = None,
                 trust_validator: Optional[TrustValidator] = None):
        self.certificate_finder = certificate_finder or embedded_certificate_finder
        self.trust_validator = trust_validator

    def verify(self, root) -> Optional[Certificate]:
        """
        :param root: The root element of the response
        :return: The signing certificate or None if the response is not signed
        """
        signatures = find_signatures(root)
        if not signatures:
            logger.debug("Response is not signed")
            return None
        if len(signatures) > 1:
            logger.warning(f"Response has {len(signatures)} signatures, only the first is used")

        certificate = self.verify_signature(root, signatures[0])
        logger.debug(f"Signature verified, signed by: {certificate.subject}")

        if self.trust_validator is not None:
            if not self.trust_validator.is_trusted(certificate):
                logger.error(
                    f"Signing certificate not trusted: subject={certificate.subject}, "
                    f"issuer={certificate.issuer}, serial={certificate.serial_number}")
                raise UntrustedCertificateError(
                    f"Signing certificate is not trusted: {certificate.subject}")
            logger.debug("Signing certificate is trusted")

        return certificate

    def verify_signature(self, root, signature) -> Certificate:
        signed_info = signature.find(ds("SignedInfo"))
        if signed_info is None:
            raise InvalidSignatureError("Signature without SignedInfo")

        _method = signed_info.find(ds("SignatureMethod"))
        algorithm = _method.get("Algorithm") if _method is not None else None
        if not algorithm:
            raise InvalidSignatureError("Signature without signature method")

        certificate = self.certificate_finder(signature.find(ds("KeyInfo")), algorithm)
        if certificate is None:
            raise InvalidSignatureError("No usable signing certificate found")

        self.verify_references(root, signature, signed_info)

        _c14n = signed_info.find(ds("CanonicalizationMethod"))
        if _c14n is None or not _c14n.get("Algorithm"):
            raise InvalidSignatureError("Signature without canonicalization method")
        payload = canonicalize(signed_info, _c14n.get("Algorithm"), _inclusive_prefixes(_c14n))

        try:
            _value = base64.b64decode("".join(signature.findtext(ds("SignatureValue"), "").split()),
                                      validate=True)
        except ValueError as err:
            raise InvalidSignatureError("Malformed signature value") from err
        if not _value:
            raise InvalidSignatureError("Empty signature value")

        verify_signature_value(certificate.public_key(), algorithm, _value, payload)
        return certificate

    def verify_references(self, root, signature, signed_info):
        references = signed_info.findall(ds("Reference"))
        if not references:
            raise InvalidSignatureError("Signature without references")

        _covered = False
        for reference in references:
            _uri = reference.get("URI", "")
            _target = self.dereference(root, _uri)
            _covered = _covered or self.covers_content(_target)
            _data = self.transform(_target, signature, reference)

            _method = reference.find(ds("DigestMethod"))
            _algorithm = _method.get("Algorithm") if _method is not None else None
            try:
                _digest = DIGEST_ALGORITHMS[_algorithm](_data).digest()
            except KeyError:
                raise InvalidSignatureError(f"Unsupported digest algorithm: {_algorithm}")

            _expected = "".join(reference.findtext(ds("DigestValue"), "").split())
            if not hmac.compare_digest(base64.b64encode(_digest).decode("ascii"), _expected):
                logger.error(f"Digest mismatch for reference '{_uri}'")
                raise InvalidSignatureError(f"Digest of reference '{_uri}' does not match")

        if not _covered:
            logger.error("No signature reference covers the response content")
            raise InvalidSignatureError("Signature does not cover the response content")

    def covers_content(self, target) -> bool:
        """
        A reference covers the content if it points to the document element or to the
        service metadata or service group element directly below it. Only the first such
        element is read by the processors.
        """
        _document = target.getroottree().getroot()
        if target is _document:
            return True
        if etree.QName(target).localname not in SIGNED_CONTENT:
            return False
        return target.getparent() is _document and _document.find(target.tag) is target

    def dereference(self, root, uri: str):
        _document = root.getroottree().getroot()
        if uri in ("", "#xpointer(/)"):
            return _document
        if uri.startswith("#"):
            _matches = _document.xpath("//*[@ID=$id or @Id=$id or @id=$id]", id=uri[1:])
            if len(_matches) != 1:
                raise InvalidSignatureError(f"Reference '{uri}' does not identify one element")
            return _matches[0]
        raise InvalidSignatureError(f"Unsupported reference: '{uri}'")

    def transform(self, target, signature, reference) -> bytes:
        # Work on a copy, the enveloped signature transform modifies the tree
        _signatures = find_signatures(target)
        _data = copy.deepcopy(target)

        _transforms = reference.find(ds("Transforms"))
        for transform in [] if _transforms is None else _transforms.findall(ds("Transform")):
            _algorithm = transform.get("Algorithm", "")
            if _algorithm == ENVELOPED_SIGNATURE:
                if not isinstance(_data, etree._Element):
                    raise InvalidSignatureError("Enveloped signature transform on octets")
                for index, sig in enumerate(_signatures):
                    if sig is signature:
                        _remove_keeping_tail(find_signatures(_data)[index])
            elif _algorithm in CANONICALIZATION_ALGORITHMS:
                if not isinstance(_data, etree._Element):
                    _data = etree.fromstring(_data)
                _data = canonicalize(_data, _algorithm, _inclusive_prefixes(transform))
            else:
                raise InvalidSignatureError(f"Unsupported transform: {_algorithm}")

        if isinstance(_data, etree._Element):
            _data = canonicalize(_data, "http://www.w3.org/TR/2001/REC-xml-c14n-20010315")
        return _data

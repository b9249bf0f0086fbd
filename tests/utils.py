import base64
import hashlib
from datetime import datetime
from datetime import timedelta
from datetime import timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID
from lxml import etree

DS_NS = "http://www.w3.org/2000/09/xmldsig#"
EXC_C14N = "http://www.w3.org/2001/10/xml-exc-c14n#"
ENVELOPED = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"
SHA256 = "http://www.w3.org/2001/04/xmlenc#sha256"
RSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
ECDSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha256"


def make_key(kind="RSA"):
    if kind == "EC":
        return ec.generate_private_key(ec.SECP256R1())
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def make_certificate(common_name, key=None, issuer_name=None, issuer_key=None,
                     not_before=None, days=365):
    """
    Returns (private key, certificate). Self signed unless issuer name and key are given.
    """
    key = key or make_key()
    _subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    if issuer_name is None:
        _issuer = _subject
        issuer_key = key
    else:
        _issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer_name)])

    not_before = not_before or datetime.now(timezone.utc) - timedelta(days=1)
    cert = x509.CertificateBuilder().subject_name(
        _subject
    ).issuer_name(
        _issuer
    ).public_key(
        key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        not_before
    ).not_valid_after(
        not_before + timedelta(days=days)
    ).sign(issuer_key, hashes.SHA256())
    return key, cert


def b64_der(cert):
    return base64.b64encode(cert.public_bytes(Encoding.DER)).decode("ascii")


def _ds(parent, tag, **attrs):
    return etree.SubElement(parent, f"{{{DS_NS}}}{tag}", **attrs)


def sign_document(xml, key, cert, reference_id=None):
    """
    Add an enveloped signature to the document the way SMPs do, signing the whole
    document using exclusive canonicalization.

    :param xml: The document as bytes
    :param reference_id: Sign only the element with this Id attribute
    :return: The signed document as bytes
    """
    root = etree.fromstring(xml)
    if reference_id is None:
        _target = root
        _uri = ""
    else:
        _target = root.xpath("//*[@Id=$id]", id=reference_id)[0]
        _uri = f"#{reference_id}"
    _c14n = etree.tostring(_target, method="c14n", exclusive=True, with_comments=False)
    _digest = base64.b64encode(hashlib.sha256(_c14n).digest()).decode("ascii")

    _ec = isinstance(key, ec.EllipticCurvePrivateKey)
    signature = etree.SubElement(root, f"{{{DS_NS}}}Signature", nsmap={"ds": DS_NS})
    signed_info = _ds(signature, "SignedInfo")
    _ds(signed_info, "CanonicalizationMethod", Algorithm=EXC_C14N)
    _ds(signed_info, "SignatureMethod", Algorithm=ECDSA_SHA256 if _ec else RSA_SHA256)
    reference = _ds(signed_info, "Reference", URI=_uri)
    transforms = _ds(reference, "Transforms")
    _ds(transforms, "Transform", Algorithm=ENVELOPED)
    _ds(transforms, "Transform", Algorithm=EXC_C14N)
    _ds(reference, "DigestMethod", Algorithm=SHA256)
    _ds(reference, "DigestValue").text = _digest

    _payload = etree.tostring(signed_info, method="c14n", exclusive=True, with_comments=False)
    if _ec:
        r, s = decode_dss_signature(key.sign(_payload, ec.ECDSA(hashes.SHA256())))
        _value = r.to_bytes(32, "big") + s.to_bytes(32, "big")
    else:
        _value = key.sign(_payload, padding.PKCS1v15(), hashes.SHA256())
    _ds(signature, "SignatureValue").text = base64.b64encode(_value).decode("ascii")

    key_info = _ds(signature, "KeyInfo")
    _ds(_ds(key_info, "X509Data"), "X509Certificate").text = b64_der(cert)
    return etree.tostring(root)


class NAPTR(object):
    """Looks like a dnspython NAPTR rdata."""

    def __init__(self, regexp, order=100, preference=10, flags=b"U", service=b"Meta:SMP"):
        self.order = order
        self.preference = preference
        self.flags = flags
        self.service = service
        self.regexp = regexp.encode("ascii") if isinstance(regexp, str) else regexp
        self.replacement = "."


class FakeResolver(object):

    def __init__(self, records=None, error=None):
        self.records = records or {}
        self.error = error
        self.queries = []

    def resolve(self, qname, rdtype):
        self.queries.append((qname, rdtype))
        if self.error is not None:
            raise self.error
        return self.records[qname]


OASIS_V1_METADATA = """<?xml version="1.0" encoding="UTF-8"?>
<SignedServiceMetadata xmlns="http://docs.oasis-open.org/bdxr/ns/SMP/2016/05">
  <ServiceMetadata>
    <ServiceInformation>
      <ParticipantIdentifier scheme="iso6523-actorid-upis">0088:123456</ParticipantIdentifier>
      <DocumentIdentifier scheme="bdx-docid-qns">urn:invoice::2.1</DocumentIdentifier>
      <ProcessList>
        <Process>
          <ProcessIdentifier scheme="cenbii-procid-ubl">urn:proc:1</ProcessIdentifier>
          <ServiceEndpointList>
            <Endpoint transportProfile="bdxr-transport-ebms3-as4-v1p0">
              <EndpointURI>https://ap.example.com/as4</EndpointURI>
              <RequireBusinessLevelSignature>false</RequireBusinessLevelSignature>
              <MinimumAuthenticationLevel>2</MinimumAuthenticationLevel>
              <ServiceActivationDate>2020-01-01T00:00:00Z</ServiceActivationDate>
              <ServiceExpirationDate>2099-12-31T23:59:59Z</ServiceExpirationDate>
              <Certificate>{certificate}</Certificate>
              <ServiceDescription>Access point</ServiceDescription>
              <TechnicalContactUrl>mailto:ops@example.com</TechnicalContactUrl>
              <TechnicalInformationUrl>https://example.com/info</TechnicalInformationUrl>
            </Endpoint>
          </ServiceEndpointList>
        </Process>
        <Process>
          <ProcessIdentifier scheme="bdx-procid-transport">bdx:noprocess</ProcessIdentifier>
          <ServiceEndpointList>
            <Endpoint transportProfile="bdxr-transport-ebms3-as4-v1p0">
              <EndpointURI>https://ap.example.com/noprocess</EndpointURI>
              <RequireBusinessLevelSignature>true</RequireBusinessLevelSignature>
              <Certificate>{certificate}</Certificate>
              <ServiceDescription>No process</ServiceDescription>
              <TechnicalContactUrl>mailto:ops@example.com</TechnicalContactUrl>
            </Endpoint>
          </ServiceEndpointList>
        </Process>
      </ProcessList>
    </ServiceInformation>
  </ServiceMetadata>
</SignedServiceMetadata>
"""

OASIS_V1_REDIRECT = """<?xml version="1.0" encoding="UTF-8"?>
<SignedServiceMetadata xmlns="http://docs.oasis-open.org/bdxr/ns/SMP/2016/05">
  <ServiceMetadata>
    <Redirect href="{url}">
      <CertificateUID>CN=SMP2,O=Example,C=SE:123abc</CertificateUID>
    </Redirect>
  </ServiceMetadata>
</SignedServiceMetadata>
"""

from datetime import datetime
from datetime import timezone

import pytest

from smpclient.datamodel import Identifier
from smpclient.datamodel import NO_PROCESS
from smpclient.datamodel import ProcessIdentifier
from smpclient.datamodel import Redirection
from smpclient.datamodel import ServiceGroup
from smpclient.datamodel import ServiceMetadata
from smpclient.exception import InvalidRedirectionError
from smpclient.exception import UnparsableResponseError
from smpclient.processing import parse_document
from smpclient.processing.oasis_v1 import OASISv1ResultProcessor
from smpclient.processing.oasis_v1 import service_from_reference
from tests.utils import OASIS_V1_METADATA
from tests.utils import OASIS_V1_REDIRECT
from tests.utils import b64_der
from tests.utils import make_certificate

_, CERT = make_certificate("ap.example.com")

SERVICE_GROUP = """<ServiceGroup xmlns="http://docs.oasis-open.org/bdxr/ns/SMP/2016/05">
  <ParticipantIdentifier scheme="iso6523-actorid-upis">0088:123456</ParticipantIdentifier>
  <ServiceMetadataReferenceCollection>
    <ServiceMetadataReference
      href="https://smp.example.com/iso6523-actorid-upis%3A%3A0088%3A123456/services/bdx-docid-qns%3A%3Aurn%3Ainvoice%3A%3A2.1"/>
    <ServiceMetadataReference href="https://smp.example.com/other"/>
  </ServiceMetadataReferenceCollection>
  <Extension><ex:Info xmlns:ex="urn:example">data</ex:Info></Extension>
</ServiceGroup>
"""


def process(xml):
    return OASISv1ResultProcessor().process(parse_document(xml.encode("utf-8")))


def test_service_metadata():
    res = process(OASIS_V1_METADATA.format(certificate=b64_der(CERT)))
    assert isinstance(res, ServiceMetadata)
    assert res.participant_id == Identifier("0088:123456", "iso6523-actorid-upis")
    assert res.service_id == Identifier("urn:invoice::2.1", "bdx-docid-qns")
    assert len(res.process_groups) == 2

    group = res.process_groups[0]
    assert [p.process_id for p in group.processes] == [ProcessIdentifier("urn:proc:1",
                                                                         "cenbii-procid-ubl")]
    assert group.processes[0].roles == frozenset()
    assert group.redirect is None

    endpoint = group.endpoints[0]
    assert endpoint.transport_profile == "bdxr-transport-ebms3-as4-v1p0"
    assert endpoint.url == "https://ap.example.com/as4"
    assert endpoint.business_level_signature_required is False
    assert endpoint.minimum_authentication_level == "2"
    assert endpoint.activation == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert endpoint.expiration == datetime(2099, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
    assert endpoint.description == "Access point"
    assert endpoint.contact_info == "mailto:ops@example.com"
    assert endpoint.technical_information_url == "https://example.com/info"
    assert len(endpoint.certificates) == 1
    assert endpoint.certificates[0].subject == "CN=ap.example.com"
    assert endpoint.certificates[0].usage is None

    group = res.process_groups[1]
    assert group.processes[0].process_id == NO_PROCESS
    assert group.endpoints[0].business_level_signature_required is True
    assert group.endpoints[0].technical_information_url is None


def test_redirect():
    res = process(OASIS_V1_REDIRECT.format(url="https://smp2.example.com/a/services/b"))
    assert isinstance(res, Redirection)
    assert res.new_url == "https://smp2.example.com/a/services/b"
    assert res.publisher_subject_unique_id == "CN=SMP2,O=Example,C=SE:123abc"
    assert res.new_publisher_certificate is None


def test_redirect_without_target():
    with pytest.raises(InvalidRedirectionError):
        process(OASIS_V1_REDIRECT.replace(' href="{url}"', ""))


def test_unsigned_service_metadata_root():
    _xml = OASIS_V1_METADATA.format(certificate=b64_der(CERT))
    _xml = _xml.replace("<SignedServiceMetadata", "<Wrapper").replace(
        "</SignedServiceMetadata>", "</Wrapper>")
    _start = _xml.index("<ServiceMetadata>")
    _end = _xml.index("</ServiceMetadata>") + len("</ServiceMetadata>")
    _xml = _xml[_start:_end].replace(
        "<ServiceMetadata>",
        '<ServiceMetadata xmlns="http://docs.oasis-open.org/bdxr/ns/SMP/2016/05">')
    res = process(_xml)
    assert isinstance(res, ServiceMetadata)
    assert len(res.process_groups) == 2


def test_service_group():
    res = process(SERVICE_GROUP)
    assert isinstance(res, ServiceGroup)
    assert res.participant_id == Identifier("0088:123456", "iso6523-actorid-upis")
    assert len(res.references) == 2
    assert res.references[0].service_id == Identifier("urn:invoice::2.1", "bdx-docid-qns")
    assert res.references[1].service_id is None
    assert res.references[1].url == "https://smp.example.com/other"
    assert len(res.extensions) == 1
    assert res.extensions[0].name == "Extension"
    assert "urn:example" in res.extensions[0].xml


def test_service_from_reference():
    assert service_from_reference(None) is None
    assert service_from_reference("https://smp.example.com/p/services/") is None
    assert service_from_reference("https://smp.example.com/p/services/s%3A%3Adoc") == \
           Identifier("doc", "s")


def test_missing_participant():
    _xml = OASIS_V1_METADATA.format(certificate=b64_der(CERT))
    _start = _xml.index("<ParticipantIdentifier")
    _end = _xml.index("</ParticipantIdentifier>") + len("</ParticipantIdentifier>")
    with pytest.raises(UnparsableResponseError):
        process(_xml[:_start] + _xml[_end:])


def test_bad_certificate():
    with pytest.raises(UnparsableResponseError):
        process(OASIS_V1_METADATA.format(certificate="bm90IGEgY2VydGlmaWNhdGU="))


def test_bad_date():
    _xml = OASIS_V1_METADATA.format(certificate=b64_der(CERT)).replace(
        "2020-01-01T00:00:00Z", "yesterday")
    with pytest.raises(UnparsableResponseError):
        process(_xml)

import pytest

from smpclient.datamodel import ServiceMetadata
from smpclient.exception import ConfigurationError
from smpclient.exception import UnknownResponseError
from smpclient.exception import UnparsableResponseError
from smpclient.processing import ResultProcessor
from smpclient.processing import ResultProcessorRegistry
from smpclient.processing import build_processors
from smpclient.processing import parse_document
from smpclient.processing.oasis_v1 import OASISv1ResultProcessor
from smpclient.processing.oasis_v2 import OASISv2ResultProcessor
from smpclient.processing.peppol import PeppolResultProcessor
from tests.utils import OASIS_V1_METADATA
from tests.utils import b64_der
from tests.utils import make_certificate

_, CERT = make_certificate("ap.example.com")


class Failing(ResultProcessor):
    namespaces = ["urn:failing"]

    def process(self, root):
        raise ValueError("broken")


def test_parse_not_xml():
    with pytest.raises(UnparsableResponseError):
        parse_document(b"this is not XML")
    with pytest.raises(UnparsableResponseError):
        parse_document(b"")


def test_parse_no_entity_expansion():
    _xml = b"""<?xml version="1.0"?>
<!DOCTYPE r [<!ENTITY e SYSTEM "file:///etc/passwd">]>
<r>&e;</r>"""
    try:
        root = parse_document(_xml)
    except UnparsableResponseError:
        return
    assert "root:" not in "".join(root.itertext())


def test_registry_dispatch():
    registry = ResultProcessorRegistry([OASISv1ResultProcessor(), OASISv2ResultProcessor(),
                                        PeppolResultProcessor()])
    assert len(registry) == 4
    assert "http://docs.oasis-open.org/bdxr/ns/SMP/2016/05" in registry
    assert isinstance(registry.get("http://busdox.org/serviceMetadata/publishing/1.0/"),
                      PeppolResultProcessor)

    _xml = OASIS_V1_METADATA.format(certificate=b64_der(CERT)).encode("utf-8")
    assert isinstance(registry.process(parse_document(_xml)), ServiceMetadata)


def test_registry_unknown_namespace():
    registry = ResultProcessorRegistry([OASISv1ResultProcessor()])
    with pytest.raises(UnknownResponseError):
        registry.process(parse_document(b'<Foo xmlns="urn:unknown"/>'))
    with pytest.raises(UnknownResponseError):
        registry.process(parse_document(b'<Foo/>'))


def test_registry_unexpected_root():
    registry = ResultProcessorRegistry([OASISv1ResultProcessor()])
    with pytest.raises(UnknownResponseError):
        registry.process(
            parse_document(b'<Foo xmlns="http://docs.oasis-open.org/bdxr/ns/SMP/2016/05"/>'))


def test_registry_processing_error():
    registry = ResultProcessorRegistry([Failing()])
    with pytest.raises(UnparsableResponseError):
        registry.process(parse_document(b'<Foo xmlns="urn:failing"/>'))


def test_registry_namespaces():
    registry = ResultProcessorRegistry([OASISv2ResultProcessor()])
    assert "http://docs.oasis-open.org/bdxr/ns/SMP/2/ServiceGroup" in registry
    assert "http://docs.oasis-open.org/bdxr/ns/SMP/2016/05" not in registry
    assert len(registry) == 2


def test_build_processors():
    registry = build_processors({
        "v1": {"class": "smpclient.processing.oasis_v1.OASISv1ResultProcessor", "kwargs": {}},
        "v2": {"class": "smpclient.processing.oasis_v2.OASISv2ResultProcessor"}
    })
    assert sorted(registry.namespaces()) == [
        "http://docs.oasis-open.org/bdxr/ns/SMP/2/ServiceGroup",
        "http://docs.oasis-open.org/bdxr/ns/SMP/2/ServiceMetadata",
        "http://docs.oasis-open.org/bdxr/ns/SMP/2016/05",
    ]

    registry = build_processors([Failing()])
    assert "urn:failing" in registry


def test_build_processors_bad_spec():
    with pytest.raises(ConfigurationError):
        build_processors([{"class": "smpclient.processing.nonexisting.Processor"}])
    with pytest.raises(ConfigurationError):
        build_processors([{"kwargs": {}}])
    with pytest.raises(ConfigurationError):
        build_processors([])

import logging
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Union

from idpyoidc.server.util import execute
from lxml import etree

from smpclient.datamodel import Redirection
from smpclient.datamodel import ServiceGroup
from smpclient.datamodel import ServiceMetadata
from smpclient.exception import ConfigurationError
from smpclient.exception import UnknownResponseError
from smpclient.exception import UnparsableResponseError

logger = logging.getLogger(__name__)

SMPResult = Union[ServiceMetadata, Redirection, ServiceGroup]


def parse_document(data: bytes):
    """
    Parse an SMP response. Entity resolution and network access are switched off.

    :param data: The response body
    :return: The root element
    """
    _parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)
    try:
        return etree.fromstring(data, parser=_parser)
    except (etree.XMLSyntaxError, ValueError) as err:
        logger.error(f"Response is not well-formed XML: {err}")
        raise UnparsableResponseError("Response is not well-formed XML") from err


class ResultProcessor(object):
    """
    Turns an SMP response document of a specific schema into the common data model.
    """
    namespaces = []

    def __init__(self, **kwargs):
        pass

    def process(self, root) -> SMPResult:
        """
        :param root: The root element of the response document
        :return: ServiceMetadata, Redirection or ServiceGroup instance
        """
        raise NotImplementedError()


class ResultProcessorRegistry(object):
    """Maps root element namespaces to the processor that handles them."""

    def __init__(self, processors: Optional[Iterable[ResultProcessor]] = None):
        self._processor = {}
        for processor in processors or []:
            self.add(processor)

    def add(self, processor: ResultProcessor):
        for namespace in processor.namespaces:
            if namespace in self._processor:
                logger.warning(f"More than one processor for {namespace}, using the last")
            self._processor[namespace] = processor

    def get(self, namespace: str) -> Optional[ResultProcessor]:
        return self._processor.get(namespace)

    def namespaces(self) -> List[str]:
        return list(self._processor.keys())

    def __contains__(self, namespace):
        return namespace in self._processor

    def __len__(self):
        return len(self._processor)

    def process(self, root) -> SMPResult:
        _namespace = etree.QName(root).namespace
        processor = self.get(_namespace)
        if processor is None:
            logger.error(f"Unknown XML document, root namespace: {_namespace}")
            raise UnknownResponseError(f"Unknown XML document: {etree.QName(root).text}")

        logger.debug(f"Processing response with {processor.__class__.__name__}")
        try:
            return processor.process(root)
        except ValueError as err:
            logger.error(f"Could not process response: {err}")
            raise UnparsableResponseError(f"Could not process response: {err}") from err


def build_processors(conf: Union[Dict[str, dict], List[Union[dict, ResultProcessor]]]
                     ) -> ResultProcessorRegistry:
    """
    Instantiate processors from configuration specs.

    :param conf: A list of specs or processor instances, or a dictionary with specs as values
    :return: A :py:class:`ResultProcessorRegistry` instance
    """
    if isinstance(conf, dict):
        _specs = list(conf.values())
    else:
        _specs = conf

    _processors = []
    for spec in _specs:
        if isinstance(spec, ResultProcessor):
            _processors.append(spec)
            continue
        try:
            _processor = execute(spec)
        except (ImportError, AttributeError, KeyError, TypeError, ValueError) as err:
            raise ConfigurationError(f"Could not instantiate processor {spec}: {err}") from err
        if not isinstance(_processor, ResultProcessor):
            raise ConfigurationError(f"Not a result processor: {spec}")
        _processors.append(_processor)

    registry = ResultProcessorRegistry(_processors)
    if not len(registry):
        raise ConfigurationError("No result processors configured")
    return registry

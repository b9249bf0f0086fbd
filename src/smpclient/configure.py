import logging
from typing import Dict
from typing import List
from typing import Optional
from typing import Union

from cryptojwt.utils import importer
from idpyoidc.configure import Base
from idpyoidc.configure import DEFAULT_DIR_ATTRIBUTE_NAMES
from idpyoidc.configure import create_from_config_file
from idpyoidc.server.util import execute

from smpclient.client import SMPClient
from smpclient.defaults import DEFAULT_CERTIFICATE_FINDER
from smpclient.defaults import DEFAULT_MAX_REDIRECTS
from smpclient.defaults import DEFAULT_PROCESSORS
from smpclient.defaults import DEFAULT_REQUEST_EXECUTOR
from smpclient.exception import ConfigurationError
from smpclient.processing import build_processors

logger = logging.getLogger(__name__)

DEFAULT_SMP_FILE_ATTRIBUTE_NAMES = ["pem_file"]


class SMPClientConfiguration(Base):
    """SMP client configuration"""

    def __init__(self,
                 conf: Dict,
                 entity_conf: Optional[List[dict]] = None,
                 base_path: Optional[str] = '',
                 file_attributes: Optional[List[str]] = None,
                 domain: Optional[str] = "",
                 port: Optional[int] = 0,
                 dir_attributes: Optional[List[str]] = None,
                 ):
        file_attributes = file_attributes or DEFAULT_SMP_FILE_ATTRIBUTE_NAMES
        dir_attributes = dir_attributes or DEFAULT_DIR_ATTRIBUTE_NAMES

        Base.__init__(self, conf=conf, base_path=base_path, file_attributes=file_attributes,
                      dir_attributes=dir_attributes, domain=domain, port=port)

        self.locator = conf.get("locator")
        self.request_executor = conf.get("request_executor", DEFAULT_REQUEST_EXECUTOR)
        self.processors = conf.get("processors", DEFAULT_PROCESSORS)
        self.certificate_finder = conf.get("certificate_finder", DEFAULT_CERTIFICATE_FINDER)
        self.trust_validator = conf.get("trust_validator")
        self.max_redirects = conf.get("max_redirects", DEFAULT_MAX_REDIRECTS)
        self.httpc_params = conf.get("httpc_params", {})


def load_configuration(filename: str, base_path: Optional[str] = '') -> SMPClientConfiguration:
    return create_from_config_file(SMPClientConfiguration, filename=filename, base_path=base_path)


def _instantiate(spec: dict, what: str, **kwargs):
    try:
        _obj = execute(spec, **kwargs)
    except (ImportError, AttributeError, KeyError, TypeError, ValueError) as err:
        logger.error(f"Could not instantiate {what}: {err}")
        raise ConfigurationError(f"Could not instantiate {what} from {spec}") from err
    if _obj is None:
        raise ConfigurationError(f"Could not instantiate {what} from {spec}")
    return _obj


def build_client(conf: Union[dict, SMPClientConfiguration]) -> SMPClient:
    """
    Build an SMP client from configuration.

    :param conf: Configuration as a dictionary or a SMPClientConfiguration instance
    :return: A SMPClient instance
    """
    if not isinstance(conf, SMPClientConfiguration):
        conf = SMPClientConfiguration(conf)

    if not conf.locator:
        raise ConfigurationError("No locator configured")
    locator = _instantiate(conf.locator, "locator")

    request_executor = _instantiate(conf.request_executor, "request executor",
                                    httpc_params=conf.httpc_params)

    _finder = conf.certificate_finder
    if isinstance(_finder, str):
        try:
            _finder = importer(_finder)
        except (ImportError, AttributeError, ValueError) as err:
            raise ConfigurationError(f"Could not import certificate finder {_finder}") from err

    if conf.trust_validator:
        trust_validator = _instantiate(conf.trust_validator, "trust validator")
    else:
        trust_validator = None

    return SMPClient(locator=locator,
                     request_executor=request_executor,
                     processors=build_processors(conf.processors),
                     certificate_finder=_finder,
                     trust_validator=trust_validator,
                     max_redirects=conf.max_redirects)

import logging
from urllib.parse import urlparse

from smpclient.datamodel import Identifier
from smpclient.exception import ConfigurationError

logger = logging.getLogger(__name__)


class ParticipantLocator(object):
    """
    Finds the base URI of the SMP that publishes the metadata of a participant.
    """

    def locate(self, participant_id: Identifier) -> str:
        """
        :param participant_id: The participant identifier
        :return: The base URI of the participant's SMP
        """
        raise NotImplementedError()


def check_url(url: str) -> bool:
    _part = urlparse(url)
    return _part.scheme in ("http", "https") and bool(_part.netloc)


class StaticLocator(ParticipantLocator):
    """Every participant is served by the same SMP."""

    def __init__(self, url: str, **kwargs):
        if not url or not check_url(url):
            raise ConfigurationError(f"Not a usable SMP URL: '{url}'")
        self.url = url

    def locate(self, participant_id: Identifier) -> str:
        logger.debug(f"Static SMP location for {participant_id}: {self.url}")
        return self.url

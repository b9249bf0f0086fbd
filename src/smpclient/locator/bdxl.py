import logging
import re
from typing import List
from typing import Optional
from typing import Union

import dns.exception
import dns.resolver
from cryptojwt import as_unicode
from idpyoidc.server.util import execute

from smpclient.datamodel import Identifier
from smpclient.defaults import DEFAULT_DNS_TIMEOUT
from smpclient.defaults import SMP_NAPTR_SERVICE
from smpclient.exception import LookupFailed
from smpclient.exception import NotRegistered
from smpclient.locator import ParticipantLocator
from smpclient.locator.hostname import HostnameGenerator

logger = logging.getLogger(__name__)

# Matches the whole input, the replacement is used as is.
MATCH_ALL = "^.*$"


def split_naptr_regexp(regexp: str) -> List[str]:
    """
    Split a NAPTR substitution expression, "<d>pattern<d>replacement<d>flags" where <d> is
    the delimiter character, into its parts.

    :param regexp: The substitution expression
    :return: [pattern, replacement, flags]
    """
    if len(regexp) < 2:
        raise ValueError(f"Not a substitution expression: '{regexp}'")
    _delim = regexp[0]
    _parts = re.split(r"(?<!\\)" + re.escape(_delim), regexp[1:])
    if len(_parts) < 2:
        raise ValueError(f"Not a substitution expression: '{regexp}'")
    _parts = [p.replace("\\" + _delim, _delim) for p in _parts]
    if len(_parts) == 2:
        _parts.append("")
    return _parts[:3]


def apply_naptr_regexp(regexp: str, hostname: str) -> Optional[str]:
    """
    Apply a NAPTR substitution expression to a hostname. The pattern must match the whole
    hostname, which is then replaced by the replacement.

    :return: The substitution result or None if the pattern does not match
    """
    pattern, replacement, flags = split_naptr_regexp(regexp)
    if pattern == MATCH_ALL:
        return replacement

    _flags = re.IGNORECASE if "i" in flags else 0
    _match = re.fullmatch(pattern, hostname, _flags)
    if _match is None:
        return None
    # \N in the replacement refers to group N of the match
    return re.sub(r"\\(\d)", lambda m: _match.group(int(m.group(1))) or "", replacement)


class DNSLocator(ParticipantLocator):
    """
    Locates the SMP through a NAPTR lookup of a hostname derived from the participant
    identifier. This is the OASIS BDXL mechanism.

    :param hostname_generator: A :py:class:`HostnameGenerator` or a configuration spec for one
    :param service: The NAPTR service tag
    :param resolver: A dnspython resolver. A new one is created per lookup if not given.
    :param timeout: Timeout of a DNS lookup in seconds
    """

    def __init__(self,
                 hostname_generator: Union[HostnameGenerator, dict],
                 service: Optional[str] = SMP_NAPTR_SERVICE,
                 resolver: Optional[dns.resolver.Resolver] = None,
                 timeout: Optional[float] = DEFAULT_DNS_TIMEOUT,
                 **kwargs):
        if isinstance(hostname_generator, dict):
            hostname_generator = execute(hostname_generator)
        self.hostname_generator = hostname_generator
        self.service = service
        self.resolver = resolver
        self.timeout = timeout

    def _get_resolver(self):
        if self.resolver:
            return self.resolver
        _resolver = dns.resolver.Resolver()
        _resolver.timeout = self.timeout
        _resolver.lifetime = self.timeout
        return _resolver

    def naptr_records(self, hostname: str) -> list:
        try:
            _answer = self._get_resolver().resolve(hostname, "NAPTR")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer) as err:
            logger.debug(f"No NAPTR records for {hostname}: {err}")
            raise NotRegistered(f"No SMP registration found for {hostname}") from err
        except (dns.exception.DNSException, OSError) as err:
            logger.error(f"NAPTR lookup of {hostname} failed: {err}")
            raise LookupFailed(f"NAPTR lookup of {hostname} failed") from err

        return sorted(_answer, key=lambda r: (r.order, r.preference))

    def _select(self, records: list):
        for record in records:
            if as_unicode(record.service).lower() != self.service.lower():
                continue
            if as_unicode(record.flags).upper() != "U":
                continue
            return record
        return None

    def locate(self, participant_id: Identifier) -> str:
        hostname = self.hostname_generator.hostname_for(participant_id)
        logger.debug(f"Locate SMP of {participant_id} using {hostname}")

        record = self._select(self.naptr_records(hostname))
        if record is None:
            raise NotRegistered(f"No '{self.service}' NAPTR record for {hostname}")

        _regexp = as_unicode(record.regexp)
        try:
            url = apply_naptr_regexp(_regexp, hostname)
        except (ValueError, IndexError, re.error) as err:
            logger.error(f"Unusable NAPTR rule '{_regexp}' for {hostname}: {err}")
            raise NotRegistered(f"Participant {participant_id} not correctly registered") from err

        if not url:
            raise NotRegistered(f"Participant {participant_id} not correctly registered")

        logger.debug(f"SMP of {participant_id} is at {url}")
        return url

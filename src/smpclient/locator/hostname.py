"""Derives the DNS names under which participants are registered."""
import base64
import hashlib

from smpclient.datamodel import Identifier
from smpclient.exception import UnsupportedIdentifier


class HostnameGenerator(object):

    def __init__(self, domain: str, **kwargs):
        self.domain = domain.strip(".")

    def _check(self, participant_id: Identifier):
        if participant_id.scheme is None:
            raise UnsupportedIdentifier(
                f"Participant identifier without scheme can not be located: {participant_id}")

    def hostname_for(self, participant_id: Identifier) -> str:
        raise NotImplementedError()


class BDXLHostnameGenerator(HostnameGenerator):
    """
    The OASIS BDXL naming: the base32 encoded SHA-256 hash of the lower cased identifier
    value, followed by the scheme and the SML domain.
    """

    def hostname_for(self, participant_id: Identifier) -> str:
        self._check(participant_id)
        _digest = hashlib.sha256(participant_id.value.lower().encode("utf-8")).digest()
        _label = base64.b32encode(_digest).decode("ascii").rstrip("=")
        return f"{_label}.{participant_id.scheme_id}.{self.domain}"


class PeppolHostnameGenerator(HostnameGenerator):
    """The classic PEPPOL SML naming, "B-" plus the MD5 hash of the identifier value."""

    def hostname_for(self, participant_id: Identifier) -> str:
        self._check(participant_id)
        _digest = hashlib.md5(participant_id.value.lower().encode("utf-8")).hexdigest()
        return f"B-{_digest}.{participant_id.scheme_id}.{self.domain}"

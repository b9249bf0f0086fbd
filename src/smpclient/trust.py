import logging
from datetime import datetime
from datetime import timezone
from typing import List
from typing import Optional
from typing import Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature

from smpclient.datamodel import Certificate
from smpclient.exception import ConfigurationError

logger = logging.getLogger(__name__)


class TrustValidator(object):
    """Decides whether an SMP signing certificate can be trusted."""

    def is_trusted(self, certificate: Certificate) -> bool:
        raise NotImplementedError()


def load_trust_anchors(anchors: List[Union[str, bytes, Certificate]]) -> List[Certificate]:
    res = []
    for anchor in anchors:
        if isinstance(anchor, Certificate):
            res.append(anchor)
            continue
        if isinstance(anchor, str):
            anchor = anchor.encode("ascii")
        try:
            res.extend(Certificate.from_x509(c) for c in x509.load_pem_x509_certificates(anchor))
        except ValueError as err:
            raise ConfigurationError(f"Could not load trust anchor: {err}") from err
    return res


class TrustStoreValidator(TrustValidator):
    """
    A certificate is trusted if it is one of the trust anchors or is directly issued by one
    of them. The certificate must also be within its validity period.

    :param trust_anchors: PEM encoded certificates or Certificate instances
    :param pem_file: Name of a file with PEM encoded trust anchors
    :param check_validity: Whether the validity period should be checked
    """

    def __init__(self,
                 trust_anchors: Optional[List[Union[str, bytes, Certificate]]] = None,
                 pem_file: Optional[str] = "",
                 check_validity: Optional[bool] = True,
                 **kwargs):
        self.trust_anchors = load_trust_anchors(trust_anchors or [])
        if pem_file:
            try:
                with open(pem_file, "rb") as fp:
                    self.trust_anchors.extend(load_trust_anchors([fp.read()]))
            except OSError as err:
                raise ConfigurationError(f"Could not read trust anchors: {err}") from err

        if not self.trust_anchors:
            raise ConfigurationError("No trust anchors")
        self.check_validity = check_validity

    def _issued_by_anchor(self, certificate: x509.Certificate) -> bool:
        for anchor in self.trust_anchors:
            _anchor = anchor.certificate()
            if _anchor.subject != certificate.issuer:
                continue
            try:
                certificate.verify_directly_issued_by(_anchor)
            except (ValueError, TypeError, InvalidSignature) as err:
                logger.debug(f"Not issued by {_anchor.subject.rfc4514_string()}: {err}")
                continue
            return True
        return False

    def is_trusted(self, certificate: Certificate, at: Optional[datetime] = None) -> bool:
        if self.check_validity and not certificate.is_valid(at or datetime.now(timezone.utc)):
            logger.warning(f"Certificate outside its validity period: {certificate.subject}")
            return False

        if any(anchor.x509 == certificate.x509 for anchor in self.trust_anchors):
            return True
        return self._issued_by_anchor(certificate.certificate())

class SMPClientError(Exception):
    pass


class ConfigurationError(SMPClientError):
    pass


class LocatorError(SMPClientError):
    pass


class NotRegistered(LocatorError):
    pass


class LookupFailed(LocatorError):
    pass


class UnsupportedIdentifier(LocatorError):
    pass


class SMPQueryError(SMPClientError):
    pass


class SMPConnectionError(SMPQueryError):
    pass


class UnsupportedProtocolError(SMPConnectionError):
    pass


class NotFound(SMPConnectionError):
    pass


class UnparsableResponseError(SMPQueryError):
    pass


class UnknownResponseError(SMPQueryError):
    pass


class InvalidSignatureError(SMPQueryError):
    pass


class UntrustedCertificateError(SMPQueryError):
    pass


class TooManyRedirections(SMPQueryError):
    pass


class InvalidRedirectionError(SMPQueryError):
    pass


class AmbiguousMetadataError(SMPQueryError):
    pass

DEFAULT_MAX_REDIRECTS = 1
DEFAULT_HTTP_TIMEOUT = 30
DEFAULT_DNS_TIMEOUT = 10.0

SMP_NAPTR_SERVICE = "Meta:SMP"

DEFAULT_HTTPC_PARAMS = {
    "timeout": DEFAULT_HTTP_TIMEOUT
}

PROCESSORS = {
    "oasis_v1": {
        "class": "smpclient.processing.oasis_v1.OASISv1ResultProcessor",
        "kwargs": {}
    },
    "oasis_v2": {
        "class": "smpclient.processing.oasis_v2.OASISv2ResultProcessor",
        "kwargs": {}
    },
    "peppol": {
        "class": "smpclient.processing.peppol.PeppolResultProcessor",
        "kwargs": {}
    }
}

DEFAULT_PROCESSORS = PROCESSORS

DEFAULT_REQUEST_EXECUTOR = {
    "class": "smpclient.request.DefaultRequestExecutor",
    "kwargs": {}
}

DEFAULT_CERTIFICATE_FINDER = "smpclient.signature.embedded_certificate_finder"

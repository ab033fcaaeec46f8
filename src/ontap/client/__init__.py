"""HTTP client module for ontap.

Turns a leaf command's bound values into a request, sends it with
:mod:`httpx` and post-processes the response.

Classes:
    :class:`RequestInputs` -- what the user supplied on the command line.
    :class:`RequestDescriptor` -- the resolved request.
    :class:`SyncClient` -- blocking client backed by :class:`httpx.Client`.
    :class:`ResponseEnvelope` -- status, headers, body and elapsed time.

Example::

    from ontap.client import SyncClient, build_request

    descriptor = build_request(endpoint, inputs, api_config)
    with SyncClient() as client:
        envelope = client.send(descriptor)
"""

from ontap.client.request import RequestDescriptor, RequestInputs, build_request
from ontap.client.response import decode_body, extract_fields, filter_data, raise_for_status
from ontap.client.sync_client import ResponseEnvelope, SyncClient

__all__ = [
    "RequestDescriptor",
    "RequestInputs",
    "ResponseEnvelope",
    "SyncClient",
    "build_request",
    "decode_body",
    "extract_fields",
    "filter_data",
    "raise_for_status",
]

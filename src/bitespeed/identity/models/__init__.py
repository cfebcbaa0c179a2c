from .contracts import (  # noqa: F401
    Contact,
    ConsolidatedContact,
    ContactCreatedResponse,
    ContactPayload,
    IdentifyContactRequest,
    IdentifyContactResponse,
    LinkPrecedence,
)

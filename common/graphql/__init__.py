from common.graphql.client import TemplateApiClient
from common.graphql.operations import (
    CreateTemplateRequest,
    GetTemplateRequest,
    TemplateRef,
    build_create_request,
)

__all__ = [
    "TemplateApiClient",
    "CreateTemplateRequest",
    "GetTemplateRequest",
    "TemplateRef",
    "build_create_request",
]

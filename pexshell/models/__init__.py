"""Data models for pexshell.

Schema definitions discovered from the target and the transient values
that flow through the request pipeline.
"""

from pexshell.models.invocation import (
    CredentialKind,
    Credentials,
    HttpRequest,
    HttpResponse,
    Invocation,
    ResultPage,
    Token,
    TokenScheme,
)
from pexshell.models.schema import (
    CachedSchema,
    FieldDefinition,
    FieldKind,
    FilterOperator,
    Operation,
    ResourceDefinition,
    SchemaModel,
    applicable_operators,
    argument_name,
)

__all__ = [
    "CachedSchema",
    "FieldDefinition",
    "FieldKind",
    "FilterOperator",
    "Operation",
    "ResourceDefinition",
    "SchemaModel",
    "applicable_operators",
    "argument_name",
    "CredentialKind",
    "Credentials",
    "HttpRequest",
    "HttpResponse",
    "Invocation",
    "ResultPage",
    "Token",
    "TokenScheme",
]

"""Typed GraphQL operations for the template API."""

from __future__ import annotations

from typing import Any, ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from common.exceptions import ProtocolError

CREATE_TEMPLATE_QUERY = """
mutation($in:CreateTemplateInput!){
  createTemplate(input:$in){ template{ id status zipUrl } }
}
""".strip()

GET_TEMPLATE_QUERY = "query($id:ID!){getTemplate(id:$id){template{status zipUrl}}}"


class EndpointInput(BaseModel):
    """Generated service endpoint."""
    protocol: str = Field(default="GRPC")
    role: str = Field(default="SERVER")


class DatabaseInput(BaseModel):
    """Database engine and schema for the generated service."""
    type: str = Field(default="POSTGRESQL")
    ddl: str = Field(default="CREATE TABLE t(id int);")


class DockerInput(BaseModel):
    """Container registry and image for the generated service."""
    model_config = ConfigDict(populate_by_name=True)

    registry: str = Field(default="docker.io")
    image_name: str = Field(default="demo", alias="imageName")


class CreateTemplateInput(BaseModel):
    """Variables of the createTemplate mutation."""
    name: str
    endpoints: list[EndpointInput] = Field(default_factory=lambda: [EndpointInput()])
    database: DatabaseInput = Field(default_factory=DatabaseInput)
    docker: DockerInput = Field(default_factory=DockerInput)


class CreateTemplateRequest(BaseModel):
    """createTemplate operation."""
    operation: Literal["createTemplate"] = "createTemplate"
    query: ClassVar[str] = CREATE_TEMPLATE_QUERY

    input: CreateTemplateInput

    def to_body(self) -> dict:
        """HTTP JSON body ``{query, variables}``."""
        return {
            "query": self.query,
            "variables": {"in": self.input.model_dump(by_alias=True)},
        }


class GetTemplateRequest(BaseModel):
    """getTemplate operation."""
    operation: Literal["getTemplate"] = "getTemplate"
    query: ClassVar[str] = GET_TEMPLATE_QUERY

    id: str

    def to_body(self) -> dict:
        """HTTP JSON body ``{query, variables}``."""
        return {
            "query": self.query,
            "variables": {"id": self.id},
        }


class TemplateRef(BaseModel):
    """Template fields the harness reads back."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    status: Optional[str] = None
    zip_url: Optional[str] = Field(default=None, alias="zipUrl")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        """GraphQL ID may arrive as a number."""
        if v is None or v == "":
            return None
        return str(v)


def build_create_request(name: str) -> CreateTemplateRequest:
    """Create request with the fixed construction payload."""
    return CreateTemplateRequest(input=CreateTemplateInput(name=name))


def extract_template(body: Any, operation: str) -> Optional[TemplateRef]:
    """Read ``data.<operation>.template`` from a GraphQL response body.

    Returns ``None`` when the path is absent. Raises ``ProtocolError`` when the
    body is not a GraphQL response at all, or carries errors and no data.
    """
    if not isinstance(body, dict):
        raise ProtocolError(f"{operation}: response body is not an object")

    data = body.get("data")
    if data is None:
        errors = body.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else errors
            message = first.get("message") if isinstance(first, dict) else str(first)
            raise ProtocolError(f"{operation}: {message}")
        return None

    if not isinstance(data, dict):
        raise ProtocolError(f"{operation}: 'data' is not an object")

    payload = data.get(operation)
    if not isinstance(payload, dict):
        return None

    template = payload.get("template")
    if not isinstance(template, dict):
        return None

    try:
        return TemplateRef.model_validate(template)
    except ValidationError as e:
        raise ProtocolError(f"{operation}: malformed template: {e}") from e

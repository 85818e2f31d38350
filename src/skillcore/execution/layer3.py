"""Layer 3: API calls and workflows.

A layer 3 skill either calls one endpoint of a registered API wrapper or
runs a declared workflow whose steps call APIs, invoke other skills,
transform data and evaluate conditions.
"""

import base64
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field

from skillcore.exceptions import (
    ExecutionError,
    ExecutionErrorKind,
    ExecutionTimeoutError,
    FunctionNotFoundError,
)
from skillcore.execution.models import ResourceUsage
from skillcore.execution.workflow import WorkflowRunner
from skillcore.skills.models import ErrorHandlingStrategy, SkillDefinition

logger = logging.getLogger(__name__)


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


class ParameterLocation(str, Enum):
    QUERY = "query"
    PATH = "path"
    HEADER = "header"
    BODY = "body"


class AuthType(str, Enum):
    NONE = "none"
    API_KEY = "api_key"
    BEARER_TOKEN = "bearer_token"
    BASIC_AUTH = "basic_auth"


class ApiAuth(BaseModel):
    """Authentication applied to every request of an API wrapper.

    Config keys by type:
        api_key: ``key`` and optional ``header`` (default ``X-API-Key``)
        bearer_token: ``token``
        basic_auth: ``username`` and ``password``
    """

    type: AuthType = AuthType.NONE
    config: dict[str, str] = Field(default_factory=dict)

    def headers(self) -> dict[str, str]:
        if self.type == AuthType.API_KEY:
            return {self.config.get("header", "X-API-Key"): self.config.get("key", "")}
        if self.type == AuthType.BEARER_TOKEN:
            return {"Authorization": f"Bearer {self.config.get('token', '')}"}
        if self.type == AuthType.BASIC_AUTH:
            raw = f"{self.config.get('username', '')}:{self.config.get('password', '')}"
            return {"Authorization": f"Basic {base64.b64encode(raw.encode()).decode()}"}
        return {}


class ApiParameter(BaseModel):
    name: str
    location: ParameterLocation = ParameterLocation.QUERY
    required: bool = False
    default_value: Any = None


class ApiEndpoint(BaseModel):
    """A named endpoint; ``path`` may contain ``{name}`` placeholders."""

    name: str
    method: HttpMethod = HttpMethod.GET
    path: str = "/"
    parameters: list[ApiParameter] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)


class ApiWrapper(BaseModel):
    """A remote API: base URL, authentication and named endpoints."""

    name: str
    base_url: str
    authentication: ApiAuth = Field(default_factory=ApiAuth)
    endpoints: list[ApiEndpoint] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)

    def endpoint(self, name: str) -> ApiEndpoint:
        for endpoint in self.endpoints:
            if endpoint.name == name:
                return endpoint
        raise FunctionNotFoundError(
            f"Endpoint '{name}' not found in API '{self.name}'",
            operation="execute",
            suggestions=[f"Available endpoints: {', '.join(e.name for e in self.endpoints)}"],
        )


class ApiRegistry:
    """Named API wrappers available to layer 3 skills."""

    def __init__(self) -> None:
        self._apis: dict[str, ApiWrapper] = {}

    def register(self, api: ApiWrapper | dict[str, Any], replace: bool = False) -> ApiWrapper:
        if isinstance(api, dict):
            api = ApiWrapper.model_validate(api)
        if api.name in self._apis and not replace:
            raise ValueError(f"API '{api.name}' already registered")
        self._apis[api.name] = api
        logger.debug(f"Registered API '{api.name}' ({api.base_url})")
        return api

    def unregister(self, name: str) -> None:
        self.get(name)
        del self._apis[name]

    def get(self, name: str) -> ApiWrapper:
        api = self._apis.get(name)
        if api is None:
            raise FunctionNotFoundError(
                f"API '{name}' not found",
                operation="execute",
                suggestions=[f"Register '{name}' with ApiRegistry.register()"],
            )
        return api

    def list_apis(self) -> list[str]:
        return sorted(self._apis)


def _status_error(response: httpx.Response, api: str, endpoint: str) -> ExecutionError:
    status = response.status_code
    if status in (401, 403):
        kind = ExecutionErrorKind.PERMISSION
    elif status == 429:
        kind = ExecutionErrorKind.RESOURCE
    elif status >= 500:
        kind = ExecutionErrorKind.DEPENDENCY
    else:
        kind = ExecutionErrorKind.RUNTIME
    return ExecutionError(
        f"API {api}.{endpoint} returned HTTP {status}",
        error_kind=kind,
        context={"status_code": status, "body": response.text[:500]},
    )


class ApiClient:
    """Async HTTP client for registered API wrappers.

    Args:
        transport: Optional httpx transport (e.g. ``httpx.MockTransport`` in tests)
        timeout: Request timeout in seconds
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 30.0):
        self._transport = transport
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request(
        self, api: ApiWrapper, endpoint: ApiEndpoint, params: dict[str, Any]
    ) -> httpx.Request:
        """Place params into path, query, headers and body per the endpoint."""
        declared = {p.name: p for p in endpoint.parameters}
        path_values: dict[str, Any] = {}
        query: dict[str, Any] = {}
        headers = {**api.headers, **endpoint.headers, **api.authentication.headers()}
        body: dict[str, Any] = {}

        for param in endpoint.parameters:
            if param.name not in params and param.default_value is None and param.required:
                raise ExecutionError(
                    f"Missing required API parameter '{param.name}'",
                    error_kind=ExecutionErrorKind.RUNTIME,
                )

        values = {p.name: p.default_value for p in endpoint.parameters if p.default_value is not None}
        values.update(params)

        for name, value in values.items():
            param = declared.get(name)
            if param is not None:
                location = param.location
            elif f"{{{name}}}" in endpoint.path:
                location = ParameterLocation.PATH
            elif endpoint.method in (HttpMethod.GET, HttpMethod.DELETE):
                location = ParameterLocation.QUERY
            else:
                location = ParameterLocation.BODY

            if location == ParameterLocation.PATH:
                path_values[name] = value
            elif location == ParameterLocation.HEADER:
                headers[name] = str(value)
            elif location == ParameterLocation.BODY:
                body[name] = value
            else:
                query[name] = value

        try:
            path = endpoint.path.format(**path_values)
        except KeyError as e:
            raise ExecutionError(
                f"Missing path parameter {e} for endpoint '{endpoint.name}'",
                error_kind=ExecutionErrorKind.RUNTIME,
            ) from e

        url = api.base_url.rstrip("/") + "/" + path.lstrip("/")
        return self._ensure_client().build_request(
            endpoint.method.value,
            url,
            params=query or None,
            headers=headers,
            json=body or None,
        )

    async def call(
        self,
        api: ApiWrapper,
        endpoint_name: str,
        params: dict[str, Any],
        usage: ResourceUsage | None = None,
    ) -> Any:
        """Call an endpoint and return its decoded body.

        Raises:
            ExecutionError: with a sub-kind derived from the HTTP status or
                transport failure
        """
        endpoint = api.endpoint(endpoint_name)
        request = self.build_request(api, endpoint, params)
        logger.debug(f"API call {request.method} {request.url}")

        if usage is not None:
            usage.network_requests += 1
        try:
            response = await self._ensure_client().send(request)
        except httpx.TimeoutException as e:
            raise ExecutionTimeoutError(
                f"API {api.name}.{endpoint_name} timed out", original_error=e
            ) from e
        except httpx.HTTPError as e:
            raise ExecutionError(
                f"API {api.name}.{endpoint_name} unreachable: {e}",
                error_kind=ExecutionErrorKind.DEPENDENCY,
                original_error=e,
            ) from e

        if usage is not None:
            usage.output_bytes += len(response.content)
        if response.is_error:
            raise _status_error(response, api.name, endpoint_name)

        if "json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text


# Invokes another skill by id from a workflow step
SkillInvoker = Callable[[str, dict[str, Any]], Awaitable[Any]]


class Layer3Executor:
    """Executes layer 3 skills: a single API call or a workflow."""

    def __init__(self, apis: ApiRegistry, client: ApiClient, max_concurrency: int = 8):
        self.apis = apis
        self.client = client
        self.max_concurrency = max_concurrency

    async def call_api(
        self,
        api_name: str,
        endpoint: str,
        params: dict[str, Any],
        usage: ResourceUsage | None = None,
    ) -> Any:
        return await self.client.call(self.apis.get(api_name), endpoint, params, usage)

    async def execute(
        self,
        skill: SkillDefinition,
        params: dict[str, Any],
        usage: ResourceUsage,
        invoke_skill: SkillInvoker,
    ) -> Any:
        context = skill.execution_context
        workflow = params.get("workflow") or context.workflow

        if workflow is not None:
            runner = WorkflowRunner(
                call_api=lambda api, endpoint, p: self.call_api(api, endpoint, p, usage),
                invoke_skill=invoke_skill,
                max_concurrency=self.max_concurrency,
            )
            inputs = {k: v for k, v in params.items() if k != "workflow"}
            result = await runner.run(workflow, inputs)
            if (
                not result.success
                and result.error_handling == ErrorHandlingStrategy.FAIL_FAST
            ):
                failed = result.first_failure()
                raise ExecutionError(
                    f"Workflow '{result.workflow}' failed at step '{failed.step_id}': {failed.error}",
                    error_kind=failed.error_kind or ExecutionErrorKind.RUNTIME,
                    context={"workflow": result.to_dict()},
                )
            return result.to_dict()

        api_name = params.get("api") or context.api
        endpoint = params.get("endpoint") or context.endpoint
        if not endpoint:
            raise ExecutionError(
                f"Skill '{skill.id}' declares API '{api_name}' but no endpoint",
                error_kind=ExecutionErrorKind.RUNTIME,
            )
        api_params = params.get("params")
        if not isinstance(api_params, dict):
            api_params = {k: v for k, v in params.items() if k not in ("api", "endpoint")}
        return await self.call_api(api_name, endpoint, api_params, usage)

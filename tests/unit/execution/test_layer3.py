"""Unit tests for layer 3 API calls."""

import json

import httpx
import pytest

from skillcore.exceptions import (
    ExecutionError,
    ExecutionErrorKind,
    ExecutionTimeoutError,
    FunctionNotFoundError,
)
from skillcore.execution.layer3 import (
    ApiAuth,
    ApiClient,
    ApiEndpoint,
    ApiParameter,
    ApiRegistry,
    AuthType,
    Layer3Executor,
)
from skillcore.execution.models import ResourceUsage
from tests.helpers.builders import build_api, build_skill


@pytest.mark.unit
@pytest.mark.execution
class TestApiRegistry:
    """Tests for ApiRegistry."""

    def test_register_from_mapping(self):
        """Test wrappers can be registered from plain dicts."""
        registry = ApiRegistry()

        api = registry.register({"name": "weather", "base_url": "https://weather.test"})

        assert registry.get("weather") is api
        assert registry.list_apis() == ["weather"]

    def test_duplicate_rejected(self):
        """Test names are unique unless replace is set."""
        registry = ApiRegistry()
        registry.register(build_api())

        with pytest.raises(ValueError):
            registry.register(build_api())
        registry.register(build_api(), replace=True)

    def test_unknown_api(self):
        """Test missing APIs raise FunctionNotFoundError."""
        with pytest.raises(FunctionNotFoundError):
            ApiRegistry().get("ghost")

    def test_unknown_endpoint(self):
        """Test missing endpoints list the available ones."""
        with pytest.raises(FunctionNotFoundError) as exc_info:
            build_api().endpoint("ghost")

        assert "get_item" in exc_info.value.suggestions[0]


@pytest.mark.unit
@pytest.mark.execution
class TestApiAuth:
    """Tests for ApiAuth header generation."""

    def test_api_key(self):
        auth = ApiAuth(type=AuthType.API_KEY, config={"key": "k1"})

        assert auth.headers() == {"X-API-Key": "k1"}

    def test_bearer(self):
        auth = ApiAuth(type=AuthType.BEARER_TOKEN, config={"token": "t"})

        assert auth.headers() == {"Authorization": "Bearer t"}

    def test_basic(self):
        auth = ApiAuth(type=AuthType.BASIC_AUTH, config={"username": "u", "password": "p"})

        assert auth.headers() == {"Authorization": "Basic dTpw"}

    def test_none(self):
        assert ApiAuth().headers() == {}


@pytest.mark.unit
@pytest.mark.execution
class TestBuildRequest:
    """Tests for ApiClient.build_request parameter placement."""

    def test_path_parameter(self):
        """Test declared path params fill the placeholder."""
        api = build_api()
        request = ApiClient().build_request(api, api.endpoint("get_item"), {"item_id": 7})

        assert str(request.url) == "https://api.example.test/items/7"

    def test_missing_required_parameter(self):
        """Test required params without a default are enforced."""
        api = build_api()

        with pytest.raises(ExecutionError, match="item_id") as exc_info:
            ApiClient().build_request(api, api.endpoint("get_item"), {})

        assert exc_info.value.error_kind == ExecutionErrorKind.RUNTIME

    def test_undeclared_get_params_go_to_query(self):
        """Test undeclared params on GET become query params."""
        api = build_api()
        request = ApiClient().build_request(api, api.endpoint("list_items"), {"limit": 5})

        assert request.url.params["limit"] == "5"
        assert request.content == b""

    def test_undeclared_post_params_go_to_body(self):
        """Test undeclared params on POST become the JSON body."""
        api = build_api()
        request = ApiClient().build_request(api, api.endpoint("create_item"), {"name": "x"})

        assert json.loads(request.content) == {"name": "x"}

    def test_header_and_default_parameters(self):
        """Test header placement, defaults and auth headers."""
        api = build_api(
            authentication=ApiAuth(type=AuthType.BEARER_TOKEN, config={"token": "secret"})
        )
        endpoint = ApiEndpoint(
            name="search",
            path="/search",
            parameters=[
                ApiParameter(name="X-Trace", location="header"),
                ApiParameter(name="page", default_value=1),
            ],
        )

        request = ApiClient().build_request(api, endpoint, {"X-Trace": "abc"})

        assert request.headers["X-Trace"] == "abc"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.url.params["page"] == "1"


@pytest.mark.unit
@pytest.mark.execution
class TestApiClient:
    """Tests for ApiClient.call against a mock transport."""

    @pytest.mark.asyncio
    async def test_json_response(self, api_client):
        """Test JSON bodies are decoded and usage recorded."""
        usage = ResourceUsage()

        result = await api_client.call(build_api(), "get_item", {"item_id": 42}, usage)

        assert result == {"id": 42, "name": "answer"}
        assert usage.network_requests == 1
        assert usage.output_bytes > 0
        await api_client.aclose()

    @pytest.mark.asyncio
    async def test_text_response(self, api_client):
        """Test non-JSON bodies are returned as text."""
        assert await api_client.call(build_api(), "get_item", {"item_id": "text"}) == "plain"
        await api_client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "item_id,kind",
        [
            ("forbidden", ExecutionErrorKind.PERMISSION),
            ("limited", ExecutionErrorKind.RESOURCE),
            ("broken", ExecutionErrorKind.DEPENDENCY),
            ("missing", ExecutionErrorKind.RUNTIME),
        ],
    )
    async def test_status_mapping(self, api_client, item_id, kind):
        """Test HTTP error statuses map to failure sub-kinds."""
        with pytest.raises(ExecutionError) as exc_info:
            await api_client.call(build_api(), "get_item", {"item_id": item_id})

        assert exc_info.value.error_kind == kind
        assert "status_code" in exc_info.value.context
        await api_client.aclose()

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        """Test transport timeouts become ExecutionTimeoutError."""

        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = ApiClient(transport=httpx.MockTransport(handler))

        with pytest.raises(ExecutionTimeoutError):
            await client.call(build_api(), "list_items", {})
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        """Test unreachable hosts are a dependency failure."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = ApiClient(transport=httpx.MockTransport(handler))

        with pytest.raises(ExecutionError) as exc_info:
            await client.call(build_api(), "list_items", {})

        assert exc_info.value.error_kind == ExecutionErrorKind.DEPENDENCY
        await client.aclose()


@pytest.mark.unit
@pytest.mark.execution
class TestLayer3Executor:
    """Tests for Layer3Executor single API calls."""

    @pytest.mark.asyncio
    async def test_declared_endpoint(self, apis, api_client):
        """Test the skill's api and endpoint are used with its params."""
        executor = Layer3Executor(apis, api_client)
        skill = build_skill("get", layer=3, api="catalog", endpoint="get_item")

        result = await executor.execute(skill, {"item_id": 42}, ResourceUsage(), _no_skills)

        assert result["name"] == "answer"
        await api_client.aclose()

    @pytest.mark.asyncio
    async def test_explicit_params_mapping(self, apis, api_client):
        """Test a params mapping is passed to the endpoint as-is."""
        executor = Layer3Executor(apis, api_client)
        skill = build_skill("create", layer=3, api="catalog", endpoint="create_item")

        result = await executor.execute(
            skill, {"params": {"name": "widget"}}, ResourceUsage(), _no_skills
        )

        assert result == {"created": {"name": "widget"}}
        await api_client.aclose()

    @pytest.mark.asyncio
    async def test_missing_endpoint(self, apis, api_client):
        """Test an API without an endpoint is a runtime failure."""
        executor = Layer3Executor(apis, api_client)
        skill = build_skill("bare", layer=3, api="catalog")

        with pytest.raises(ExecutionError, match="no endpoint"):
            await executor.execute(skill, {}, ResourceUsage(), _no_skills)


async def _no_skills(skill_id, params):
    raise AssertionError(f"Unexpected nested call to {skill_id}")

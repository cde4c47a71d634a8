"""Tests for llm.py — tool-calling intent resolution over healthy services."""
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from voxdispatch.errors import NoHealthyServicesError, UpstreamError, ValidationError
from voxdispatch.llm import (
    IntentResolver,
    ConfidentDecision,
    UncertainDecision,
    SYSTEM_PROMPT,
    parse_arguments,
)
from voxdispatch.models import Service, STATUS_UNHEALTHY

from fakes import WEATHER_DOC, LIGHTS_DOC, make_llm_client, tool_call


async def _register_all(registry, backend):
    backend.add_service("http://weather.local", WEATHER_DOC)
    backend.add_service("http://lights.local", LIGHTS_DOC)
    weather = await registry.register("http://weather.local", "wk")
    lights = await registry.register("http://lights.local", "lk")
    return weather, lights


class TestParseArguments:
    def test_object(self):
        assert parse_arguments('{"city": "Berlin"}') == {"city": "Berlin"}

    def test_empty_string(self):
        assert parse_arguments("") == {}

    def test_none(self):
        assert parse_arguments(None) == {}

    def test_invalid_json(self):
        with pytest.raises(ValidationError):
            parse_arguments('{"city": ')

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            parse_arguments('["Berlin"]')


class TestRouteRequest:
    @pytest.mark.asyncio
    async def test_empty_registry_raises_eligibility_error(self, registry):
        client = make_llm_client()
        resolver = IntentResolver(registry, client=client)

        with pytest.raises(NoHealthyServicesError):
            await resolver.route_request("turn off the lights")
        client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_all_unhealthy_raises_eligibility_error(self, registry, backend, store):
        weather, lights = await _register_all(registry, backend)
        await store.update(Service, weather.id, status=STATUS_UNHEALTHY)
        await store.update(Service, lights.id, status=STATUS_UNHEALTHY)

        resolver = IntentResolver(registry, client=make_llm_client())
        with pytest.raises(NoHealthyServicesError):
            await resolver.route_request("turn off the lights")

    @pytest.mark.asyncio
    async def test_weather_in_berlin_is_confident(self, registry, backend):
        backend.add_service("http://weather.local", WEATHER_DOC)
        weather = await registry.register("http://weather.local", "wk")

        client = make_llm_client(tool_calls=[
            tool_call("weather_get__forecast", json.dumps({"city": "Berlin", "day": "tomorrow"})),
        ])
        resolver = IntentResolver(registry, client=client)
        decision = await resolver.route_request("what's the weather in Berlin tomorrow")

        assert isinstance(decision, ConfidentDecision)
        assert decision.confident is True
        assert decision.service_id == weather.id
        assert decision.service_name == "weather"
        assert decision.endpoint == {"method": "GET", "path": "/forecast"}
        assert decision.parameters["city"] == "Berlin"

    @pytest.mark.asyncio
    async def test_request_shape(self, registry, backend):
        await _register_all(registry, backend)
        client = make_llm_client(content="not sure")
        resolver = IntentResolver(registry, model="gpt-test", client=client)
        await resolver.route_request("turn off the lights")

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["messages"] == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "turn off the lights"},
        ]
        names = {t["function"]["name"] for t in kwargs["tools"]}
        assert names == {"weather_get__forecast", "lights_post__lights_off", "lights_post__lights_on"}

    @pytest.mark.asyncio
    async def test_ambiguous_transcript_is_uncertain(self, registry, backend):
        await _register_all(registry, backend)
        client = make_llm_client(content="I can't tell which service you mean.")
        resolver = IntentResolver(registry, client=client)

        decision = await resolver.route_request("do the thing")
        assert isinstance(decision, UncertainDecision)
        assert decision.confident is False
        assert decision.explanation == "I can't tell which service you mean."
        assert len(decision.available_services) == 2
        assert {s["name"] for s in decision.available_services} == {"weather", "lights"}
        assert set(decision.available_services[0]) == {"id", "name", "description"}

    @pytest.mark.asyncio
    async def test_empty_tool_calls_list_is_uncertain(self, registry, backend):
        await _register_all(registry, backend)
        resolver = IntentResolver(registry, client=make_llm_client(tool_calls=[], content=None))
        decision = await resolver.route_request("hmm")
        assert decision.confident is False
        assert decision.explanation == ""

    @pytest.mark.asyncio
    async def test_unhealthy_services_are_not_offered(self, registry, backend, store):
        weather, lights = await _register_all(registry, backend)
        await store.update(Service, weather.id, status=STATUS_UNHEALTHY)

        client = make_llm_client(content="?")
        resolver = IntentResolver(registry, client=client)
        decision = await resolver.route_request("what's the weather")

        names = {t["function"]["name"] for t in client.chat.completions.create.call_args.kwargs["tools"]}
        assert names == {"lights_post__lights_off", "lights_post__lights_on"}
        assert [s["id"] for s in decision.available_services] == [lights.id]

    @pytest.mark.asyncio
    async def test_selection_of_unhealthy_tool_is_rejected(self, registry, backend, store):
        weather, _ = await _register_all(registry, backend)
        await store.update(Service, weather.id, status=STATUS_UNHEALTHY)

        client = make_llm_client(tool_calls=[tool_call("weather_get__forecast", '{"city": "Berlin"}')])
        resolver = IntentResolver(registry, client=client)
        with pytest.raises(UpstreamError):
            await resolver.route_request("what's the weather in Berlin")

    @pytest.mark.asyncio
    async def test_only_first_tool_call_honored(self, registry, backend):
        _, lights = await _register_all(registry, backend)
        client = make_llm_client(tool_calls=[
            tool_call("lights_post__lights_off", "{}"),
            tool_call("weather_get__forecast", '{"city": "Paris"}'),
        ])
        resolver = IntentResolver(registry, client=client)
        decision = await resolver.route_request("lights off and weather in Paris")

        assert decision.service_id == lights.id
        assert decision.endpoint == {"method": "POST", "path": "/lights/off"}
        assert decision.parameters == {}

    @pytest.mark.asyncio
    async def test_malformed_arguments_raise_validation_error(self, registry, backend):
        await _register_all(registry, backend)
        client = make_llm_client(tool_calls=[tool_call("weather_get__forecast", "{city: Berlin")])
        resolver = IntentResolver(registry, client=client)
        with pytest.raises(ValidationError):
            await resolver.route_request("weather in Berlin")

    @pytest.mark.asyncio
    async def test_api_failure_becomes_upstream_error(self, registry, backend):
        await _register_all(registry, backend)
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1")),
        )
        resolver = IntentResolver(registry, client=client)
        with pytest.raises(UpstreamError):
            await resolver.route_request("weather in Berlin")

    @pytest.mark.asyncio
    async def test_default_client_built_lazily(self, registry, backend):
        await _register_all(registry, backend)
        client = make_llm_client(content="?")
        with patch("voxdispatch.llm._get_client", return_value=client) as factory:
            resolver = IntentResolver(registry)
            factory.assert_not_called()
            await resolver.route_request("hello")
            await resolver.route_request("hello again")
        factory.assert_called_once()

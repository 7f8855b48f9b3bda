"""Tests for local and remote option generation."""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from yishi.config import OFFLINE_FLAG
from yishi.llm import MockLLMClient
from yishi.state.schema import (
    Miasma,
    ObsessionState,
    OptionCategory,
    OptionEffect,
    OptionSet,
    WorldStateData,
)
from yishi.systems.options import (
    MAX_OPTIONS,
    LocalOptionSource,
    OptionRequest,
    OptionSource,
    ProviderOptionSource,
    build_prompt_bundle,
    parse_option_payload,
    required_items,
)


def request(game_data, spirit="sp_wang", card="wc_ritual", world=None, states=None, seed="seed"):
    return OptionRequest(
        spirit=game_data.spirit(spirit),
        word=game_data.wordcard(card),
        world=world or WorldStateData(),
        states=states or {},
        seed=seed,
    )


PROVIDER_REPLY = json.dumps({
    "tone": "guarded",
    "options": [
        {"text": "Tell me about the ledger.", "category": "question", "targets": ["ob_ledger"],
         "requires": [], "effect": "loosen"},
        {"text": "Rest now.", "category": "soothe", "targets": [], "requires": [], "effect": "calm"},
    ],
})


class TestLocalOptionSource:
    """Test the seeded offline generator."""

    def test_satisfies_protocol(self):
        assert isinstance(LocalOptionSource(), OptionSource)
        assert isinstance(ProviderOptionSource(None), OptionSource)

    def test_reproducible(self, game_data):
        source = LocalOptionSource()
        assert source.build(request(game_data)) == source.build(request(game_data))

    def test_seed_changes_output_shape_only(self, game_data):
        a = LocalOptionSource().build(request(game_data, seed="a"))
        b = LocalOptionSource().build(request(game_data, seed="b"))
        assert sorted(o.effect.value for o in a.options) == sorted(o.effect.value for o in b.options)

    def test_calm_offered_unless_clear(self, game_data):
        murky = LocalOptionSource().build(request(game_data, world=WorldStateData(miasma=Miasma.TURBID)))
        clear = LocalOptionSource().build(request(game_data, world=WorldStateData(miasma=Miasma.CLEAR)))
        assert any(o.effect == OptionEffect.CALM for o in murky.options)
        assert not any(o.effect == OptionEffect.CALM for o in clear.options)

    def test_ritual_loosens_then_unties(self, game_data):
        world = WorldStateData(miasma=Miasma.CLEAR)
        first = LocalOptionSource().build(request(game_data, world=world))
        assert {o.effect for o in first.options} == {OptionEffect.LOOSEN}

        states = {"ob_ledger": ObsessionState.LOOSENED}
        later = LocalOptionSource().build(request(game_data, world=world, states=states))
        untie = [o for o in later.options if o.effect == OptionEffect.UNTIE]
        assert len(untie) == 1
        assert untie[0].targets == ["ob_ledger"]
        assert untie[0].requires == ["ledger"]

    def test_resolved_knots_skipped(self, game_data):
        world = WorldStateData(miasma=Miasma.CLEAR)
        states = {"ob_ledger": ObsessionState.RESOLVED}
        result = LocalOptionSource().build(request(game_data, world=world, states=states))
        assert [o.targets for o in result.options] == [["ob_apology"]]

    def test_lost_self_only_soothes(self, game_data):
        result = LocalOptionSource().build(request(game_data, spirit="sp_lin", card="wc_accuse"))
        assert result.options
        assert all(o.category == OptionCategory.SOOTHE for o in result.options)
        assert result.tone == "lost in itself"

    def test_lost_self_with_key_item(self, game_data):
        world = WorldStateData(items=["jade_pendant"], miasma=Miasma.CLEAR)
        result = LocalOptionSource().build(request(game_data, spirit="sp_lin", card="wc_accuse", world=world))
        assert [o.category for o in result.options] == [OptionCategory.ACCUSATION]

    def test_capped(self, game_data):
        spirit = game_data.spirit("sp_wang").model_copy(deep=True)
        spirit.obsessions = spirit.obsessions * 4
        req = request(game_data)
        req.spirit = spirit
        assert len(LocalOptionSource().build(req).options) == MAX_OPTIONS

    def test_required_items(self):
        assert required_items(["holds:ledger", "flag:x", "bogus:y", "持有:香"]) == ["ledger", "香"]


class TestParsePayload:
    """Test provider reply parsing."""

    def test_valid(self):
        result = parse_option_payload(PROVIDER_REPLY)
        assert result.tone == "guarded"
        assert [o.effect for o in result.options] == [OptionEffect.LOOSEN, OptionEffect.CALM]

    def test_fenced(self):
        result = parse_option_payload(f"```json\n{PROVIDER_REPLY}\n```")
        assert len(result.options) == 2

    @pytest.mark.parametrize("content", [
        "not json",
        '{"tone": "x", "options": []}',
        '{"tone": "x", "options": [{"text": "a", "category": "bribe", "effect": "calm"}]}',
    ])
    def test_invalid(self, content):
        with pytest.raises(ValueError):
            parse_option_payload(content)

    def test_truncated_to_max(self):
        options = [{"text": str(i), "category": "soothe", "effect": "calm"} for i in range(6)]
        result = parse_option_payload(json.dumps({"tone": "", "options": options}))
        assert len(result.options) == MAX_OPTIONS


class TestProviderOptionSource:
    """Test the remote source and its fallback."""

    def test_uses_client(self, game_data):
        client = MockLLMClient(responses=[PROVIDER_REPLY])
        source = ProviderOptionSource(client)
        result = asyncio.run(source.generate(request(game_data)))

        assert result.tone == "guarded"
        assert len(client.calls) == 1
        bundle = client.calls[0]["messages"][0].content
        assert "sp_wang" in bundle
        assert client.calls[0]["system"]

    def test_offline_flag_falls_back(self, game_data):
        client = MockLLMClient(responses=[PROVIDER_REPLY])
        world = WorldStateData(flags={OFFLINE_FLAG: True})
        result = asyncio.run(ProviderOptionSource(client).generate(request(game_data, world=world)))
        assert client.calls == []
        assert result == LocalOptionSource().build(request(game_data, world=world))

    def test_unavailable_client_falls_back(self, game_data):
        client = MockLLMClient(available=False)
        result = asyncio.run(ProviderOptionSource(client).generate(request(game_data)))
        assert client.calls == []
        assert isinstance(result, OptionSet)

    def test_no_client(self, game_data):
        source = ProviderOptionSource(None)
        assert not source.is_ready()
        assert asyncio.run(source.generate(request(game_data))).options

    def test_bad_reply_falls_back(self, game_data):
        client = MockLLMClient(responses=["I'd rather not."])
        result = asyncio.run(ProviderOptionSource(client).generate(request(game_data)))
        assert len(client.calls) == 1
        assert result == LocalOptionSource().build(request(game_data))

    def test_connection_error_falls_back(self, game_data):
        client = MagicMock()
        client.is_available.return_value = True
        client.chat.side_effect = ConnectionError("down")
        fallback = LocalOptionSource()
        result = asyncio.run(ProviderOptionSource(client, fallback=fallback).generate(request(game_data)))
        assert result == fallback.build(request(game_data))

    def test_prompt_bundle(self, game_data):
        bundle = build_prompt_bundle(request(game_data, states={"ob_ledger": ObsessionState.LOOSENED}))
        states = {o["id"]: o["state"] for o in bundle["spirit"]["obsessions"]}
        assert states == {"ob_ledger": "loosened", "ob_apology": "unresolved"}
        assert bundle["word"]["tags"] == ["ritual"]


class TestChatCompletionsClient:
    """Test the HTTP client's error surface without network access."""

    def _client(self):
        from yishi.llm import ChatCompletionsClient
        return ChatCompletionsClient(api_key="k", api_url="http://provider.invalid/chat")

    def _reply(self, body: dict):
        resp = MagicMock()
        resp.read.return_value = json.dumps(body).encode("utf-8")
        resp.__enter__.return_value = resp
        return resp

    def test_no_key_unavailable(self, monkeypatch):
        from yishi.llm import ChatCompletionsClient, create_llm_client
        monkeypatch.delenv("YISHI_PROVIDER_API_KEY", raising=False)
        assert not ChatCompletionsClient().is_available()
        assert create_llm_client() is None

    def test_chat_returns_content(self):
        from yishi.llm import Message
        body = {"choices": [{"message": {"content": PROVIDER_REPLY}, "finish_reason": "stop"}]}
        with patch("urllib.request.urlopen", return_value=self._reply(body)) as urlopen:
            response = self._client().chat([Message(role="user", content="hi")], system="sys")

        assert response.content == PROVIDER_REPLY
        sent = json.loads(urlopen.call_args[0][0].data.decode("utf-8"))
        assert sent["messages"][0] == {"role": "system", "content": "sys"}
        assert sent["response_format"]["type"] == "json_schema"

    def test_malformed_response(self):
        from yishi.llm import Message
        with patch("urllib.request.urlopen", return_value=self._reply({"choices": []})):
            with pytest.raises(ConnectionError):
                self._client().chat([Message(role="user", content="hi")])

    def test_unreachable(self):
        import urllib.error
        from yishi.llm import Message
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")):
            with pytest.raises(ConnectionError):
                self._client().chat([Message(role="user", content="hi")])

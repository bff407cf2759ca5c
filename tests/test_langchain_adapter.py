"""
Callwatch — LangChain Adapter Tests

A scripted BaseChatModel stands in for a provider. Covers message
conversion, generate(), stream() part translation and the adapter running
under the progress indicator.
"""

import io
import os
import sys
import unittest
from typing import Any

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, SystemMessage, ToolMessage
from langchain_core.messages.tool import tool_call_chunk
from langchain_core.outputs import ChatGeneration, ChatGenerationChunk, ChatResult
from pydantic import Field

from callwatch.adapter import LangChainAdapter, ModelAdapter, to_langchain_messages
from callwatch.events import (
    CallOptions,
    Message,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    assistant,
    system,
    user,
)
from callwatch.logging import configure_logging
from callwatch.progress import ProgressModel


class ScriptedChatModel(BaseChatModel):
    """Returns `reply` from invoke and yields `chunks` from stream."""

    reply: Any = None
    chunks: list = Field(default_factory=list)
    fail_stream: bool = False

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        return ChatResult(generations=[ChatGeneration(message=self.reply)])

    async def _astream(self, messages, stop=None, run_manager=None, **kwargs):
        for chunk in self.chunks:
            yield ChatGenerationChunk(message=chunk)
        if self.fail_stream:
            raise ConnectionError("stream dropped")


def _usage(inp, out):
    return {"input_tokens": inp, "output_tokens": out, "total_tokens": inp + out}


def _prompt():
    return CallOptions(prompt=[system("Weather bot."), user("Weather in Paris?")])


async def _collect(adapter, options=None):
    streamed = await adapter.stream(options or _prompt())
    return [part async for part in streamed.stream]


class TestMessageConversion(unittest.TestCase):

    def test_roles(self):
        converted = to_langchain_messages([
            system("Be brief."),
            user("Weather?"),
            assistant("Let me check.", ToolCallPart("call_1", "get_weather", '{"city": "Paris"}')),
            Message(role="tool", content=[ToolResultPart("call_1", "get_weather", {"temp": 21})]),
        ])
        self.assertIsInstance(converted[0], SystemMessage)
        self.assertIsInstance(converted[1], HumanMessage)
        self.assertIsInstance(converted[2], AIMessage)
        self.assertIsInstance(converted[3], ToolMessage)
        self.assertEqual(converted[2].tool_calls[0]["name"], "get_weather")
        self.assertEqual(converted[2].tool_calls[0]["args"], {"city": "Paris"})
        self.assertEqual(converted[3].tool_call_id, "call_1")
        self.assertEqual(converted[3].content, '{"temp": 21}')

    def test_unknown_role(self):
        with self.assertRaises(ValueError):
            to_langchain_messages([Message(role="narrator", content=[TextPart("x")])])

    def test_protocol(self):
        adapter = LangChainAdapter(ScriptedChatModel(), model_name="scripted-1")
        self.assertIsInstance(adapter, ModelAdapter)
        self.assertEqual(adapter.model_name, "scripted-1")


class TestGenerate(unittest.IsolatedAsyncioTestCase):

    async def test_text_and_tool_calls(self):
        reply = AIMessage(
            content="Checking.",
            tool_calls=[{"name": "get_weather", "args": {"city": "Paris"}, "id": "call_1"}],
            usage_metadata=_usage(20, 7),
            response_metadata={"finish_reason": "tool_calls"},
        )
        adapter = LangChainAdapter(ScriptedChatModel(reply=reply))
        result = await adapter.generate(_prompt())

        self.assertEqual(result.text, "Checking.")
        call = result.content[1]
        self.assertIsInstance(call, ToolCallPart)
        self.assertEqual((call.tool_call_id, call.tool_name, call.arguments),
                         ("call_1", "get_weather", {"city": "Paris"}))
        self.assertEqual((result.usage.input_tokens, result.usage.output_tokens), (20, 7))
        self.assertEqual(result.finish_reason, "tool_calls")


class TestStream(unittest.IsolatedAsyncioTestCase):

    async def test_text_chunks(self):
        chunks = [
            AIMessageChunk(content="Hello "),
            AIMessageChunk(content="world"),
            AIMessageChunk(content="", usage_metadata=_usage(10, 2),
                           response_metadata={"finish_reason": "stop"}),
        ]
        parts = await _collect(LangChainAdapter(ScriptedChatModel(chunks=chunks)))

        self.assertEqual([p.type for p in parts], ["text-delta", "text-delta", "finish"])
        self.assertEqual("".join(p.delta for p in parts[:2]), "Hello world")
        self.assertEqual(parts[-1].usage.output_tokens, 2)
        self.assertEqual(parts[-1].finish_reason, "stop")

    async def test_tool_call_chunks(self):
        chunks = [
            AIMessageChunk(content="", tool_call_chunks=[
                tool_call_chunk(name="get_weather", args='{"city": ', id="call_1", index=0)]),
            AIMessageChunk(content="", tool_call_chunks=[
                tool_call_chunk(name=None, args='"Paris"}', id=None, index=0)]),
            AIMessageChunk(content="", usage_metadata=_usage(30, 9)),
        ]
        parts = await _collect(LangChainAdapter(ScriptedChatModel(chunks=chunks)))

        self.assertEqual(
            [p.type for p in parts],
            ["tool-input-start", "tool-input-delta", "tool-input-delta",
             "tool-input-end", "tool-call", "finish"],
        )
        call = parts[4]
        self.assertEqual((call.tool_call_id, call.tool_name, call.arguments),
                         ("call_1", "get_weather", '{"city": "Paris"}'))
        self.assertEqual(parts[-1].finish_reason, "tool-calls")

    async def test_complete_tool_calls_without_index(self):
        chunks = [
            AIMessageChunk(content="", tool_call_chunks=[
                tool_call_chunk(name="get_weather", args='{"city": "Paris"}', id="c1", index=None)]),
            AIMessageChunk(content="", tool_call_chunks=[
                tool_call_chunk(name="get_time", args='{"tz": "CET"}', id="c2", index=None)]),
        ]
        parts = await _collect(LangChainAdapter(ScriptedChatModel(chunks=chunks)))

        calls = [p for p in parts if p.type == "tool-call"]
        self.assertEqual([(c.tool_call_id, c.tool_name) for c in calls],
                         [("c1", "get_weather"), ("c2", "get_time")])
        self.assertEqual(calls[0].arguments, '{"city": "Paris"}')
        self.assertEqual([p.id for p in parts if p.type == "tool-input-end"], ["c1", "c2"])
        self.assertEqual(parts[-1].type, "finish")

    async def test_usage_summed_across_chunks(self):
        chunks = [
            AIMessageChunk(content="a", usage_metadata=_usage(12, 0)),
            AIMessageChunk(content="b", usage_metadata=_usage(0, 4)),
        ]
        parts = await _collect(LangChainAdapter(ScriptedChatModel(chunks=chunks)))
        usage = parts[-1].usage
        self.assertEqual((usage.input_tokens, usage.output_tokens, usage.total_tokens), (12, 4, 16))

    async def test_thinking_blocks(self):
        chunks = [
            AIMessageChunk(content=[{"type": "thinking", "thinking": "Paris is in France.", "index": 0}]),
            AIMessageChunk(content=[{"type": "text", "text": "Sunny.", "index": 1}]),
        ]
        parts = await _collect(LangChainAdapter(ScriptedChatModel(chunks=chunks)))
        self.assertEqual(
            [p.type for p in parts],
            ["reasoning-start", "reasoning-delta", "reasoning-end", "text-delta", "finish"],
        )

    async def test_stream_error_propagates(self):
        model = ScriptedChatModel(chunks=[AIMessageChunk(content="par")], fail_stream=True)
        with self.assertRaises(ConnectionError):
            await _collect(LangChainAdapter(model))


class TestUnderProgress(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.buf = io.StringIO()
        configure_logging(level="INFO", stream=self.buf)

    async def test_streamed_tool_call_logged_once(self):
        chunks = [
            AIMessageChunk(content="", tool_call_chunks=[
                tool_call_chunk(name="get_weather", args='{"city": "Paris"}', id="call_1", index=0)]),
            AIMessageChunk(content="", usage_metadata=_usage(30, 9)),
        ]
        model = ProgressModel(LangChainAdapter(ScriptedChatModel(chunks=chunks), model_name="scripted"))
        parts = await _collect(model)

        lines = self.buf.getvalue().splitlines()
        self.assertEqual(parts[-1].type, "finish")
        self.assertEqual(sum("🔧 get_weather(" in line for line in lines), 1)
        self.assertIn('[scripted #1] 🔧 get_weather({"city": "Paris"})', lines)
        self.assertIn("30→9 tokens", lines[-1])
        self.assertTrue(lines[-1].endswith('result: "tool:get_weather"'))
        self.assertEqual(model.active_calls, 0)

    async def test_every_unindexed_tool_call_in_preview(self):
        chunks = [
            AIMessageChunk(content="", tool_call_chunks=[
                tool_call_chunk(name="get_weather", args="{}", id="c1", index=None)]),
            AIMessageChunk(content="", tool_call_chunks=[
                tool_call_chunk(name="get_time", args="{}", id="c2", index=None)]),
        ]
        model = ProgressModel(LangChainAdapter(ScriptedChatModel(chunks=chunks), model_name="scripted"))
        await _collect(model)

        lines = self.buf.getvalue().splitlines()
        self.assertIn("[scripted #1] 🔧 get_weather({})", lines)
        self.assertIn("[scripted #1] 🔧 get_time({})", lines)
        self.assertTrue(lines[-1].endswith('result: "tool:get_weather, tool:get_time"'))


if __name__ == "__main__":
    unittest.main()

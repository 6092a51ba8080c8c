import asyncio

from chat_core.agents.streaming import SimulatedStream, split_words
from chat_core.domain.models import StreamEvent


def test_split_words_round_trips_text():
    text = "Paris is  the capital."
    chunks = split_words(text)
    assert chunks[0] == "Paris"
    assert all(c.startswith(" ") for c in chunks[1:])
    assert "".join(chunks) == text


def test_stream_sleeps_between_chunks(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("chat_core.agents.streaming.asyncio.sleep", fake_sleep)

    async def run():
        return [c async for c in SimulatedStream("a b c", delay=0.05)]

    assert asyncio.run(run()) == ["a", " b", " c"]
    assert delays == [0.05, 0.05]


def test_cancelled_consumer_stops_emission():
    async def run():
        received = []
        stream = SimulatedStream("one two three four", delay=0.01).__aiter__()
        received.append(await stream.__anext__())
        await stream.aclose()
        return received

    assert asyncio.run(run()) == ["one"]


def test_stream_event_sse_format():
    event = StreamEvent(kind="content", data={"choices": [{"delta": {"content": "hi"}}]})
    assert event.to_sse() == 'data: {"type": "content", "choices": [{"delta": {"content": "hi"}}]}\n\n'

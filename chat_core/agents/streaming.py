"""模拟流式输出。

Provider 调用本身是一次性返回完整结果的，这里把完整文本按单词切片，
每段之间稍作停顿后依次发出，让前端看起来像逐步生成。
将来接入真正的流式 Provider 时，只需替换这一层，调用方不受影响。
"""

import asyncio
from typing import AsyncIterator, List


DEFAULT_CHUNK_DELAY = 0.05


def split_words(text: str) -> List[str]:
    """按空格切分；除第一段外每段都带前导空格，拼接后与原文完全一致。"""

    words = text.split(" ")
    return [w if i == 0 else " " + w for i, w in enumerate(words)]


class SimulatedStream:
    """把一次完整的回答包装成逐段输出的异步迭代器。

    取消（例如客户端断开）只会停止后续分段的输出，不影响已经完成的上游调用结果。
    """

    def __init__(self, text: str, delay: float = DEFAULT_CHUNK_DELAY):
        self._text = text
        self._delay = delay

    def chunks(self) -> List[str]:
        return split_words(self._text)

    async def __aiter__(self) -> AsyncIterator[str]:
        chunks = self.chunks()
        for i, chunk in enumerate(chunks):
            yield chunk
            if self._delay and i < len(chunks) - 1:
                await asyncio.sleep(self._delay)

import asyncio
import threading
from typing import AsyncIterator, TextIO

_EOF = object()


async def read_urls(stream: TextIO) -> AsyncIterator[str]:
    """
    Yield trimmed, non-empty lines from a blocking text stream, in order.

    Lines are read one at a time on a daemon thread, so a pending read on an
    idle stdin never keeps the process alive after the run is cancelled.
    """
    loop = asyncio.get_running_loop()
    lines: asyncio.Queue = asyncio.Queue(maxsize=1)

    def hand_over(item):
        asyncio.run_coroutine_threadsafe(lines.put(item), loop).result()

    def pump():
        try:
            for line in stream:
                hand_over(line)
            hand_over(_EOF)
        except RuntimeError:
            # event loop already closed
            return
        except Exception as e:
            hand_over(e)

    threading.Thread(target=pump, name="fff-stdin", daemon=True).start()

    while True:
        item = await lines.get()
        if item is _EOF:
            return
        if isinstance(item, Exception):
            raise item
        line = item.strip()
        if line:
            yield line

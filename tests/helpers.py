import asyncio


class FakeTransport:
    """asyncio 전송 대역: 쓴 바이트를 모아 둔다."""

    def __init__(self, peername=("127.0.0.1", 50000)) -> None:
        self.peername = peername
        self.written = []
        self.closed = False

    def get_extra_info(self, name, default=None):
        if name == "peername":
            return self.peername
        return default

    def write(self, data: bytes) -> None:
        self.written.append(data)

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    @property
    def text(self) -> str:
        return b"".join(self.written).decode("utf-8")


class FakeWriter:
    """StreamWriter 대역."""

    def __init__(self, fail_with=None) -> None:
        self.written = []
        self.closed = False
        self.fail_with = fail_with
        self.drain_gate = None

    def write(self, data: bytes) -> None:
        self.written.append(data)

    async def drain(self) -> None:
        if self.drain_gate is not None:
            await self.drain_gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    @property
    def lines(self):
        return b"".join(self.written).decode("utf-8").splitlines()


async def wait_for(predicate, *, timeout: float = 1.0, interval: float = 0.005) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()

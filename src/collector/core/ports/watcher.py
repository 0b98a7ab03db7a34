from typing import Protocol


class FileWatcherPort(Protocol):
    async def start(self) -> None: ...

    async def wait(self) -> None:
        """Block until the watcher stops or fails."""
        ...

    async def stop(self) -> None: ...

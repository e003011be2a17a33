"""Change-feed bridge for chat messages

Watches message inserts in the store and re-broadcasts each one through the
gateway, so writes made by other processes still reach connected clients.
"""

import asyncio
import logging
from typing import Any, Optional

from app.realtime.gateway import ChatGateway
from app.repositories.base import MessageRepository

logger = logging.getLogger(__name__)


class MessageChangeFeed:
    """Background task that forwards inserted messages to the gateway"""

    def __init__(
        self,
        messages: MessageRepository,
        gateway: ChatGateway,
        retry_initial: float = 1.0,
        retry_max: float = 30.0,
    ):
        self.messages = messages
        self.gateway = gateway
        self.retry_initial = retry_initial
        self.retry_max = retry_max
        self.resume_token: Any = None
        self.delivered = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run())
        logger.info("Chat change feed started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Chat change feed stopped")

    async def run(self) -> None:
        """Consume the insert stream forever, reconnecting with exponential backoff"""
        delay = self.retry_initial

        while True:
            try:
                async for event in self.messages.watch_inserts(resume_after=self.resume_token):
                    if event.message is not None:
                        await self._deliver(event.message)
                    self.resume_token = event.resume_token
                    delay = self.retry_initial
                logger.warning("Chat change stream ended, reconnecting")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Chat change stream error: {str(e)}. Retrying in {delay:.1f}s")

            await asyncio.sleep(delay)
            delay = min(delay * 2, self.retry_max)

    async def _deliver(self, message) -> None:
        try:
            await self.gateway.broadcast_new_message(message)
            self.delivered += 1
        except Exception as e:
            # One undeliverable message must not stall the stream
            logger.error(f"Failed to deliver message {message.id} from change feed: {str(e)}")

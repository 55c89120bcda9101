"""
Asterisk ARI (Asterisk REST Interface) Handler
Receives calls entering the Stasis application, asks the call controller for a
decision and applies it to the channel before handing it back to the dialplan
"""
import asyncio
import concurrent.futures
import logging
from typing import List, Optional, Set
import aiohttp
from aiohttp import ClientSession, ClientWebSocketResponse

from call_options.models.call_context import CallContext
from call_options.models.decision import Decision
from call_options.utils.exceptions import SanityCheckFailed

logger = logging.getLogger(__name__)

# Seconds stop() waits for calls in progress before cancelling them
DRAIN_TIMEOUT = 10.0


class AsteriskARIHandler:
    """Handles Asterisk ARI WebSocket connection and call events"""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        app_name: str,
        call_controller,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.app_name = app_name
        self.call_controller = call_controller

        self.base_url = f"http://{host}:{port}/ari"
        self.ws_url = f"ws://{host}:{port}/ari/events?app={app_name}&api_key={username}:{password}"

        self.session: Optional[ClientSession] = None
        self.ws: Optional[ClientWebSocketResponse] = None
        self.running = False
        self._event_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    async def start(self):
        """Start the ARI WebSocket connection"""
        logger.info(f"🚀 Starting Asterisk ARI handler for app '{self.app_name}'")
        logger.info(f"📡 Connecting to {self.host}:{self.port}")

        self.session = aiohttp.ClientSession(
            auth=aiohttp.BasicAuth(self.username, self.password)
        )

        try:
            self.ws = await self.session.ws_connect(
                self.ws_url,
                heartbeat=30,
                timeout=aiohttp.ClientTimeout(total=None)
            )

            logger.info("✅ Connected to Asterisk ARI WebSocket")
            self.running = True

            self._event_task = asyncio.create_task(self._event_loop())

        except Exception as e:
            logger.error(f"❌ Failed to connect to Asterisk ARI: {e}")
            await self.stop()
            raise

    async def stop(self):
        """Stop the ARI connection"""
        logger.info("🛑 Stopping Asterisk ARI handler")
        self.running = False

        if self._event_task and not self._event_task.done():
            self._event_task.cancel()

        if self._tasks:
            logger.info(f"⏳ Waiting for {len(self._tasks)} call(s) in progress")
            _, pending = await asyncio.wait(set(self._tasks), timeout=DRAIN_TIMEOUT)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"⚠️ Cancelled {len(pending)} call(s) still in progress")
                await asyncio.gather(*pending, return_exceptions=True)

        if self.ws and not self.ws.closed:
            await self.ws.close()

        if self.session and not self.session.closed:
            await self.session.close()

    def _spawn(self, coro) -> asyncio.Task:
        """Run a call handler in its own task, kept until it is done"""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"❌ Call handler failed: {task.exception()}", exc_info=task.exception())

    async def _event_loop(self):
        """Main event loop for processing ARI events"""
        logger.info("🔄 ARI event loop started")

        try:
            async for msg in self.ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    event = msg.json()
                    # Calls are independent, don't let one wait for another
                    self._spawn(self._handle_event(event))

                elif msg.type == aiohttp.WSMsgType.CLOSED:
                    logger.warning("⚠️ WebSocket closed by server")
                    break

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"❌ WebSocket error: {self.ws.exception()}")
                    break

        except Exception as e:
            logger.error(f"❌ Error in ARI event loop: {e}", exc_info=True)

        finally:
            logger.info("🔄 ARI event loop stopped")
            self.running = False

    async def _handle_event(self, event: dict):
        """Handle incoming ARI events"""
        event_type = event.get("type")

        logger.debug(f"📨 Received ARI event: {event_type}")

        if event_type == "StasisStart":
            await self._handle_stasis_start(event)

        elif event_type == "ChannelDestroyed":
            await self._handle_channel_destroyed(event)

        else:
            logger.debug(f"📭 Unhandled event type: {event_type}")

    @staticmethod
    def build_context(event: dict) -> CallContext:
        """
        Build the call context from a StasisStart event.

        The first application argument is the dialed extension, as in
        Stasis(options,${EXTEN}); the channel's own extension is used when
        no argument is given.
        """
        channel = event.get("channel", {})
        args = event.get("args", [])
        caller = channel.get("caller", {})

        dialed = args[0] if args else channel.get("dialplan", {}).get("exten", "")

        return CallContext(
            call_id=channel.get("id"),
            channel_name=channel.get("name", ""),
            caller_number=caller.get("number", ""),
            caller_name=caller.get("name", ""),
            dialed_number=dialed,
            account_id=channel.get("accountcode", ""),
        )

    async def _handle_stasis_start(self, event: dict):
        """Handle StasisStart event (call entered our application)"""
        channel_id = event.get("channel", {}).get("id")
        if not channel_id:
            logger.warning("⚠️ StasisStart without channel id")
            return

        context = self.build_context(event)
        logger.info(f"📞 Call setup on {context.channel_name} from {context.caller_number} to {context.dialed_number}")

        loop = asyncio.get_running_loop()
        hangups: List[concurrent.futures.Future] = []

        def on_terminate(ctx: CallContext):
            # Called from the worker thread running the pipeline
            hangups.append(asyncio.run_coroutine_threadsafe(self._hangup_channel(channel_id), loop))

        try:
            decision = await asyncio.to_thread(self.call_controller.decide, context, on_terminate)

        except SanityCheckFailed as e:
            logger.info(f"📭 No decision for {channel_id}: {e.reason}")
            await self._continue_channel(channel_id)
            return

        except Exception as e:
            logger.error(f"❌ Error deciding call {channel_id}: {e}", exc_info=True)
            await self._continue_channel(channel_id)
            return

        if decision.terminate:
            if hangups:
                await asyncio.wrap_future(hangups[0])
            else:
                await self._hangup_channel(channel_id)
            return

        await self._apply_decision(channel_id, decision)

    async def _apply_decision(self, channel_id: str, decision: Decision):
        """Write the decision onto the channel and give it back to the dialplan"""
        if decision.abstained:
            await self._continue_channel(channel_id)
            return

        if decision.account_changed:
            await self._set_variable(channel_id, "CHANNEL(accountcode)", decision.account_id)

        if decision.record and decision.recording:
            await self._set_variable(channel_id, "OPTIONS_MIXMONITOR_ARGS", decision.recording.mixmonitor_args)
            if decision.recording.monitor_args:
                await self._set_variable(channel_id, "OPTIONS_MONITOR_ARGS", decision.recording.monitor_args)

        if decision.caller_id_override:
            await self._set_variable(channel_id, "CALLERID(num)", decision.caller_id_override.number)
            await self._set_variable(channel_id, "CALLERID(name)", decision.caller_id_override.name)

        await self._continue_channel(channel_id)

    async def _handle_channel_destroyed(self, event: dict):
        """Handle ChannelDestroyed event"""
        channel = event.get("channel", {})
        channel_id = channel.get("id")
        cause_txt = channel.get("cause_txt", "Unknown")

        logger.info(f"🔚 Channel destroyed: {channel_id} (cause: {cause_txt})")

    async def _hangup_channel(self, channel_id: str):
        """Hangup a channel"""
        url = f"{self.base_url}/channels/{channel_id}"
        try:
            async with self.session.delete(url) as resp:
                if resp.status in (204, 404):
                    logger.info(f"✅ Hung up channel: {channel_id}")
                else:
                    error = await resp.text()
                    logger.warning(f"⚠️ Failed to hangup channel: {error}")
        except Exception as e:
            logger.warning(f"⚠️ Error hanging up channel: {e}")

    async def _set_variable(self, channel_id: str, variable: str, value: str):
        """Set a channel variable or dialplan function"""
        url = f"{self.base_url}/channels/{channel_id}/variable"
        try:
            async with self.session.post(url, params={"variable": variable, "value": value}) as resp:
                if resp.status == 204:
                    logger.debug(f"✅ Set {variable} on channel {channel_id}")
                else:
                    error = await resp.text()
                    logger.warning(f"⚠️ Failed to set {variable}: {error}")
        except Exception as e:
            logger.warning(f"⚠️ Error setting {variable}: {e}")

    async def _continue_channel(self, channel_id: str):
        """Return the channel to the dialplan"""
        url = f"{self.base_url}/channels/{channel_id}/continue"
        try:
            async with self.session.post(url) as resp:
                if resp.status in (204, 404):
                    logger.debug(f"✅ Continued channel: {channel_id}")
                else:
                    error = await resp.text()
                    logger.warning(f"⚠️ Failed to continue channel: {error}")
        except Exception as e:
            logger.warning(f"⚠️ Error continuing channel: {e}")

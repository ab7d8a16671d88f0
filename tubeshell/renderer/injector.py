"""
Script Injector

Materializes a plugin's RendererProgram inside a renderer context and keeps
it there. The page is a single-page app that re-renders freely, so one
injection is not enough; the injector layers:

1. inject once per document (content loaded)
2. re-assert after fixed short delays, for late-mounting UI
3. re-assert after each URL change, once the route settles
4. for critical programs, re-assert on a bounded polling loop

Idempotency is guarded twice: the injector keeps one InjectedUnit per
(plugin, context), folding overlapping requests into the injection already
in flight and skipping injection while the unit belongs to the current
document, and the page runtime refuses to install a unit whose marker it
already holds.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator, Optional

from tubeshell.errors import RendererError
from tubeshell.obs import logger
from tubeshell.renderer.programs import CALL_EXPRESSION, ProgramLibrary, RendererProgram, default_library
from tubeshell.utils import spawn

if TYPE_CHECKING:
    from tubeshell.renderer.context import RendererContext

REASSERT_DELAYS = (0.5, 1.5)
SETTLE_DELAY = 0.1
POLL_INTERVAL = 2.0
POLL_WINDOW = 60.0


@dataclass
class InjectedUnit:
    plugin: str
    context_id: str
    program: RendererProgram
    generation: int
    tasks: set[asyncio.Task] = field(default_factory=set)

    def cancel(self) -> None:
        for task in list(self.tasks):
            task.cancel()
        self.tasks.clear()


class ScriptInjector:
    def __init__(
        self,
        library: Optional[ProgramLibrary] = None,
        *,
        reassert_delays: tuple[float, ...] = REASSERT_DELAYS,
        settle_delay: float = SETTLE_DELAY,
        poll_interval: float = POLL_INTERVAL,
        poll_window: float = POLL_WINDOW,
    ):
        self.library = library or default_library()
        self.reassert_delays = reassert_delays
        self.settle_delay = settle_delay
        self.poll_interval = poll_interval
        self.poll_window = poll_window
        self._units: dict[tuple[str, str], InjectedUnit] = {}
        self._absence_reported: set[tuple[str, str]] = set()
        # Injections awaiting the page, with the newest program asked for meanwhile
        self._pending: dict[tuple[str, str], Optional[RendererProgram]] = {}

    # Queries

    def unit(self, plugin: str, context: RendererContext) -> Optional[InjectedUnit]:
        return self._units.get((plugin, context.id))

    def is_pending(self, plugin: str, context: RendererContext) -> bool:
        return (plugin, context.id) in self._pending

    def is_active(self, plugin: str, context: RendererContext) -> bool:
        unit = self.unit(plugin, context)
        return unit is not None and unit.generation == context.generation and not context.closed

    def units_for_context(self, context_id: str) -> Iterator[InjectedUnit]:
        return (unit for (_, cid), unit in list(self._units.items()) if cid == context_id)

    def units_for_plugin(self, plugin: str) -> Iterator[InjectedUnit]:
        return (unit for (name, _), unit in list(self._units.items()) if name == plugin)

    # Injection

    async def inject(self, plugin: str, context: RendererContext, program: RendererProgram) -> bool:
        """
        Install a program in a context.

        Returns:
            True if the program was evaluated, False if it was already active
            or in flight, or the context could not run it
        """
        key = (plugin, context.id)
        if context.closed:
            return False
        if key in self._pending:
            # The running injection hands this program to the unit once it lands
            if program != self._pending[key]:
                self._pending[key] = program
            logger.debug(f"{plugin}: injection into {context.id} already in flight")
            return False
        if self.is_active(plugin, context):
            logger.debug(f"{plugin}: already active in {context.id}, skipping injection")
            return False

        stale = self._units.pop(key, None)
        if stale is not None:
            stale.cancel()

        body = self.library.body(program.behavior)
        generation = context.generation
        self._pending[key] = None
        try:
            await context.evaluate(body, {"unit": plugin, "config": dict(program.config)})
        except RendererError as e:
            self._pending.pop(key, None)
            self._report_absence(plugin, context, e)
            return False
        except BaseException:
            self._pending.pop(key, None)
            raise
        if key not in self._pending:
            # Withdrawn or torn down while the page was evaluating
            if not context.closed and context.generation == generation:
                await self._call(InjectedUnit(plugin, context.id, program, generation), context, "dispose", program.config)
            return False
        latest = self._pending.pop(key)

        if context.closed:
            return False
        if context.generation != generation:
            logger.debug(f"{plugin}: {context.id} loaded a new document while injecting")
            if latest is None:
                return False
            return await self.inject(plugin, context, latest)

        unit = InjectedUnit(plugin, context.id, program, generation)
        self._units[key] = unit
        self._absence_reported.discard(key)
        logger.info(f"{plugin}: injected {program.behavior} into {context.id}")

        for delay in self.reassert_delays:
            spawn(self._reassert_later(plugin, context, delay), unit.tasks, name=f"{plugin}-reassert")
        if program.critical:
            self._start_polling(unit, context)
        if latest is not None and latest != program:
            await self.push_config(plugin, context, latest)
        return True

    async def reassert(self, plugin: str, context: RendererContext) -> bool:
        """Ask an active unit to clean up and re-create its page artifacts."""
        unit = self.unit(plugin, context)
        if unit is None or not self.is_active(plugin, context):
            return False
        result = await self._call(unit, context, "reassert", unit.program.config)
        return result is not None

    async def push_config(self, plugin: str, context: RendererContext, program: RendererProgram) -> bool:
        """
        Hand a new config snapshot to an active unit.

        Falls back to a fresh injection when the unit is not (or no longer)
        present in the page.
        """
        if self.is_pending(plugin, context):
            await self.inject(plugin, context, program)
            return True
        unit = self.unit(plugin, context)
        if unit is None or not self.is_active(plugin, context) or unit.program.behavior != program.behavior:
            return await self.inject(plugin, context, program)
        unit.program = program
        if await self._call(unit, context, "update", program.config) is None:
            return await self.inject(plugin, context, program)
        if program.critical and not unit.tasks:
            self._start_polling(unit, context)
        return True

    async def handle_navigation(self, context: RendererContext) -> None:
        """URL changed inside the document: re-assert every unit after the settle delay."""
        for unit in self.units_for_context(context.id):
            if unit.generation != context.generation:
                continue
            spawn(self._reassert_later(unit.plugin, context, self.settle_delay), unit.tasks, name=f"{unit.plugin}-nav")
            if unit.program.critical:
                self._start_polling(unit, context)

    async def withdraw(self, plugin: str, contexts: Optional[list[RendererContext]] = None) -> None:
        """Remove a plugin from every context (plugin disabled)."""
        by_id = {context.id: context for context in contexts or []}
        for key in [key for key in self._pending if key[0] == plugin]:
            del self._pending[key]
        for unit in list(self.units_for_plugin(plugin)):
            unit.cancel()
            self._units.pop((plugin, unit.context_id), None)
            context = by_id.get(unit.context_id)
            if context is not None and unit.generation == context.generation and not context.closed:
                await self._call(unit, context, "dispose", unit.program.config)
        logger.info(f"{plugin}: withdrawn from all contexts")

    def teardown_context(self, context_id: str) -> None:
        for key in [key for key in self._pending if key[1] == context_id]:
            del self._pending[key]
        for unit in list(self.units_for_context(context_id)):
            unit.cancel()
            self._units.pop((unit.plugin, context_id), None)
            self._absence_reported.discard((unit.plugin, context_id))

    # Internal helpers

    async def _call(self, unit: InjectedUnit, context: RendererContext, method: str, config: Any) -> Optional[Any]:
        try:
            result = await context.evaluate(
                CALL_EXPRESSION,
                {"unit": unit.plugin, "method": method, "config": dict(config)},
            )
        except RendererError as e:
            self._report_absence(unit.plugin, context, e)
            return None
        if isinstance(result, dict) and result.get("found") is False:
            # The page dropped the unit without a new document; inject again next time
            logger.debug(f"{unit.plugin}: unit missing from {context.id} during {method}")
            if self._units.get((unit.plugin, context.id)) is unit:
                unit.cancel()
                self._units.pop((unit.plugin, context.id), None)
            return None
        return result if result is not None else {}

    async def _reassert_later(self, plugin: str, context: RendererContext, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.reassert(plugin, context)

    def _start_polling(self, unit: InjectedUnit, context: RendererContext) -> None:
        for task in list(unit.tasks):
            if task.get_name() == f"{unit.plugin}-poll":
                task.cancel()
        spawn(self._poll(unit.plugin, context), unit.tasks, name=f"{unit.plugin}-poll")

    async def _poll(self, plugin: str, context: RendererContext) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.poll_window
        while loop.time() < deadline:
            await asyncio.sleep(self.poll_interval)
            if not self.is_active(plugin, context):
                return
            await self.reassert(plugin, context)

    def _report_absence(self, plugin: str, context: RendererContext, error: Exception) -> None:
        key = (plugin, context.id)
        if key in self._absence_reported:
            logger.debug(f"{plugin}: {context.id} not ready: {error}")
            return
        self._absence_reported.add(key)
        logger.warning(f"{plugin}: {context.id} not ready, will retry: {error}")

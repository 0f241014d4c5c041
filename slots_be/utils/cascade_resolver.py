"""
Cascade (tumble) resolution for a single spin.

Each iteration evaluates the grid, credits the win, removes the matched
cells, lets the columns fall and refills the gaps, then evaluates again.
The grid mutation for an iteration is committed before its presentation
events go out; when `await_presentation` is set the resolver waits for the
removal/refill acknowledgements before moving on.
"""
import asyncio
import logging
import secrets
from typing import List, NamedTuple

from . import event_bus as events
from .grid import Grid, collapse, refill
from .payout import compute_match_win, to_money

logger = logging.getLogger(__name__)

DEFAULT_MAX_CASCADE_ITERATIONS = 200
DEFAULT_ANIMATION_ACK_TIMEOUT = 5.0


class CascadeOutcome:
    NO_MATCH = 'no_match'
    SCATTER_TRIGGERED = 'scatter_triggered'
    ITERATION_LIMIT = 'iteration_limit'


class CascadeStep(NamedTuple):
    symbol_id: int
    matched_cells: List
    win_amount: object
    new_cells: List


class CascadeResult(NamedTuple):
    final_grid: Grid
    total_win: object
    cascade_count: int
    scatter_count: int
    outcome: str
    steps: List[CascadeStep]


class CascadeResolver:
    def __init__(self, bus, evaluator, pay_table, refill_pool, rng=None,
                 await_presentation=False, ack_timeout=DEFAULT_ANIMATION_ACK_TIMEOUT,
                 max_iterations=DEFAULT_MAX_CASCADE_ITERATIONS):
        self.bus = bus
        self.evaluator = evaluator
        self.pay_table = pay_table
        self.refill_pool = refill_pool
        self.rng = rng or secrets.SystemRandom()
        self.await_presentation = await_presentation
        self.ack_timeout = ack_timeout
        self.max_iterations = max_iterations

    async def resolve(self, grid, bet, session):
        """
        Runs the tumble loop on `grid` (mutated in place) until no match remains.

        `session` is credited through `credit_win(amount)` and read for
        `state.is_bonus_round`. Publishes `win`, `cascade-removed`,
        `cascade-refilled`, optionally `scatter-triggered`, and finally
        `cascade-complete` exactly once.
        """
        total_win = to_money(0)
        steps = []
        outcome = CascadeOutcome.NO_MATCH

        while True:
            result = self.evaluator.evaluate(grid, session.state.is_bonus_round)

            if not result.has_win:
                if result.scatter_triggered:
                    outcome = CascadeOutcome.SCATTER_TRIGGERED
                    logger.info(f"[{self.bus.name}] Scatter trigger: {result.scatter_count} scatters "
                                f"(bonus round: {session.state.is_bonus_round})")
                    self.bus.publish(
                        events.SCATTER_TRIGGERED,
                        scatter_count=result.scatter_count,
                        is_bonus_round=session.state.is_bonus_round,
                    )
                break

            win_amount = compute_match_win(result, bet, self.pay_table)
            session.credit_win(win_amount)
            total_win += win_amount
            cascade_index = len(steps) + 1

            matched_cells = sorted(result.matched_cells)
            logger.debug(f"[{self.bus.name}] Cascade {cascade_index}: symbol {result.matched_symbol} "
                         f"x{len(matched_cells)} pays {win_amount}")
            self.bus.publish(
                events.WIN,
                symbol_id=result.matched_symbol,
                matched_count=len(matched_cells),
                win_amount=win_amount,
                cascade_index=cascade_index,
                line_wins=[line._asdict() for line in result.line_wins],
            )

            vacated = collapse(grid, matched_cells)
            new_cells = refill(grid, vacated, self.refill_pool, self.rng)
            steps.append(CascadeStep(result.matched_symbol, matched_cells, win_amount, new_cells))

            await self._announce(
                events.CASCADE_REMOVED, events.ANIMATION_REMOVAL_DONE,
                matched_cells=matched_cells, win_amount=win_amount, cascade_index=cascade_index,
            )
            await self._announce(
                events.CASCADE_REFILLED, events.ANIMATION_REFILL_DONE,
                new_cells=new_cells, grid=grid.to_list(), cascade_index=cascade_index,
            )

            if cascade_index >= self.max_iterations:
                logger.warning(f"[{self.bus.name}] Cascade stopped after {cascade_index} iterations; "
                               f"grid still matches.")
                outcome = CascadeOutcome.ITERATION_LIMIT
                break

        final_scatter_count = grid.count(self.evaluator.scatter_symbol_id)
        self.bus.publish(
            events.CASCADE_COMPLETE,
            final_grid=grid.to_list(),
            total_win=total_win,
            cascade_count=len(steps),
            scatter_count=final_scatter_count,
            outcome=outcome,
        )
        return CascadeResult(grid, total_win, len(steps), final_scatter_count, outcome, steps)

    async def _announce(self, event, ack_event, **payload):
        if not self.await_presentation:
            self.bus.publish(event, **payload)
            # Let other tasks (acks, rejected spin requests) run between steps
            await asyncio.sleep(0)
            return

        # Acks tagged with another cascade_index are late replies to an
        # earlier step and must not advance this one.
        cascade_index = payload.get('cascade_index')
        loop = asyncio.get_running_loop()
        deadline = None if self.ack_timeout is None else loop.time() + self.ack_timeout

        ack = self.bus.expect(ack_event)
        self.bus.publish(event, **payload)
        while True:
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            acked = await self.bus.wait(ack, remaining)
            if acked is None:
                logger.warning(f"[{self.bus.name}] No '{ack_event}' within {self.ack_timeout}s after '{event}'; "
                               f"advancing without it.")
                return
            if acked.get('cascade_index') in (None, cascade_index):
                return
            logger.debug(f"[{self.bus.name}] Ignoring '{ack_event}' for cascade {acked['cascade_index']} "
                         f"while waiting on cascade {cascade_index}")
            ack = self.bus.expect(ack_event)

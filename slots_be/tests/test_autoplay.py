import asyncio
import unittest
from decimal import Decimal
from unittest.mock import patch

from slots_be.services.autoplay import (
    STOP_BONUS_ENDED, STOP_BUDGET_EXHAUSTED, STOP_CANCELLED, STOP_ERROR, STOP_INSUFFICIENT_BALANCE
)
from slots_be.utils import event_bus as events
from slots_be.tests.factories import EventRecorder, make_game, no_scatter_config, zero_pay_config


async def run_autoplay(game, spins, timeout=5):
    """Starts autoplay and returns the payload of its autoplay-complete event."""
    done = game.bus.expect(events.AUTOPLAY_COMPLETE)
    game.start_autoplay(spins)
    payload = await game.bus.wait(done, timeout)
    if payload is None:
        raise AssertionError("autoplay did not complete in time")
    return payload


class TestAutoplayBudget(unittest.IsolatedAsyncioTestCase):
    async def test_runs_exactly_the_requested_spins(self):
        game = make_game(no_scatter_config())
        recorder = EventRecorder(game.bus)

        payload = await run_autoplay(game, 5)
        await asyncio.sleep(0.02)

        self.assertEqual(payload['reason'], STOP_BUDGET_EXHAUSTED)
        self.assertEqual(game.state.spin_count, 5)
        self.assertEqual(recorder.count(events.SPIN_REQUESTED), 5)
        self.assertEqual(recorder.count(events.AUTOPLAY_COMPLETE), 1)
        self.assertFalse(game.autoplay.is_active)

    async def test_stops_when_the_balance_runs_out(self):
        game = make_game(zero_pay_config(), balance=2, bet=1)

        payload = await run_autoplay(game, 10)

        self.assertEqual(payload['reason'], STOP_INSUFFICIENT_BALANCE)
        self.assertEqual(game.state.spin_count, 2)
        self.assertEqual(game.state.balance, Decimal('0.00'))

    async def test_unaffordable_start_completes_immediately(self):
        game = make_game(zero_pay_config(), balance='0.50', bet=1)
        payload = await run_autoplay(game, 3)
        self.assertEqual(payload['reason'], STOP_INSUFFICIENT_BALANCE)
        self.assertEqual(game.state.spin_count, 0)

    def test_spin_count_must_be_positive(self):
        game = make_game()
        with self.assertRaises(ValueError):
            game.start_autoplay(0)


class TestAutoplayStop(unittest.IsolatedAsyncioTestCase):
    async def test_stop_after_first_spin_prevents_the_next(self):
        game = make_game(no_scatter_config())
        recorder = EventRecorder(game.bus)
        game.bus.once(events.CASCADE_COMPLETE, lambda payload: game.stop_autoplay())

        payload = await run_autoplay(game, 10)
        await asyncio.sleep(0.02)

        self.assertEqual(payload['reason'], STOP_CANCELLED)
        self.assertEqual(payload['spins_issued'], 1)
        self.assertEqual(recorder.count(events.SPIN_REQUESTED), 1)

    async def test_stop_when_idle_publishes_nothing(self):
        game = make_game()
        recorder = EventRecorder(game.bus)
        game.stop_autoplay()
        self.assertEqual(recorder.count(events.AUTOPLAY_COMPLETE), 0)

    async def test_restart_replaces_the_running_session(self):
        game = make_game(no_scatter_config(), autoplay_delay=0.05)
        recorder = EventRecorder(game.bus)

        game.start_autoplay(100)
        await asyncio.sleep(0.01)
        self.assertEqual(game.state.spin_count, 1)

        game.start_autoplay(2)
        done = game.bus.expect(events.AUTOPLAY_COMPLETE)
        payload = await game.bus.wait(done, timeout=5)
        await asyncio.sleep(0.1)

        reasons = [p['reason'] for p in recorder.of(events.AUTOPLAY_COMPLETE)]
        self.assertEqual(reasons, [STOP_CANCELLED, STOP_BUDGET_EXHAUSTED])
        self.assertEqual(payload['reason'], STOP_BUDGET_EXHAUSTED)
        self.assertEqual(game.state.spin_count, 3)

    async def test_cascade_error_stops_autoplay(self):
        game = make_game()
        with patch.object(game.resolver, 'resolve', side_effect=RuntimeError("boom")):
            with self.assertLogs('slots_be.services.spin_session', level='ERROR'):
                payload = await run_autoplay(game, 3)
        self.assertEqual(payload['reason'], STOP_ERROR)
        self.assertEqual(game.state.spin_count, 1)


class TestAutoplayBonus(unittest.IsolatedAsyncioTestCase):
    async def test_paid_spin_budget_survives_a_bonus(self):
        game = make_game(no_scatter_config())
        recorder = EventRecorder(game.bus)
        game.session.arm_scatter_floor(5)

        payload = await run_autoplay(game, 1)

        self.assertEqual(recorder.of(events.BONUS_STARTED)[0]['free_spins'], 12)
        self.assertEqual(payload['reason'], STOP_BUDGET_EXHAUSTED)
        # one paid spin plus twelve free spins
        self.assertEqual(game.state.spin_count, 13)
        self.assertEqual(recorder.count(events.BONUS_ENDED), 1)
        self.assertFalse(game.state.is_bonus_round)

    async def test_free_spins_run_automatically_after_a_manual_trigger(self):
        game = make_game(no_scatter_config())
        recorder = EventRecorder(game.bus)
        done = game.bus.expect(events.AUTOPLAY_COMPLETE)
        game.session.arm_scatter_floor(4)

        await game.spin()
        payload = await game.bus.wait(done, timeout=5)

        self.assertEqual(recorder.of(events.AUTOPLAY_STARTED)[0]['free_spins_only'], True)
        self.assertEqual(payload['reason'], STOP_BONUS_ENDED)
        self.assertEqual(game.state.spin_count, 11)
        self.assertEqual(game.state.free_spins_remaining, 0)

    async def test_free_spins_wait_for_the_player_when_auto_run_is_off(self):
        game = make_game(no_scatter_config(), auto_run_free_spins=False)
        game.session.arm_scatter_floor(4)

        await game.spin()
        await asyncio.sleep(0.05)

        self.assertEqual(game.state.spin_count, 1)
        self.assertEqual(game.state.free_spins_remaining, 10)


class TestAutoplayPacing(unittest.TestCase):
    def test_turbo_shortens_the_delay(self):
        game = make_game(autoplay_delay=0.5, turbo_multiplier=0.25)
        self.assertEqual(game.autoplay.next_spin_delay(), 0.5)
        game.update_settings(turbo=True)
        self.assertEqual(game.autoplay.next_spin_delay(), 0.125)


if __name__ == '__main__':
    unittest.main()

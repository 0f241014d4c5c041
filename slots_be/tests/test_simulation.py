import unittest
from decimal import Decimal

from slots_be.app import create_app
from slots_be.config import TestingConfig
from slots_be.services.simulation import SimulationStats, simulate
from slots_be.tests.factories import cluster_config, zero_pay_config


class TestSimulate(unittest.IsolatedAsyncioTestCase):
    async def test_counts_every_paid_spin(self):
        stats = await simulate(cluster_config(), spins=40, bet=1, seed=5)

        self.assertEqual(stats.paid_spins, 40)
        self.assertEqual(stats.spins, stats.paid_spins + stats.free_spins)
        self.assertEqual(stats.amount_wagered, Decimal('40.00'))
        self.assertGreaterEqual(stats.max_cascades, 0)
        self.assertLessEqual(stats.winning_spins, stats.spins)

    async def test_same_seed_same_numbers(self):
        first = await simulate(cluster_config(), spins=25, bet='0.50', seed=99)
        second = await simulate(cluster_config(), spins=25, bet='0.50', seed=99)
        self.assertEqual(first.to_dict(), second.to_dict())

    async def test_nothing_pays_on_a_zero_pay_table(self):
        stats = await simulate(zero_pay_config(), spins=10, bet=2, seed=1)
        self.assertEqual(stats.amount_won, Decimal('0.00'))
        self.assertEqual(stats.rtp, 0.0)
        self.assertEqual(stats.hit_rate, 0.0)
        self.assertEqual(stats.bonus_triggers, 0)


class TestSimulationStats(unittest.TestCase):
    def test_rates_without_spins(self):
        stats = SimulationStats()
        self.assertEqual(stats.hit_rate, 0.0)
        self.assertEqual(stats.rtp, 0.0)

    def test_rtp_and_hit_rate(self):
        stats = SimulationStats()
        stats.on_spin_requested({'cost': Decimal('1.00'), 'is_free_spin': False})
        stats.on_cascade_complete({'total_win': Decimal('3.00'), 'cascade_count': 2})
        stats.on_spin_requested({'cost': Decimal('1.00'), 'is_free_spin': False})
        stats.on_cascade_complete({'total_win': Decimal('0.00'), 'cascade_count': 0})
        stats.on_spin_requested({'cost': Decimal('0.00'), 'is_free_spin': True})
        stats.on_cascade_complete({'total_win': Decimal('1.00'), 'cascade_count': 1})

        self.assertEqual(stats.free_spins, 1)
        self.assertAlmostEqual(stats.hit_rate, 2 / 3)
        self.assertEqual(stats.rtp, 2.0)
        self.assertEqual(stats.to_dict()['max_win'], '3.00')
        self.assertEqual(stats.max_cascades, 2)


class TestSimulateCommand(unittest.TestCase):
    def setUp(self):
        self.app = create_app(TestingConfig)
        self.runner = self.app.test_cli_runner()

    def test_prints_the_statistics(self):
        result = self.runner.invoke(args=['simulate', '--spins', '20', '--seed', '3'])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Simulating 20 spins on 'cluster_tumble'", result.output)
        self.assertIn('rtp', result.output)
        self.assertIn('paid_spins', result.output)

    def test_payline_slot(self):
        result = self.runner.invoke(args=['simulate', '-s', 'payline_tumble', '-n', '15', '--seed', '8'])
        self.assertEqual(result.exit_code, 0, result.output)

    def test_invalid_bet(self):
        result = self.runner.invoke(args=['simulate', '--bet', 'abc'])
        self.assertEqual(result.exit_code, 2)
        self.assertIn('not a valid amount', result.output)

    def test_unknown_slot(self):
        result = self.runner.invoke(args=['simulate', '--slot', 'nope', '--spins', '1'])
        self.assertEqual(result.exit_code, 1)
        self.assertIn('not found', result.output)

    def test_spin_count_must_be_positive(self):
        result = self.runner.invoke(args=['simulate', '--spins', '0'])
        self.assertEqual(result.exit_code, 2)


if __name__ == '__main__':
    unittest.main()

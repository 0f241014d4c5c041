import unittest
from decimal import Decimal

from slots_be.utils.grid import Grid
from slots_be.utils.match_evaluator import ClusterMatchEvaluator, PaylineMatchEvaluator
from slots_be.utils.payout import (
    BASE_FREE_SPINS, RETRIGGER_FREE_SPINS, PayTable, cluster_tier, compute_win, compute_match_win,
    free_spins_for, to_money
)
from slots_be.tests.factories import CLUSTER_OF_THREES, NO_WIN_GRID


class TestMoney(unittest.TestCase):
    def test_rounds_half_up_to_cents(self):
        self.assertEqual(to_money('0.125'), Decimal('0.13'))
        self.assertEqual(to_money(0.1), Decimal('0.10'))
        self.assertEqual(to_money(3), Decimal('3.00'))


class TestClusterPayouts(unittest.TestCase):
    def setUp(self):
        self.pay_table = PayTable(cluster_tiers={3: [1, 2, 12], 8: [0.25, 0.75, 2]})

    def test_tier_boundaries(self):
        self.assertIsNone(cluster_tier(7))
        self.assertEqual(cluster_tier(8), 0)
        self.assertEqual(cluster_tier(9), 0)
        self.assertEqual(cluster_tier(10), 1)
        self.assertEqual(cluster_tier(11), 1)
        self.assertEqual(cluster_tier(12), 2)
        self.assertEqual(cluster_tier(30), 2)

    def test_compute_win_per_tier(self):
        self.assertEqual(compute_win(9, Decimal('1'), 3, self.pay_table), Decimal('1.00'))
        self.assertEqual(compute_win(11, Decimal('2'), 3, self.pay_table), Decimal('4.00'))
        self.assertEqual(compute_win(15, Decimal('0.5'), 3, self.pay_table), Decimal('6.00'))

    def test_symbols_pay_differently(self):
        self.assertEqual(compute_win(8, Decimal('1'), 8, self.pay_table), Decimal('0.25'))

    def test_below_minimum_or_unknown_symbol_pays_nothing(self):
        self.assertEqual(compute_win(7, Decimal('1'), 3, self.pay_table), Decimal('0.00'))
        self.assertEqual(compute_win(9, Decimal('1'), 5, self.pay_table), Decimal('0.00'))

    def test_compute_match_win(self):
        result = ClusterMatchEvaluator(scatter_symbol_id=9).evaluate(Grid(CLUSTER_OF_THREES))
        self.assertEqual(compute_match_win(result, Decimal('2'), self.pay_table), Decimal('2.00'))

        no_win = ClusterMatchEvaluator(scatter_symbol_id=9).evaluate(Grid(NO_WIN_GRID))
        self.assertEqual(compute_match_win(no_win, Decimal('2'), self.pay_table), Decimal('0.00'))


class TestLinePayouts(unittest.TestCase):
    def test_each_winning_line_pays(self):
        pay_table = PayTable(line_payouts={5: {'3': 2, '4': 5, '5': 10}})
        evaluator = PaylineMatchEvaluator(paylines=[[0] * 5, [1] * 5], scatter_symbol_id=0)
        grid = Grid([
            [5, 5, 5, 5, 1],
            [5, 5, 5, 2, 2],
            [1, 2, 3, 4, 6],
        ])
        result = evaluator.evaluate(grid)
        # 4-run on line 0 (5x) + 3-run on line 1 (2x)
        self.assertEqual(compute_match_win(result, Decimal('1'), pay_table), Decimal('7.00'))

    def test_line_multiplier_uses_longest_paying_run(self):
        pay_table = PayTable(line_payouts={5: {3: 2, 5: 10}})
        self.assertEqual(pay_table.line_multiplier(5, 4), Decimal('2'))
        self.assertEqual(pay_table.line_multiplier(5, 2), Decimal('0'))


class TestFreeSpinTables(unittest.TestCase):
    def test_base_table_verbatim(self):
        self.assertEqual(BASE_FREE_SPINS, {4: 10, 5: 12, 6: 15})
        self.assertEqual(free_spins_for(3, BASE_FREE_SPINS), 0)
        self.assertEqual(free_spins_for(5, BASE_FREE_SPINS), 12)

    def test_retrigger_table_verbatim(self):
        self.assertEqual(RETRIGGER_FREE_SPINS, {3: 3, 4: 5, 5: 10, 6: 15})
        self.assertEqual(free_spins_for(3, RETRIGGER_FREE_SPINS), 3)

    def test_counts_above_the_table_get_the_largest_award(self):
        self.assertEqual(free_spins_for(8, BASE_FREE_SPINS), 15)
        self.assertEqual(free_spins_for(4, {}), 0)


if __name__ == '__main__':
    unittest.main()

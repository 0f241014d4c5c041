from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANTUM = Decimal('0.01')

# Cluster size tiers: 8-9 -> tier 1, 10-11 -> tier 2, 12+ -> tier 3
CLUSTER_TIER_FLOORS = (8, 10, 12)

# Free spins awarded per scatter count
BASE_FREE_SPINS = {4: 10, 5: 12, 6: 15}
RETRIGGER_FREE_SPINS = {3: 3, 4: 5, 5: 10, 6: 15}


def to_money(value):
    """Quantizes an amount to cents (half-up), accepting int/str/float/Decimal."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def cluster_tier(matched_cell_count):
    """0-based tier index for a cluster size, or None below the smallest tier."""
    tier = None
    for index, floor in enumerate(CLUSTER_TIER_FLOORS):
        if matched_cell_count >= floor:
            tier = index
    return tier


class PayTable:
    """
    Per-symbol multipliers of the bet.

    `cluster_tiers`: {symbol_id: [tier1, tier2, tier3]}
    `line_payouts`:  {symbol_id: {run_length: multiplier}}
    """

    def __init__(self, cluster_tiers=None, line_payouts=None):
        self.cluster_tiers = {
            int(s_id): [Decimal(str(m)) for m in tiers]
            for s_id, tiers in (cluster_tiers or {}).items()
        }
        self.line_payouts = {
            int(s_id): {int(run): Decimal(str(m)) for run, m in runs.items()}
            for s_id, runs in (line_payouts or {}).items()
        }

    def cluster_multiplier(self, symbol_id, matched_cell_count):
        tier = cluster_tier(matched_cell_count)
        tiers = self.cluster_tiers.get(symbol_id)
        if tier is None or not tiers:
            return Decimal(0)
        return tiers[min(tier, len(tiers) - 1)]

    def line_multiplier(self, symbol_id, run_length):
        runs = self.line_payouts.get(symbol_id, {})
        if not runs:
            return Decimal(0)
        eligible = [run for run in runs if run <= run_length]
        if not eligible:
            return Decimal(0)
        return runs[max(eligible)]

    @classmethod
    def from_game_config(cls, game_config):
        if game_config['match_model'] == 'payline':
            return cls(line_payouts=game_config['pay_table'])
        return cls(cluster_tiers=game_config['pay_table'])


def compute_win(matched_cell_count, bet, symbol_id, pay_table):
    return to_money(pay_table.cluster_multiplier(symbol_id, matched_cell_count) * to_money(bet))


def compute_line_win(run_length, bet, symbol_id, pay_table):
    return to_money(pay_table.line_multiplier(symbol_id, run_length) * to_money(bet))


def compute_match_win(match_result, bet, pay_table):
    """Total win for one evaluated grid, whichever evaluator produced it."""
    if not match_result.has_win:
        return to_money(0)
    if match_result.line_wins:
        return sum(
            (compute_line_win(line.count, bet, line.symbol_id, pay_table) for line in match_result.line_wins),
            to_money(0),
        )
    return compute_win(len(match_result.matched_cells), bet, match_result.matched_symbol, pay_table)


def free_spins_for(scatter_count, table):
    """
    Looks `scatter_count` up in an award table. Counts above the largest
    key earn the largest award; counts below the smallest key earn nothing.
    """
    if not table:
        return 0
    if scatter_count in table:
        return table[scatter_count]
    if scatter_count > max(table):
        return table[max(table)]
    return 0

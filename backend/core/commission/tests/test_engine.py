from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

from django.test import SimpleTestCase

from commission.services.commission_engine import (
    STATUS_CALCULATED,
    STATUS_ERROR,
    STATUS_NO_GRID_MATCH,
    GridEntry,
    InvalidInputError,
    PolicySnapshot,
    SourceLookupError,
    SourceSnapshot,
    SplitConfig,
    TierShare,
    calculate_batch,
    calculate_rates,
    parse_grid_row,
    resolve_grid,
    split_commission,
    track_status,
)


CALC_DATE = datetime(2024, 6, 1, 9, 30, tzinfo=dt_timezone.utc)
AS_OF = date(2024, 6, 1)


def _policy(**overrides) -> PolicySnapshot:
    values = {
        "policy_id": 1,
        "policy_number": "MOT-0001",
        "product_type": "motor",
        "provider": "ICICI Lombard",
        "premium_amount": Decimal("100000.00"),
        "source_type": "direct",
        "source_id": None,
        "customer_name": "Ravi Kumar",
        "start_date": date(2024, 5, 1),
        "end_date": date(2025, 4, 30),
    }
    values.update(overrides)
    return PolicySnapshot(**values)


def _grid(grid_id, rate_id=None, **overrides) -> GridEntry:
    values = {
        "grid_id": grid_id,
        "rate_id": rate_id or grid_id,
        "grid_table": "motor_payout_grid",
        "product_type": "motor",
        "base_rate": Decimal("10"),
        "effective_from": date(2024, 1, 1),
    }
    values.update(overrides)
    return GridEntry(**values)


GOLD = TierShare(tier_id=7, name="Gold", share_percentage=Decimal("70"))


class ParseGridRowTests(SimpleTestCase):
    def test_reward_and_bonus_default_to_zero(self):
        entry = parse_grid_row({"grid_id": 3, "rate_id": 9, "product_type": "Motor", "base_rate": "12.5"})
        self.assertEqual(entry.base_rate, Decimal("12.5"))
        self.assertEqual(entry.reward_rate, Decimal("0.00"))
        self.assertEqual(entry.bonus_rate, Decimal("0.00"))
        self.assertEqual(entry.product_type, "motor")

    def test_missing_base_rate_is_malformed(self):
        with self.assertRaises(InvalidInputError):
            parse_grid_row({"grid_id": 3, "product_type": "motor", "base_rate": None})

    def test_negative_rate_is_malformed(self):
        with self.assertRaises(InvalidInputError):
            parse_grid_row({"grid_id": 3, "product_type": "motor", "base_rate": "5", "bonus_rate": "-1"})

    def test_non_numeric_rate_is_malformed(self):
        with self.assertRaises(InvalidInputError):
            parse_grid_row({"grid_id": 3, "product_type": "motor", "base_rate": "ten"})


class ResolveGridTests(SimpleTestCase):
    def test_provider_grid_beats_product_only_grid(self):
        generic = _grid(1, base_rate=Decimal("8"))
        specific = _grid(2, provider="ICICI Lombard", base_rate=Decimal("12"))
        match = resolve_grid(_policy(), [generic, specific], as_of=AS_OF)
        self.assertEqual(match.grid_id, 2)
        self.assertTrue(match.provider_matched)

    def test_provider_match_is_case_insensitive(self):
        specific = _grid(2, provider="icici lombard")
        match = resolve_grid(_policy(), [specific], as_of=AS_OF)
        self.assertEqual(match.grid_id, 2)

    def test_other_provider_grid_is_not_a_candidate(self):
        other = _grid(2, provider="HDFC Ergo")
        self.assertIsNone(resolve_grid(_policy(), [other], as_of=AS_OF))

    def test_tier_scoped_row_wins_among_provider_ties(self):
        source = SourceSnapshot(source_type="agent", source_id=5, tier=GOLD, agent_type="POSP")
        plain = _grid(1, provider="ICICI Lombard")
        tiered = _grid(1, rate_id=2, provider="ICICI Lombard", tier_id=7)
        both = _grid(1, rate_id=3, provider="ICICI Lombard", tier_id=7, agent_type="POSP")
        match = resolve_grid(_policy(source_type="agent", source_id=5), [plain, tiered, both], source=source, as_of=AS_OF)
        self.assertEqual(match.entry.rate_id, 3)
        self.assertEqual(match.scope_matches, 2)

    def test_row_scoped_to_other_tier_is_skipped(self):
        silver_row = _grid(1, tier_id=99)
        source = SourceSnapshot(source_type="agent", source_id=5, tier=GOLD)
        self.assertIsNone(resolve_grid(_policy(), [silver_row], source=source, as_of=AS_OF))

    def test_ties_break_on_lowest_grid_id(self):
        entries = [_grid(9), _grid(4), _grid(6)]
        self.assertEqual(resolve_grid(_policy(), entries, as_of=AS_OF).grid_id, 4)
        self.assertEqual(resolve_grid(_policy(), list(reversed(entries)), as_of=AS_OF).grid_id, 4)

    def test_effective_window_and_active_flag(self):
        expired = _grid(1, effective_to=date(2024, 3, 31))
        future = _grid(2, effective_from=date(2024, 7, 1))
        inactive = _grid(3, is_active=False)
        self.assertIsNone(resolve_grid(_policy(), [expired, future, inactive], as_of=AS_OF))

    def test_premium_band_limits_rows(self):
        small = _grid(1, max_premium=Decimal("50000"))
        large = _grid(2, min_premium=Decimal("50000.01"))
        self.assertEqual(resolve_grid(_policy(), [small, large], as_of=AS_OF).grid_id, 2)

    def test_malformed_rows_are_never_selected(self):
        broken = _grid(1, base_rate=Decimal("-2"))
        valid = _grid(5)
        self.assertEqual(resolve_grid(_policy(), [broken, valid], as_of=AS_OF).grid_id, 5)

    def test_missing_provider_is_invalid_input(self):
        with self.assertRaises(InvalidInputError):
            resolve_grid(_policy(provider=""), [_grid(1)], as_of=AS_OF)


class CalculateRatesTests(SimpleTestCase):
    def test_rates_are_additive(self):
        match = resolve_grid(
            _policy(),
            [_grid(1, base_rate=Decimal("10"), reward_rate=Decimal("2.5"), bonus_rate=Decimal("1"))],
            as_of=AS_OF,
        )
        rates = calculate_rates(_policy(), match)
        self.assertEqual(rates.total_rate, Decimal("13.5"))
        self.assertEqual(rates.insurer_commission, Decimal("13500.00"))

    def test_rounds_half_up_to_two_decimals(self):
        policy = _policy(premium_amount=Decimal("1234.55"))
        match = resolve_grid(policy, [_grid(1, base_rate=Decimal("1"))], as_of=AS_OF)
        # 12.3455 -> 12.35
        self.assertEqual(calculate_rates(policy, match).insurer_commission, Decimal("12.35"))

    def test_no_match_is_all_zero(self):
        rates = calculate_rates(_policy(), None)
        self.assertEqual(rates.total_rate, Decimal("0.00"))
        self.assertEqual(rates.insurer_commission, Decimal("0.00"))

    def test_negative_premium_is_invalid(self):
        with self.assertRaises(InvalidInputError):
            calculate_rates(_policy(premium_amount=Decimal("-1")), None)


class SplitCommissionTests(SimpleTestCase):
    config = SplitConfig()

    def test_override_uses_percentage_of_premium(self):
        policy = _policy(source_type="agent", source_id=5)
        source = SourceSnapshot(source_type="agent", source_id=5, override_percentage=Decimal("5"), tier=GOLD)
        allocations = split_commission(policy, source, Decimal("10000.00"), self.config)
        self.assertEqual(allocations.agent_commission, Decimal("5000.00"))
        self.assertTrue(allocations.override_used)
        self.assertEqual(allocations.broker_share, Decimal("5000.00"))

    def test_override_is_capped_at_insurer_commission(self):
        policy = _policy(source_type="misp", source_id=5)
        source = SourceSnapshot(source_type="misp", source_id=5, override_percentage=Decimal("20"))
        allocations = split_commission(policy, source, Decimal("10000.00"), self.config)
        self.assertEqual(allocations.misp_commission, Decimal("10000.00"))
        self.assertEqual(allocations.broker_share, Decimal("0.00"))

    def test_tier_share_of_insurer_commission(self):
        policy = _policy(source_type="agent", source_id=5)
        source = SourceSnapshot(source_type="agent", source_id=5, tier=GOLD)
        allocations = split_commission(policy, source, Decimal("10000.00"), self.config)
        self.assertEqual(allocations.agent_commission, Decimal("7000.00"))
        self.assertEqual(allocations.tier_name, "Gold")
        self.assertFalse(allocations.override_used)

    def test_default_share_without_tier(self):
        policy = _policy(source_type="misp", source_id=5)
        source = SourceSnapshot(source_type="misp", source_id=5)
        config = SplitConfig(misp_share_percentage=Decimal("40"))
        allocations = split_commission(policy, source, Decimal("1000.00"), config)
        self.assertEqual(allocations.misp_commission, Decimal("400.00"))
        self.assertEqual(allocations.broker_share, Decimal("600.00"))

    def test_reporting_employee_slice_is_deducted(self):
        policy = _policy(source_type="employee", source_id=5)
        source = SourceSnapshot(source_type="employee", source_id=5, reporting_employee_id=8)
        allocations = split_commission(policy, source, Decimal("10000.00"), self.config)
        # 60% employee share = 6000, 10% of it moves to the reporting employee.
        self.assertEqual(allocations.employee_commission, Decimal("5400.00"))
        self.assertEqual(allocations.reporting_employee_commission, Decimal("600.00"))
        self.assertEqual(allocations.broker_share, Decimal("4000.00"))

    def test_direct_source_goes_to_broker(self):
        allocations = split_commission(_policy(), None, Decimal("5000.00"), self.config)
        self.assertEqual(allocations.broker_share, Decimal("5000.00"))
        self.assertEqual(allocations.total, Decimal("5000.00"))

    def test_missing_source_raises_lookup_error(self):
        with self.assertRaises(SourceLookupError):
            split_commission(_policy(source_type="agent", source_id=404), None, Decimal("100.00"), self.config)

    def test_split_sum_is_exact_with_odd_amounts(self):
        policy = _policy(source_type="employee", source_id=5, premium_amount=Decimal("33333.33"))
        source = SourceSnapshot(
            source_type="employee",
            source_id=5,
            tier=TierShare(tier_id=1, name="Odd", share_percentage=Decimal("33.33")),
            reporting_employee_id=2,
        )
        allocations = split_commission(policy, source, Decimal("3333.33"), self.config)
        self.assertEqual(allocations.total, Decimal("3333.33"))
        self.assertEqual(allocations.agent_commission, Decimal("0.00"))
        self.assertEqual(allocations.misp_commission, Decimal("0.00"))

    def test_float_percentages_are_converted(self):
        policy = _policy(source_type="agent", source_id=5)
        override = SourceSnapshot(source_type="agent", source_id=5, override_percentage=5.0)
        allocations = split_commission(policy, override, Decimal("10000.00"), self.config)
        self.assertEqual(allocations.agent_commission, Decimal("5000.00"))

        tiered = SourceSnapshot(
            source_type="agent",
            source_id=5,
            tier=TierShare(tier_id=7, name="Gold", share_percentage=70.0),
        )
        allocations = split_commission(policy, tiered, Decimal("10000.00"), self.config)
        self.assertEqual(allocations.agent_commission, Decimal("7000.00"))
        self.assertEqual(allocations.broker_share, Decimal("3000.00"))

    def test_shares_above_hundred_are_capped(self):
        policy = _policy(source_type="agent", source_id=5)
        source = SourceSnapshot(source_type="agent", source_id=5)
        config = SplitConfig(agent_share_percentage=Decimal("150"))
        allocations = split_commission(policy, source, Decimal("10000.00"), config)
        self.assertEqual(allocations.agent_commission, Decimal("10000.00"))
        self.assertEqual(allocations.broker_share, Decimal("0.00"))

        over_tier = SourceSnapshot(
            source_type="agent",
            source_id=5,
            tier=TierShare(tier_id=9, name="Bad", share_percentage=Decimal("120")),
        )
        allocations = split_commission(policy, over_tier, Decimal("10000.00"), self.config)
        self.assertEqual(allocations.agent_commission, Decimal("10000.00"))
        self.assertEqual(allocations.broker_share, Decimal("0.00"))

    def test_reporting_slice_never_exceeds_employee_commission(self):
        policy = _policy(source_type="employee", source_id=5)
        source = SourceSnapshot(source_type="employee", source_id=5, reporting_employee_id=8)
        config = SplitConfig(reporting_employee_share_percentage=Decimal("150"))
        allocations = split_commission(policy, source, Decimal("10000.00"), config)
        self.assertEqual(allocations.employee_commission, Decimal("0.00"))
        self.assertEqual(allocations.reporting_employee_commission, Decimal("6000.00"))
        self.assertEqual(allocations.broker_share, Decimal("4000.00"))

    def test_negative_share_is_invalid(self):
        policy = _policy(source_type="misp", source_id=5)
        source = SourceSnapshot(source_type="misp", source_id=5, override_percentage=Decimal("-1"))
        with self.assertRaises(InvalidInputError):
            split_commission(policy, source, Decimal("100.00"), self.config)


class TrackStatusTests(SimpleTestCase):
    def test_statuses(self):
        match = resolve_grid(_policy(), [_grid(4, grid_table="motor_payout_grid")], as_of=AS_OF)
        stamp = track_status(match, calc_date=CALC_DATE)
        self.assertEqual(stamp.status, STATUS_CALCULATED)
        self.assertEqual(stamp.grid_id, 4)
        self.assertEqual(stamp.grid_table, "motor_payout_grid")

        stamp = track_status(None, calc_date=CALC_DATE)
        self.assertEqual(stamp.status, STATUS_NO_GRID_MATCH)
        self.assertIsNone(stamp.grid_id)

        self.assertEqual(track_status(match, calc_date=CALC_DATE, failed=True).status, STATUS_ERROR)


class CalculateBatchTests(SimpleTestCase):
    config = SplitConfig()

    def _batch(self, policies, grids, sources=None):
        return calculate_batch(policies, grids, sources or {}, self.config, calc_date=CALC_DATE)

    def test_direct_source_allocation(self):
        policy = _policy(premium_amount=Decimal("50000.00"))
        result = self._batch([policy], [_grid(1, base_rate=Decimal("10"))]).results[0]
        self.assertEqual(result.status, STATUS_CALCULATED)
        self.assertEqual(result.insurer_commission, Decimal("5000.00"))
        self.assertEqual(result.allocations.broker_share, Decimal("5000.00"))
        self.assertEqual(result.allocations.agent_commission, Decimal("0.00"))

    def test_override_bypass(self):
        policy = _policy(source_type="agent", source_id=5)
        sources = {("agent", 5): SourceSnapshot(source_type="agent", source_id=5, name="Asha", override_percentage=Decimal("5"))}
        result = self._batch([policy], [_grid(1, base_rate=Decimal("15"))], sources).results[0]
        self.assertEqual(result.allocations.agent_commission, Decimal("5000.00"))
        self.assertTrue(result.allocations.override_used)
        self.assertEqual(result.source_name, "Asha")

    def test_no_grid_match_fallback(self):
        result = self._batch([_policy(product_type="health")], [_grid(1)]).results[0]
        self.assertEqual(result.status, STATUS_NO_GRID_MATCH)
        self.assertEqual(result.rates.total_rate, Decimal("0.00"))
        self.assertEqual(result.insurer_commission, Decimal("0.00"))
        self.assertEqual(result.allocations.total, Decimal("0.00"))
        self.assertIsNone(result.grid_id)

    def test_batch_isolation(self):
        policies = [_policy(policy_id=i, policy_number=f"MOT-{i:04d}") for i in range(1, 10)]
        policies.append(_policy(policy_id=10, policy_number="MOT-0010", premium_amount=Decimal("-5")))
        batch = self._batch(policies, [_grid(1)])
        self.assertEqual(len(batch.results), 10)
        self.assertEqual(batch.calculated_count, 9)
        self.assertEqual(batch.error_count, 1)
        failed = [r for r in batch.results if r.status == STATUS_ERROR]
        self.assertEqual(failed[0].policy_id, 10)
        self.assertIn("negative premium", failed[0].error_detail)

    def test_batch_isolation_with_loose_source_inputs(self):
        sources = {
            ("agent", 5): SourceSnapshot(source_type="agent", source_id=5, tier=GOLD),
            ("agent", 6): SourceSnapshot(source_type="agent", source_id=6, override_percentage=5.0),
            ("agent", 7): SourceSnapshot(source_type="agent", source_id=7, override_percentage="n/a"),
        }
        policies = [
            _policy(policy_id=i, policy_number=f"MOT-{i:04d}", source_type="agent", source_id=5)
            for i in range(1, 8)
        ]
        policies.append(_policy(policy_id=8, policy_number="MOT-0008", source_type="agent", source_id=6))
        policies.append(_policy(policy_id=9, policy_number="MOT-0009", source_type="agent", source_id="abc"))
        policies.append(_policy(policy_id=10, policy_number="MOT-0010", source_type="agent", source_id=7))

        batch = self._batch(policies, [_grid(1, base_rate=Decimal("10"))], sources)

        self.assertEqual(len(batch.results), 10)
        self.assertEqual(batch.calculated_count, 8)
        self.assertEqual(batch.error_count, 2)
        by_id = {result.policy_id: result for result in batch.results}
        self.assertEqual(by_id[8].allocations.agent_commission, Decimal("5000.00"))
        self.assertTrue(by_id[8].allocations.override_used)
        self.assertEqual(by_id[9].status, STATUS_ERROR)
        self.assertIn("source id", by_id[9].error_detail)
        self.assertEqual(by_id[10].status, STATUS_ERROR)

    def test_numeric_string_source_id_resolves(self):
        sources = {("agent", 5): SourceSnapshot(source_type="agent", source_id=5, tier=GOLD)}
        policy = _policy(source_type="agent", source_id="5")
        result = self._batch([policy], [_grid(1, base_rate=Decimal("10"))], sources).results[0]
        self.assertEqual(result.status, STATUS_CALCULATED)
        self.assertEqual(result.allocations.agent_commission, Decimal("7000.00"))

    def test_source_label_follows_party_type(self):
        sources = {
            ("employee", 3): SourceSnapshot(source_type="employee", source_id=3, name="Vikram"),
            ("misp", 4): SourceSnapshot(source_type="misp", source_id=4),
        }
        policies = [
            _policy(policy_id=1),
            _policy(policy_id=2, source_type="employee", source_id=3),
            _policy(policy_id=3, source_type="misp", source_id=4),
        ]
        results = self._batch(policies, [_grid(1)], sources).results
        self.assertEqual([r.source_label for r in results], ["Direct", "Internal (Vikram)", "External (4)"])
        self.assertEqual(results[1].source_name, "Vikram")

    def test_missing_source_entity_yields_error_result(self):
        policy = _policy(source_type="employee", source_id=77)
        result = self._batch([policy], [_grid(1)]).results[0]
        self.assertEqual(result.status, STATUS_ERROR)
        self.assertEqual(result.insurer_commission, Decimal("0.00"))

    def test_split_sum_invariant(self):
        sources = {
            ("agent", 1): SourceSnapshot(source_type="agent", source_id=1, tier=GOLD),
            ("misp", 2): SourceSnapshot(source_type="misp", source_id=2, override_percentage=Decimal("3.33")),
            ("employee", 3): SourceSnapshot(source_type="employee", source_id=3, reporting_employee_id=4),
        }
        policies = [
            _policy(policy_id=1, source_type="agent", source_id=1, premium_amount=Decimal("12345.67")),
            _policy(policy_id=2, source_type="misp", source_id=2, premium_amount=Decimal("9999.99")),
            _policy(policy_id=3, source_type="employee", source_id=3, premium_amount=Decimal("777.77")),
            _policy(policy_id=4, premium_amount=Decimal("31415.92")),
        ]
        grids = [_grid(1, base_rate=Decimal("11.25"), reward_rate=Decimal("1.5"), bonus_rate=Decimal("0.75"))]
        for result in self._batch(policies, grids, sources).results:
            self.assertEqual(result.status, STATUS_CALCULATED)
            self.assertEqual(result.allocations.total, result.insurer_commission)
            party_amounts = [
                result.allocations.agent_commission,
                result.allocations.misp_commission,
                result.allocations.employee_commission,
            ]
            self.assertLessEqual(sum(1 for amount in party_amounts if amount != 0), 1)

    def test_identical_inputs_give_identical_results(self):
        policies = [_policy(policy_id=i) for i in range(1, 4)]
        first = self._batch(policies, [_grid(2), _grid(1)])
        second = self._batch(list(reversed(policies)), [_grid(1), _grid(2)])
        self.assertEqual(
            sorted(first.results, key=lambda r: r.policy_id),
            sorted(second.results, key=lambda r: r.policy_id),
        )

    def test_policy_start_date_basis(self):
        policy = _policy(start_date=date(2023, 12, 15))
        old_grid = _grid(1, effective_from=date(2023, 1, 1), effective_to=date(2023, 12, 31))
        run_date_batch = calculate_batch([policy], [old_grid], {}, self.config, calc_date=CALC_DATE)
        start_batch = calculate_batch(
            [policy],
            [old_grid],
            {},
            self.config,
            calc_date=CALC_DATE,
            date_basis="policy_start",
        )
        self.assertEqual(run_date_batch.results[0].status, STATUS_NO_GRID_MATCH)
        self.assertEqual(start_batch.results[0].status, STATUS_CALCULATED)

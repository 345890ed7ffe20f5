import pytest

from agentworks.catalog import ProviderCatalog
from agentworks.metering.pricing import (
    PricingPolicy,
    compute_cost,
    compute_price,
    compute_provider_cost,
    compute_usage,
    estimate_tokens,
)
from agentworks.schemas.usage import TokenUsage


@pytest.fixture
def catalog() -> ProviderCatalog:
    return ProviderCatalog()


class TestEstimateTokens:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("", 0),
            ("a", 1),
            ("abcd", 1),
            ("abcde", 2),
            ("x" * 400, 100),
            ("x" * 401, 101),
        ],
    )
    def test_four_characters_per_token_rounded_up(self, text: str, expected: int):
        assert estimate_tokens(text) == expected

    def test_usage_totals_are_consistent(self):
        usage = compute_usage("x" * 400, "y" * 200)
        assert usage.input_tokens == 100
        assert usage.output_tokens == 50
        assert usage.total_tokens == 150


class TestProviderCost:
    def test_openai_rates(self, catalog: ProviderCatalog):
        cost = compute_provider_cost(TokenUsage.of(1000, 500), catalog.get_provider("openai"))
        assert cost == pytest.approx(0.025)

    def test_google_rates(self, catalog: ProviderCatalog):
        cost = compute_provider_cost(TokenUsage.of(1000, 1000), catalog.get_provider("google"))
        assert cost == pytest.approx(0.0028)

    def test_zero_tokens_cost_nothing(self, catalog: ProviderCatalog):
        assert compute_provider_cost(TokenUsage.of(0, 0), catalog.get_provider("anthropic")) == 0.0


class TestCustomerPrice:
    def test_marked_up_and_rounded_up_to_increment(self):
        # 0.025 * 5 = 0.125 -> one quarter
        assert compute_price(0.025) == 0.25

    def test_exact_increment_is_not_bumped(self):
        # 0.05 * 5 = 0.25 exactly
        assert compute_price(0.05) == 0.25

    def test_just_over_an_increment_rounds_up(self):
        assert compute_price(0.0501) == 0.5

    def test_any_nonzero_cost_is_billed_at_least_one_increment(self):
        assert compute_price(0.0000001) == 0.25

    def test_zero_cost_is_free(self):
        assert compute_price(0.0) == 0.0

    def test_custom_policy(self):
        policy = PricingPolicy(markup=2.0, increment=0.1)
        assert compute_price(0.26, policy) == pytest.approx(0.6)

    @pytest.mark.parametrize("markup, increment", [(0.5, 0.25), (5.0, 0.0), (5.0, -1.0)])
    def test_invalid_policy_rejected(self, markup: float, increment: float):
        with pytest.raises(ValueError):
            PricingPolicy(markup=markup, increment=increment)


class TestComputeCost:
    def test_scenario_from_1000_input_and_500_output_tokens(self, catalog: ProviderCatalog):
        breakdown = compute_cost(TokenUsage.of(1000, 500), catalog.get_provider("openai"))
        assert breakdown.provider_cost == pytest.approx(0.025)
        assert breakdown.customer_price == 0.25
        assert breakdown.margin == pytest.approx(0.225)

    def test_anthropic_scenario(self, catalog: ProviderCatalog):
        breakdown = compute_cost(TokenUsage.of(1000, 500), catalog.get_provider("anthropic"))
        assert breakdown.provider_cost == pytest.approx(0.0105)
        assert breakdown.customer_price == 0.25
        assert breakdown.margin == pytest.approx(0.2395)

    def test_price_never_below_cost(self, catalog: ProviderCatalog):
        for tokens in (1, 10, 999, 12345, 250000):
            breakdown = compute_cost(TokenUsage.of(tokens, tokens), catalog.get_provider("anthropic"))
            assert breakdown.customer_price >= breakdown.provider_cost
            assert breakdown.margin >= 0

    @pytest.mark.parametrize("provider_id", ["openai", "anthropic", "google"])
    @pytest.mark.parametrize(
        "policy",
        [PricingPolicy(), PricingPolicy(markup=2.0, increment=0.1), PricingPolicy(markup=1.0, increment=0.05)],
    )
    def test_price_covers_markup_in_whole_increments(
        self, catalog: ProviderCatalog, provider_id: str, policy: PricingPolicy
    ):
        provider = catalog.get_provider(provider_id)
        for input_tokens, output_tokens in ((1, 0), (7, 3), (1000, 500), (4096, 1024), (123457, 98765)):
            breakdown = compute_cost(TokenUsage.of(input_tokens, output_tokens), provider, policy)
            assert breakdown.customer_price >= breakdown.provider_cost * policy.markup - 1e-9
            increments = breakdown.customer_price / policy.increment
            assert increments == pytest.approx(round(increments), abs=1e-6)
            assert increments >= 1

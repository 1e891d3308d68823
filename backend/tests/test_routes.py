from payflow.api.routes import ROUTE_GROUPS, longest_prefix


class TestLongestPrefix:
    def test_picks_longest_match(self) -> None:
        prefixes = ["/api", "/api/v1", "/api/v1/balances"]
        assert longest_prefix("/api/v1/balances/acct_1", prefixes) == "/api/v1/balances"
        assert longest_prefix("/api/v1/other", prefixes) == "/api/v1"

    def test_matches_on_segment_boundaries(self) -> None:
        assert longest_prefix("/api/paymentsx", ROUTE_GROUPS) is None
        assert longest_prefix("/api/payments", ROUTE_GROUPS) == "/api/payments"

    def test_no_match(self) -> None:
        assert longest_prefix("/health", ROUTE_GROUPS) is None

    def test_six_route_groups(self) -> None:
        assert set(ROUTE_GROUPS) == {
            "/api/payments",
            "/api/accounts",
            "/api/withdrawals",
            "/api/direct-deposit",
            "/api/v1/balances",
            "/api/v1/transactions",
        }

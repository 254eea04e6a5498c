"""
Tests for ChartOfAccountsService.

Covers:
- Account creation and derived normal balance
- Duplicate and malformed codes
- Deactivation and posting guards
- Category freeze once an account is referenced
- Idempotent seeding
"""

import pytest

from taxbook_kernel.exceptions import (
    AccountNotFoundError,
    AccountReferencedError,
    DuplicateAccountError,
    InactiveAccountError,
    InvalidAccountDefinitionError,
    UnknownAccountError,
)


class TestCreateAccount:

    def test_normal_balance_derived_from_category(self, chart_service, test_actor_id):
        asset = chart_service.create_account("1999", "가지급금", "asset", test_actor_id)
        revenue = chart_service.create_account("4999", "잡이익", "revenue", test_actor_id)

        assert asset.normal_balance == "debit"
        assert revenue.normal_balance == "credit"
        assert asset.is_active
        assert asset.usage_count == 0

    def test_contradicting_normal_balance_rejected(self, chart_service, test_actor_id):
        with pytest.raises(InvalidAccountDefinitionError, match="debit-normal"):
            chart_service.create_account(
                "5999", "잡손실", "expense", test_actor_id, normal_balance="credit"
            )

    def test_duplicate_code(self, chart_service, test_actor_id):
        chart_service.create_account("1999", "가지급금", "asset", test_actor_id)
        with pytest.raises(DuplicateAccountError) as exc_info:
            chart_service.create_account("1999", "다른 이름", "asset", test_actor_id)
        assert exc_info.value.code == "DUPLICATE_ACCOUNT"

    @pytest.mark.parametrize("code", ["", "11A0", "1-100", " 1100"])
    def test_non_numeric_code(self, chart_service, test_actor_id, code):
        with pytest.raises(InvalidAccountDefinitionError):
            chart_service.create_account(code, "bad", "asset", test_actor_id)

    def test_unknown_category(self, chart_service, test_actor_id):
        with pytest.raises(InvalidAccountDefinitionError, match="category"):
            chart_service.create_account("1999", "bad", "income", test_actor_id)

    def test_unknown_tax_category(self, chart_service, test_actor_id):
        with pytest.raises(InvalidAccountDefinitionError, match="tax category"):
            chart_service.create_account(
                "5999", "bad", "expense", test_actor_id, tax_category="VAT"
            )

    def test_tags_stored_sorted(self, chart_service, test_actor_id):
        account = chart_service.create_account(
            "1999", "가지급금", "asset", test_actor_id, tags=["clearing", "b", "clearing"]
        )
        assert account.tags == ["b", "clearing"]
        assert account.has_tag("clearing")

    def test_creation_logged(self, chart_service, test_actor_id, captured_logs):
        chart_service.create_account("1999", "가지급금", "asset", test_actor_id)
        events = [r for r in captured_logs() if r["message"] == "account_created"]
        assert events[0]["account_code"] == "1999"
        assert events[0]["normal_balance"] == "debit"


class TestLookup:

    def test_get_unknown(self, chart_service):
        with pytest.raises(AccountNotFoundError):
            chart_service.get_account("9999")

    def test_require_postable_unknown(self, chart_service, standard_chart):
        with pytest.raises(UnknownAccountError):
            chart_service.require_postable("9999")

    def test_list_by_category(self, chart_service, standard_chart):
        codes = [a.code for a in chart_service.list_accounts(category="liability")]
        assert codes == ["2100", "2200", "2300"]


class TestDeactivation:

    def test_inactive_account_not_postable(self, chart_service, standard_chart, test_actor_id):
        chart_service.deactivate_account("5250", test_actor_id)
        with pytest.raises(InactiveAccountError):
            chart_service.require_postable("5250")

    def test_inactive_excluded_from_active_listing(
        self, chart_service, standard_chart, test_actor_id
    ):
        chart_service.deactivate_account("5250", test_actor_id)
        active = {a.code for a in chart_service.list_accounts(active_only=True)}
        everything = {a.code for a in chart_service.list_accounts()}
        assert "5250" not in active
        assert "5250" in everything

    def test_reactivate(self, chart_service, standard_chart, test_actor_id):
        chart_service.deactivate_account("5250", test_actor_id)
        chart_service.reactivate_account("5250", test_actor_id)
        assert chart_service.require_postable("5250").is_active


class TestUpdateAccount:

    def test_rename(self, chart_service, standard_chart, test_actor_id):
        account = chart_service.update_account("5290", test_actor_id, name="기타비용")
        assert account.name == "기타비용"

    def test_category_change_on_unused_account(
        self, chart_service, standard_chart, test_actor_id
    ):
        account = chart_service.update_account("1350", test_actor_id, category="liability")
        assert account.category == "liability"
        assert account.normal_balance == "credit"

    def test_category_frozen_once_referenced(
        self, chart_service, post_entry, test_actor_id
    ):
        post_entry([("5210", 100000, 0), ("1100", 0, 100000)])
        with pytest.raises(AccountReferencedError) as exc_info:
            chart_service.update_account("5210", test_actor_id, category="asset")
        assert exc_info.value.line_count == 1

    def test_same_category_allowed_when_referenced(
        self, chart_service, post_entry, test_actor_id
    ):
        post_entry([("5210", 100000, 0), ("1100", 0, 100000)])
        account = chart_service.update_account(
            "5210", test_actor_id, category="expense", name="복리후생"
        )
        assert account.name == "복리후생"


class TestSeedChart:

    def test_seed_creates_every_account(self, chart_service, config, test_actor_id):
        created = chart_service.seed_chart(config.chart, test_actor_id)
        assert created == len(config.chart)
        assert chart_service.get_account("1300").has_tag("withholding_prepaid")

    def test_seed_is_idempotent(self, chart_service, config, test_actor_id):
        chart_service.seed_chart(config.chart, test_actor_id)
        assert chart_service.seed_chart(config.chart, test_actor_id) == 0
        assert len(chart_service.list_accounts()) == len(config.chart)

    def test_seed_leaves_existing_accounts_untouched(
        self, chart_service, config, test_actor_id
    ):
        chart_service.create_account("5290", "사용자 잡비", "expense", test_actor_id)
        chart_service.seed_chart(config.chart, test_actor_id)
        assert chart_service.get_account("5290").name == "사용자 잡비"

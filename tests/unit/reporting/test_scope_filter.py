"""
Tests for the provider scope filter.

Covers clause omission, the empty short circuit, provider narrowing and
SQL rendering against provider-tagged models.
"""
from uuid import uuid4

from sqlalchemy.dialects import sqlite

from app.models.cloud import CloudProvider, CostRecord, Resource
from app.modules.reporting.domain.accounts import OwnedAccounts
from app.modules.reporting.domain.scope import ScopeFilter, build_scope_filter


class TestBuildScopeFilter:
    def test_empty_providers_are_omitted(self):
        """A provider without accounts contributes no clause at all."""
        aws_id = uuid4()
        scope = build_scope_filter(OwnedAccounts(aws=[aws_id]))

        assert scope.providers == [CloudProvider.AWS]
        assert not scope.is_empty

    def test_no_accounts_is_empty(self):
        """All three lists empty short-circuits callers."""
        scope = build_scope_filter(OwnedAccounts())
        assert scope.is_empty
        assert scope.to_dict() == {}

    def test_clause_order_follows_providers(self):
        owned = OwnedAccounts(aws=[uuid4()], azure=[uuid4()], gcp=[uuid4()])
        scope = build_scope_filter(owned)
        assert scope.providers == [CloudProvider.AWS, CloudProvider.AZURE, CloudProvider.GCP]


class TestNarrowing:
    def test_narrow_keeps_one_provider(self):
        aws_id, gcp_id = uuid4(), uuid4()
        scope = build_scope_filter(OwnedAccounts(aws=[aws_id], gcp=[gcp_id]), CloudProvider.GCP)

        assert scope.providers == [CloudProvider.GCP]
        assert scope.admits("gcp", gcp_id)
        assert not scope.admits("aws", aws_id)

    def test_narrow_to_unowned_provider_is_empty(self):
        """Narrowing never widens: no azure accounts means nothing is visible."""
        scope = build_scope_filter(OwnedAccounts(aws=[uuid4()]), CloudProvider.AZURE)
        assert scope.is_empty

    def test_narrow_none_is_identity(self):
        scope = build_scope_filter(OwnedAccounts(aws=[uuid4()]))
        assert scope.narrow(None) is scope


class TestAdmits:
    def test_admits_requires_matching_provider(self):
        """An owned id under the wrong provider tag is not admitted."""
        account_id = uuid4()
        scope = build_scope_filter(OwnedAccounts(aws=[account_id]))

        assert scope.admits("aws", account_id)
        assert not scope.admits("azure", account_id)
        assert not scope.admits("aws", uuid4())


class TestRendering:
    def _sql(self, clause) -> str:
        return str(clause.compile(dialect=sqlite.dialect(), compile_kwargs={"literal_binds": False}))

    def test_renders_disjunction_per_provider(self):
        owned = OwnedAccounts(aws=[uuid4()], gcp=[uuid4(), uuid4()])
        sql = self._sql(build_scope_filter(owned).for_model(CostRecord))

        assert sql.count("cost_records.provider") == 2
        assert " OR " in sql
        assert "cost_records.account_id IN" in sql

    def test_renders_against_any_tagged_model(self):
        sql = self._sql(build_scope_filter(OwnedAccounts(azure=[uuid4()])).for_model(Resource))
        assert "resources.provider" in sql
        assert " OR " not in sql

    def test_empty_filter_renders_false(self):
        sql = self._sql(ScopeFilter().for_model(CostRecord))
        assert "IN" not in sql

"""Unit tests for the default quota table and paged listings."""

import pytest

from iquota_service.models.quota import QuotaResponse
from iquota_service.services.defaults import DefaultQuotaTable
from iquota_service.services.listing import collect_pages


class TestDefaultQuotaTable:
    """Test default quota lookups."""

    def test_from_records_indexes_by_path(self, record_factory):
        user = record_factory(path="/ifs/home", quota_type="default-user")
        group = record_factory(path="/ifs/projects", quota_type="default-group")
        other = record_factory(path="/ifs/home")

        table = DefaultQuotaTable.from_records([user, group, other])

        assert table.user("/ifs/home") == user
        assert table.group("/ifs/projects") == group
        assert table.user("/ifs/projects") is None
        assert len(table) == 2

    def test_records_lists_users_then_groups(self, record_factory):
        group = record_factory(path="/ifs/projects", quota_type="default-group")
        user = record_factory(path="/ifs/home", quota_type="default-user")

        assert DefaultQuotaTable.from_records([group, user]).records() == [user, group]

    def test_table_is_read_only(self, record_factory):
        table = DefaultQuotaTable.from_records([record_factory(path="/ifs/home", quota_type="default-user")])

        with pytest.raises(TypeError):
            table.user_defaults["/ifs/other"] = None

    @pytest.mark.asyncio
    async def test_load_from_backend(self, backend_factory, record_factory):
        user = record_factory(path="/ifs/home", quota_type="default-user")
        group = record_factory(path="/ifs/projects", quota_type="default-group")
        backend = backend_factory(pages=[QuotaResponse(quotas=[user, group, record_factory()])])

        table = await DefaultQuotaTable.load(backend)

        assert table.user_defaults == {"/ifs/home": user}
        assert table.group_defaults == {"/ifs/projects": group}
        assert backend.list_calls == [(None, "default-user"), (None, "default-group")]


class TestCollectPages:
    """Test resume token handling."""

    @pytest.mark.asyncio
    async def test_single_page(self, backend_factory, record_factory):
        a = record_factory(path="/ifs/a")
        backend = backend_factory(pages=[QuotaResponse(quotas=[a])])

        result = await collect_pages(backend)

        assert result.quotas == [a]
        assert backend.resume_calls == []

    @pytest.mark.asyncio
    async def test_pages_concatenated_in_order(self, backend_factory, record_factory):
        a, b, c = (record_factory(path=f"/ifs/{n}") for n in "abc")
        backend = backend_factory(
            pages=[
                QuotaResponse(quotas=[a], resume="tok1"),
                QuotaResponse(quotas=[b], resume="tok2"),
                QuotaResponse(quotas=[c]),
            ]
        )

        result = await collect_pages(backend, "/ifs", "directory")

        assert result.quotas == [a, b, c]
        assert result.resume is None
        assert backend.resume_calls == ["tok1", "tok2"]
        assert backend.list_calls == [("/ifs", "directory")]

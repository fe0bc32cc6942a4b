"""Tests for the conveyancer directory search."""

import pytest

from documove.domain.errors import EntityNotFoundError
from documove.services.conveyancer_directory import ConveyancerDirectory


@pytest.fixture
async def directory(db_session, make_conveyancer):
    await make_conveyancer(firm_name="Harbour Law", contact_name="Priya Shah", town="Bristol", rating=4.8)
    await make_conveyancer(firm_name="Avon Conveyancing", contact_name="Tom Reed", town="Bath", rating=4.2)
    await make_conveyancer(firm_name="bristol Property Lawyers", contact_name="Ann Cole", town="Clifton", rating=4.2)
    await make_conveyancer(firm_name="Dormant & Co", contact_name="Old Hand", town="Bristol", rating=5.0, is_active=False)
    await make_conveyancer(firm_name="100% Legal", contact_name="Max Payne", town="Swindon", rating=3.1)
    return ConveyancerDirectory(db_session)


class TestSearch:
    @pytest.mark.asyncio
    async def test_all_active_ranked_by_rating(self, directory):
        results = await directory.search().all()
        assert [r.firm_name for r in results] == [
            "Harbour Law",
            "Avon Conveyancing",
            "bristol Property Lawyers",
            "100% Legal",
        ]

    @pytest.mark.asyncio
    async def test_case_insensitive_across_fields(self, directory):
        results = await directory.search("BRISTOL").all()
        # town match for Harbour Law, firm name match for the Clifton firm
        assert [r.firm_name for r in results] == ["Harbour Law", "bristol Property Lawyers"]

    @pytest.mark.asyncio
    async def test_contact_name_match(self, directory):
        results = await directory.search("reed").all()
        assert [r.contact_name for r in results] == ["Tom Reed"]

    @pytest.mark.asyncio
    async def test_inactive_included_on_request(self, directory):
        results = await directory.search("bristol", active_only=False).all()
        assert results[0].firm_name == "Dormant & Co"
        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_wildcards_are_literal(self, directory):
        results = await directory.search("%").all()
        assert [r.firm_name for r in results] == ["100% Legal"]

    @pytest.mark.asyncio
    async def test_search_is_lazy_and_restartable(self, directory, make_conveyancer):
        search = directory.search("bath")
        first = [r.firm_name async for r in search]
        await make_conveyancer(firm_name="Bath Stone Legal", contact_name="Jo Ames", town="Bath", rating=4.9)
        second = [r.firm_name async for r in search]
        assert first == ["Avon Conveyancing"]
        assert second == ["Bath Stone Legal", "Avon Conveyancing"]

    @pytest.mark.asyncio
    async def test_no_match(self, directory):
        assert await directory.search("Inverness").all() == []

    @pytest.mark.asyncio
    async def test_get(self, directory, make_conveyancer):
        firm = await make_conveyancer(firm_name="Quayside Legal", accreditations=None)
        record = await directory.get(firm.id)
        assert record.firm_name == "Quayside Legal"
        assert record.accreditations == []

    @pytest.mark.asyncio
    async def test_get_missing(self, directory):
        with pytest.raises(EntityNotFoundError):
            await directory.get("missing")


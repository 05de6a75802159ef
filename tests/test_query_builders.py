from datetime import datetime, timezone

import pytest

from mlsbridge.adapters.clients.query_builders import (
    NativeQueryBuilder,
    ODataQueryBuilder,
    build_query_builder,
    odata_literal,
)
from mlsbridge.domain.errors import MLSIntegrationError
from mlsbridge.domain.types import BoundingBox, PropertyType, SearchCriteria, SortField, StandardStatus


def test_odata_params_and_filter():
    c = SearchCriteria(
        city=["Columbus", "Bexley"],
        property_type=[PropertyType.condo],
        min_bedrooms=2,
        max_list_price=400000,
        standard_status=[StandardStatus.active],
        modified_since=datetime(2026, 10, 1, 11, 45, tzinfo=timezone.utc),
        limit=25,
        offset=50,
        sort_by=SortField.list_price,
        sort_order="asc",
    )
    params = ODataQueryBuilder().build_search_params(c)
    assert params["$top"] == 25
    assert params["$skip"] == 50
    assert params["$orderby"] == "ListPrice asc"
    assert params["$count"] == "true"
    assert params["$filter"] == (
        "(City eq 'Columbus' or City eq 'Bexley')"
        " and PropertyType eq 'Condo'"
        " and BedroomsTotal ge 2"
        " and ListPrice le 400000"
        " and StandardStatus eq 'Active'"
        " and ModificationTimestamp ge 2026-10-01T11:45:00Z"
    )


def test_odata_bounding_box_and_quotes():
    c = SearchCriteria(
        bounding_box=BoundingBox(north=40.0, south=39.5, east=-82.5, west=-83.0),
        county=["O'Brien"],
    )
    flt = ODataQueryBuilder().build_filter(c)
    assert "CountyOrParish eq 'O''Brien'" in flt
    assert "Latitude ge 39.5 and Latitude le 40.0" in flt
    assert "Longitude ge -83.0 and Longitude le -82.5" in flt
    assert odata_literal("it's") == "'it''s'"


def test_odata_without_filters_omits_filter():
    assert "$filter" not in ODataQueryBuilder().build_search_params(SearchCriteria())


def test_odata_response_parsing():
    qb = ODataQueryBuilder()
    rows, total = qb.parse_search_response({"value": [{"ListingId": "1"}, "junk"], "@odata.count": 9})
    assert rows == [{"ListingId": "1"}]
    assert total == 9
    with pytest.raises(MLSIntegrationError) as exc:
        qb.parse_search_response({"items": []})
    assert exc.value.error.code == "MALFORMED_RESPONSE"

    assert qb.property_request("X'1") == ("/Property('X''1')", {})
    assert qb.parse_property_response({"value": [{"ListingId": "1"}]}) == {"ListingId": "1"}
    assert qb.parse_property_response({"value": []}) is None


def test_native_params():
    c = SearchCriteria(
        city=["Columbus"],
        postal_code=["43215"],
        property_type=[PropertyType.residential, PropertyType.condo],
        min_list_price=100000,
        max_list_price=250000.5,
        min_bedrooms=3,
    )
    params = NativeQueryBuilder().build_search_params(c)
    assert params["city"] == "Columbus"
    assert params["postal_code"] == "43215"
    assert params["type"] == "condos,single_family"
    assert params["price_min"] == "100000"
    assert params["price_max"] == "250000.5"
    assert params["beds_min"] == "3"
    assert params["status"] == "for_sale"
    assert params["sort"] == "last_update_date_desc"
    assert params["limit"] == 50


def test_native_response_shapes():
    qb = NativeQueryBuilder()
    rows, total = qb.parse_search_response({"properties": [{"property_id": "1"}], "meta": {"matching_rows": 40}})
    assert rows == [{"property_id": "1"}] and total == 40

    nested = {"data": {"home_search": {"results": [{"property_id": "2"}], "total": 7}}}
    rows, total = qb.parse_search_response(nested)
    assert rows == [{"property_id": "2"}] and total == 7

    assert qb.parse_property_response({"data": {"home": {"property_id": "3"}}}) == {"property_id": "3"}


def test_builder_selection():
    assert isinstance(build_query_builder("RAPIDAPI"), NativeQueryBuilder)
    assert isinstance(build_query_builder("RESO"), ODataQueryBuilder)
    assert isinstance(build_query_builder("trestle"), ODataQueryBuilder)

import pytest
from pydantic import ValidationError

from mlsbridge.domain.types import BoundingBox, SearchCriteria, SortField


def test_defaults():
    c = SearchCriteria()
    assert c.limit == 50
    assert c.offset == 0
    assert c.sort_by == SortField.modification_timestamp
    assert c.sort_order == "desc"


@pytest.mark.parametrize(
    "lo,hi",
    [
        ("min_bedrooms", "max_bedrooms"),
        ("min_bathrooms", "max_bathrooms"),
        ("min_square_feet", "max_square_feet"),
        ("min_year_built", "max_year_built"),
        ("min_list_price", "max_list_price"),
    ],
)
def test_min_greater_than_max_is_rejected(lo, hi):
    values = {"min_year_built": 2000, "max_year_built": 1990} if "year" in lo else {lo: 5, hi: 2}
    with pytest.raises(ValidationError):
        SearchCriteria(**values)


def test_limit_is_capped():
    with pytest.raises(ValidationError):
        SearchCriteria(limit=1001)
    assert SearchCriteria(limit=1000).limit == 1000


def test_postal_codes_are_pattern_checked():
    assert SearchCriteria(postal_code=["43215", "43215-1234"]).postal_code == ["43215", "43215-1234"]
    with pytest.raises(ValidationError):
        SearchCriteria(postal_code=["4321"])


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        SearchCriteria(bedrooms=3)


def test_bounding_box_corners():
    with pytest.raises(ValidationError):
        BoundingBox(north=39.0, south=40.0, east=-82.0, west=-83.0)

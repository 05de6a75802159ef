from mlsbridge.domain.address import format_address, standardize_street_suffix, validate_address


def test_full_address_is_parsed_and_formatted():
    v = validate_address("123 north high street, columbus, oh 43215")
    assert v.is_valid, v.errors
    c = v.components
    assert c.street_number == "123"
    assert c.street_name == "North High"
    assert c.street_suffix == "St"
    assert c.city == "Columbus"
    assert c.state == "OH"
    assert c.postal_code == "43215"
    assert v.formatted == "123 North High St, Columbus, OH 43215"
    assert format_address(c) == v.formatted


def test_defaults_fill_city_and_state():
    v = validate_address("500 S Front St")
    assert v.is_valid
    assert v.formatted == "500 S Front St, Columbus, OH"


def test_comma_less_city_state_suffix():
    v = validate_address("77 Main St Columbus OH 43215")
    assert v.is_valid, v.errors
    assert v.components.street_name == "Main"
    assert v.components.city == "Columbus"


def test_unit_numbers():
    v = validate_address("10 Oak Ave Apt 3, Columbus, OH 43206")
    assert v.components.unit_number == "3"
    assert v.formatted.startswith("10 Oak Ave #3,")


def test_rejects_postal_code_outside_service_area():
    v = validate_address("1 Woodward Ave, Detroit, MI 48226")
    assert not v.is_valid
    assert "Postal code 48226 is outside the service area" in v.errors


def test_service_area_is_configurable():
    v = validate_address("1 Woodward Ave, Detroit, MI 48226", valid_postal_prefixes=("482",))
    assert v.is_valid


def test_rejects_garbage():
    assert validate_address("").errors == ["Address is required"]
    assert not validate_address("High Street").is_valid
    assert not validate_address("12 Main St, Columbus, Ohio").is_valid


def test_suffix_table():
    assert standardize_street_suffix("Boulevard") == "Blvd"
    assert standardize_street_suffix("ave.") == "Ave"
    assert standardize_street_suffix("xyz") is None

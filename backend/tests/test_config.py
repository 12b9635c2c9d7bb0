import pytest

from edi_outbound.core.config import load_settings
from edi_outbound.core.errors import ConfigurationError

BASE = {"GS1_COMPANY_PREFIX": "7612345"}


def test_defaults():
    s = load_settings(BASE)
    assert s.transport == "sftp"
    assert s.sftp_out_dir == "/partner2dg"
    assert s.parcel_capacity == 12
    assert s.gs1_extension_digit == "0"
    assert s.default_carrier == "eurosender"
    assert s.carrier_allowlist == ()


def test_unset_extension_digit_defaults_to_zero():
    assert load_settings({**BASE, "GS1_EXTENSION_DIGIT": ""}).gs1_extension_digit == "0"


@pytest.mark.parametrize("digit", ["12", "a", "-1"])
def test_malformed_extension_digit_is_rejected(digit):
    with pytest.raises(ConfigurationError):
        load_settings({**BASE, "GS1_EXTENSION_DIGIT": digit})


def test_missing_prefix_is_rejected():
    with pytest.raises(ConfigurationError):
        load_settings({})


def test_capacity_must_be_positive():
    with pytest.raises(ConfigurationError):
        load_settings({**BASE, "PARCEL_CAPACITY": "0"})
    with pytest.raises(ConfigurationError):
        load_settings({**BASE, "PARCEL_CAPACITY": "many"})


def test_lists_and_supplier():
    s = load_settings(
        {
            **BASE,
            "CARRIER_ALLOWLIST": " Post , DPD,,",
            "SUPPLIER_NAME": "Sneaker Supply AG",
            "SUPPLIER_ADDRESS_LINES": "Bahnhofstrasse 1|8001 Zurich|CH",
        }
    )
    assert s.carrier_allowlist == ("Post", "DPD")
    assert s.supplier.name == "Sneaker Supply AG"
    assert (s.supplier.street, s.supplier.postal_code, s.supplier.city, s.supplier.country) == (
        "Bahnhofstrasse 1",
        "8001",
        "Zurich",
        "CH",
    )


class TestValidateTransfer:
    def test_sftp_requires_credentials(self):
        s = load_settings({**BASE, "EDI_SUPPLIER_ID": "SUP1", "SFTP_HOST": "sftp.example.com"})
        with pytest.raises(ConfigurationError):
            s.validate_transfer()

    def test_supplier_id_required(self):
        s = load_settings({**BASE, "EDI_TRANSPORT": "local"})
        with pytest.raises(ConfigurationError):
            s.validate_transfer()

    def test_unknown_transport(self):
        s = load_settings({**BASE, "EDI_TRANSPORT": "ftp", "EDI_SUPPLIER_ID": "SUP1"})
        with pytest.raises(ConfigurationError):
            s.validate_transfer()

    def test_complete_sftp_config(self):
        s = load_settings(
            {
                **BASE,
                "EDI_SUPPLIER_ID": "SUP1",
                "SFTP_HOST": "sftp.example.com",
                "SFTP_USER": "u",
                "SFTP_PASSWORD": "p",
            }
        )
        s.validate_transfer()

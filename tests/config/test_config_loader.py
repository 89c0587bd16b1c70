"""
Tests for movement configuration loading and wiring.

Verifies the shipped default set, rejection of malformed sets, checksum
determinism, the config trace log entry, and that ``build_services``
wires a working procurement/transfer stack from a config.
"""

from decimal import Decimal
from uuid import UUID

import pytest
import yaml

from movement_config import build_services, get_active_config, role_provider_from_config
from movement_config.loader import compute_checksum, parse_config
from movement_kernel.domain.clock import DeterministicClock
from movement_kernel.domain.values import LineItem, RequestKind


def _base() -> dict:
    return {
        "config_id": "test",
        "version": 1,
        "codes": {"procurement": "PO", "transfer": "TR"},
        "stock": {"allow_negative": False},
        "warehouses": ["WH-1"],
        "role_bindings": [
            {"actor_id": "00000000-0000-0000-0000-0000000000aa", "role": "requester", "scope": "BR-9"},
        ],
    }


def _actor(n: int) -> UUID:
    return UUID(f"00000000-0000-0000-0000-{n:012d}")


class TestDefaultConfig:

    def test_loads(self):
        config = get_active_config()
        assert config.config_id == "default"
        assert config.version == 1
        assert config.code_prefixes == {
            RequestKind.PROCUREMENT: "PNK",
            RequestKind.TRANSFER: "PCK",
        }
        assert config.allow_negative_stock is False
        assert config.warehouses == ("WH-CENTRAL",)
        assert len(config.role_bindings) == 8
        assert len(config.checksum) == 64

    def test_checksum_stable(self):
        assert get_active_config().checksum == get_active_config().checksum

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "MOVEMENT_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["role_binding_count"] == 8

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_custom_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump(_base()))
        config = get_active_config(path)
        assert config.config_id == "test"
        assert config.code_prefixes[RequestKind.TRANSFER] == "TR"
        assert config.role_bindings[0].scope == "BR-9"


class TestParseConfig:

    def test_checksum_depends_on_content(self):
        data = _base()
        changed = _base()
        changed["version"] = 2
        assert compute_checksum(data) == compute_checksum(_base())
        assert compute_checksum(data) != compute_checksum(changed)

    @pytest.mark.parametrize("version", [0, -1, "1", None])
    def test_bad_version(self, version):
        data = _base()
        data["version"] = version
        with pytest.raises(ValueError):
            parse_config(data)

    @pytest.mark.parametrize("prefix", ["p", "po", "PURCHASEORDER", "P-O", 12])
    def test_bad_prefix(self, prefix):
        data = _base()
        data["codes"]["procurement"] = prefix
        with pytest.raises(ValueError):
            parse_config(data)

    def test_prefixes_must_differ(self):
        data = _base()
        data["codes"]["transfer"] = "PO"
        with pytest.raises(ValueError):
            parse_config(data)

    def test_missing_codes(self):
        data = _base()
        del data["codes"]
        with pytest.raises(KeyError):
            parse_config(data)

    def test_unknown_role(self):
        data = _base()
        data["role_bindings"][0]["role"] = "superuser"
        with pytest.raises(ValueError):
            parse_config(data)

    def test_bad_actor_id(self):
        data = _base()
        data["role_bindings"][0]["actor_id"] = "alice"
        with pytest.raises(ValueError):
            parse_config(data)

    def test_duplicate_binding(self):
        data = _base()
        data["role_bindings"].append(dict(data["role_bindings"][0]))
        with pytest.raises(ValueError):
            parse_config(data)

    def test_duplicate_warehouse(self):
        data = _base()
        data["warehouses"] = ["WH-1", "WH-1"]
        with pytest.raises(ValueError):
            parse_config(data)

    def test_allow_negative_must_be_bool(self):
        data = _base()
        data["stock"]["allow_negative"] = "yes"
        with pytest.raises(ValueError):
            parse_config(data)

    def test_database_url(self):
        data = _base()
        data["database"] = {"url": "postgresql://localhost/movements"}
        assert parse_config(data).database_url == "postgresql://localhost/movements"


class TestBridges:

    def test_role_provider(self):
        provider = role_provider_from_config(get_active_config())
        assert provider.has_role(_actor(1), "requester", "BR-01")
        assert not provider.has_role(_actor(1), "requester", "BR-02")
        assert provider.has_role(_actor(2), "procurement_approver", "BR-07")
        assert not provider.has_role(_actor(2), "accountant")

    def test_build_services_end_to_end(self, session_factory):
        clock = DeterministicClock()
        procurement, transfer, board = build_services(
            get_active_config(), session_factory, clock=clock,
        )
        lines = [LineItem(product_id=1, variant_id=101, quantity=4, unit_price=Decimal("1.25"))]

        request = procurement.submit(_actor(1), lines, "BR-01")
        assert request.code == "PNK-20240101-0001"
        procurement.review(request.id, _actor(2), "approve")
        procurement.confirm_payment(request.id, _actor(3))
        procurement.confirm_receipt(request.id, _actor(4))

        moved = transfer.request_transfer(_actor(1), "BR-01", "WH-CENTRAL", lines)
        assert moved.code.startswith("PCK-")
        transfer.review_branch(moved.id, _actor(5), "approve")
        transfer.review_warehouse(moved.id, _actor(6), "approve")
        transfer.ship(moved.id, _actor(7))
        done = transfer.receive(moved.id, _actor(8))
        assert done.status == "completed"

        assert board.build(RequestKind.PROCUREMENT).column("completed").count == 1
        assert board.build(RequestKind.TRANSFER).column("completed").count == 1

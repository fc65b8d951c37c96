from __future__ import annotations

import json
import runpy
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from facility_desk.infrastructure import load_service_catalog


def test_sample_script_output_loads_into_catalog(tmp_path, monkeypatch):
    output = tmp_path / "services.json"
    monkeypatch.setattr(sys, "argv", ["make_sample_services.py", "--output", str(output), "--supervisor", "SUP009"])
    runpy.run_path(str(ROOT / "scripts" / "make_sample_services.py"), run_name="__main__")

    catalog = load_service_catalog(output)

    assert len(catalog) == 5
    assert {record.type for record in catalog.for_supervisor("SUP009")} == {
        "cleaning",
        "security",
        "parking-management",
        "waste-management",
        "maintenance",
    }
    gate = catalog.get("SRV-02")
    assert gate is not None and gate.assigned_to_name == "Ravi Kumar"


def test_missing_path_gives_empty_catalog():
    assert len(load_service_catalog(None)) == 0


def test_catalog_must_be_a_list(tmp_path):
    path = tmp_path / "services.json"
    path.write_text(json.dumps({"serviceId": "SRV-1"}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_service_catalog(path)

#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
from pathlib import Path


SERVICES = [
    ("cleaning", "Lobby and corridor cleaning", "Ground floor"),
    ("security", "Gate security", "East gate"),
    ("parking-management", "Basement parking", "B1"),
    ("waste-management", "Waste segregation", "Service yard"),
    ("maintenance", "Lift maintenance", "Tower A"),
]


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a sample service catalog for SERVICE_CATALOG_PATH")
    parser.add_argument("--output", required=True, help="output file path (.json)")
    parser.add_argument("--supervisor", default="SUP001", help="supervisor id owning the services")
    parser.add_argument("--staff-name", default="Ravi Kumar", help="staff member assigned to every service")
    args = parser.parse_args()

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    records = [
        {
            "serviceId": f"SRV-{index:02d}",
            "type": service_type,
            "title": title,
            "description": f"{title} at {location}",
            "location": location,
            "assignedTo": f"EMP-{index:02d}",
            "assignedToName": args.staff_name,
            "status": "operational",
            "schedule": "daily",
            "supervisorId": args.supervisor,
        }
        for index, (service_type, title, location) in enumerate(SERVICES, start=1)
    ]
    output.write_text(json.dumps(records, indent=2), encoding="utf-8")

    print(f"service catalog written: {output} ({len(records)} services)")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
import argparse
import json
import sys
from collections import Counter
from pathlib import Path
from typing import Iterator, Tuple

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from proctor.config import settings  # noqa: E402
from proctor.engine import ProctorEngine  # noqa: E402


def _read_records(path: Path) -> Iterator[Tuple[int, dict]]:
    with path.open("r", encoding="utf-8") as handle:
        for line_no, line in enumerate(handle, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as exc:
                print(f"line {line_no}: skipped ({exc})", file=sys.stderr)
                continue
            if not isinstance(record, dict):
                print(f"line {line_no}: skipped (not an object)", file=sys.stderr)
                continue
            yield line_no, record


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Replay a JSONL detection log through a fresh engine and print violations."
    )
    parser.add_argument("log_path", help="JSONL file, one {timestamp, objects, hands, faces} per line")
    parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Seconds between records that carry no timestamp",
    )
    parser.add_argument("--quiet", action="store_true", help="Only print the summary")
    args = parser.parse_args()

    path = Path(args.log_path)
    if not path.exists():
        print(f"Log not found: {path}")
        return 1

    engine = ProctorEngine.from_settings(settings)
    clock = 0.0
    by_type: Counter = Counter()
    for line_no, record in _read_records(path):
        timestamp = record.get("timestamp")
        if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
            clock = float(timestamp)
        else:
            clock += args.interval
        violations = []
        if "objects" in record or "hands" in record:
            violations.extend(
                engine.process_objects(record.get("objects"), record.get("hands"), now=clock)
            )
        if "faces" in record:
            violations.extend(engine.process_faces(record.get("faces"), now=clock))
        for violation in violations:
            by_type[violation.type] += 1
            if not args.quiet:
                print(
                    f"line={line_no} t={clock:.2f} type={violation.type} "
                    f"severity={violation.severity} pathway={violation.pathway or '-'} "
                    f"message={violation.message}"
                )

    print("Violations by type:", dict(by_type))
    print("Statistics:", json.dumps(engine.statistics(), indent=2, default=str))
    print("Tracking:", json.dumps(engine.get_tracking_status(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
